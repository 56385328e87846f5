"""Initial schema - card_price_records

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- card_price_records: one row per card identity ---
    op.create_table(
        "card_price_records",
        sa.Column(
            "card_key",
            sa.String(),
            nullable=False,
            comment="subject|year|brand|set|card_number|print_run",
        ),
        sa.Column("subject", sa.String(), nullable=False),
        sa.Column("year", sa.INTEGER(), nullable=True),
        sa.Column("brand", sa.String(), nullable=True),
        sa.Column("set_name", sa.String(), nullable=True),
        sa.Column("card_number", sa.String(), nullable=True),
        sa.Column("print_run", sa.String(), nullable=True),
        sa.Column("summary_title", sa.String(), nullable=True),
        sa.Column("sport", sa.String(), nullable=True),
        sa.Column("raw_average_price", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("raw_sample_count", sa.INTEGER(), nullable=False, server_default="0"),
        sa.Column("grade9_average_price", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("grade9_sample_count", sa.INTEGER(), nullable=False, server_default="0"),
        sa.Column("grade10_price", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("grade10_sold_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("multiplier", sa.DECIMAL(10, 2), nullable=True),
        sa.Column("anomaly_flag", sa.BOOLEAN(), nullable=False, server_default=sa.false()),
        sa.Column("anomaly_reasons", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column(
            "last_updated",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("card_key", name="pk_card_price_records"),
    )
    op.create_index("ix_card_price_records_subject", "card_price_records", ["subject"])
    op.create_index("ix_card_price_records_anomaly", "card_price_records", ["anomaly_flag"])
    op.create_index("ix_card_price_records_sport", "card_price_records", ["sport"])


def downgrade() -> None:
    op.drop_index("ix_card_price_records_sport", table_name="card_price_records")
    op.drop_index("ix_card_price_records_anomaly", table_name="card_price_records")
    op.drop_index("ix_card_price_records_subject", table_name="card_price_records")
    op.drop_table("card_price_records")
