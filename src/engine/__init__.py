from src.engine.aggregator import Aggregator, CardPriceStats, partition_index, recompute
from src.engine.correlator import correlate, correlate_page
from src.engine.dedup import dedupe, normalize_url
from src.engine.extractor import extract_fields
from src.engine.grade_classifier import classify_listing
from src.engine.grading import detect_grade_token
from src.engine.name_resolver import resolve_name
from src.engine.normalizer import normalize_title
from src.engine.summary import build_summary_title

__all__ = [
    "Aggregator",
    "CardPriceStats",
    "build_summary_title",
    "classify_listing",
    "correlate",
    "correlate_page",
    "dedupe",
    "detect_grade_token",
    "extract_fields",
    "normalize_title",
    "normalize_url",
    "partition_index",
    "recompute",
    "resolve_name",
]
