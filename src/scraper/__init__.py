"""Card Comps - Page candidate extraction for unstructured scrapes"""
