"""Signal-extraction defaults (vocabulary, limits, headers, reference batch).

Centralizes static defaults so the analysis and pipeline modules carry no
embedded magic values. Callers can inject their own SignalsPolicy to override
any of them.
"""

from __future__ import annotations

# Fetch defaults
DEFAULT_TIMEOUT = 30.0
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)
ACCEPT_LANGUAGE = "en-US,en;q=0.9"
HTML_PARSER = "lxml"

# Extraction defaults
FEATURE_VOCABULARY = (
    "location",
    "time",
    "suspect",
    "victim",
    "weapon",
    "witness",
    "evidence",
    "arrest",
    "outcome",
    "police",
)
HEADING_SELECTOR = "h2, h3"
# Headings at or below this length are navigation chrome ("Menu", "Tools").
MIN_HEADING_CHARS = 5

# Aggregation / ranking defaults
LABEL_MAX_CHARS = 15
LABEL_TRUNCATION_MARKER = "..."
DEFAULT_TOP_N = 10

# Reference batch: static SERP stand-in, grouped by category value.
CRIME_URLS = (
    "https://en.wikipedia.org/wiki/Crime_statistics",
    "https://en.wikipedia.org/wiki/Police_procedural",
    "https://en.wikipedia.org/wiki/First_Information_Report",
    "https://en.wikipedia.org/wiki/Forensic_science",
    "https://en.wikipedia.org/wiki/Criminal_investigation",
    "https://en.wikipedia.org/wiki/Uniform_Crime_Reports",
    "https://en.wikipedia.org/wiki/CompStat",
    "https://en.wikipedia.org/wiki/Criminal_justice",
    "https://en.wikipedia.org/wiki/Criminology",
    "https://en.wikipedia.org/wiki/Offender_profiling",
)

DEEP_LEARNING_URLS = (
    "https://en.wikipedia.org/wiki/Deep_learning",
    "https://en.wikipedia.org/wiki/Convolutional_neural_network",
    "https://en.wikipedia.org/wiki/Recurrent_neural_network",
    "https://en.wikipedia.org/wiki/Transformer_(machine_learning)",
)

DEFAULT_BATCH = tuple(
    [(url, "feature_keywords") for url in CRIME_URLS]
    + [(url, "section_headings") for url in DEEP_LEARNING_URLS]
)
