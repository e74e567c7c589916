from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    generate_latest,
    CONTENT_TYPE_LATEST,
)

# ---------------------------------------------------------------------------
# Pipeline outcomes
# ---------------------------------------------------------------------------
resolve_requests_total = Counter(
    "placelink_resolve_requests_total",
    "Total place resolutions by outcome (source on success, reason on failure)",
    ["outcome"],
)
redirect_expansions_total = Counter(
    "placelink_redirect_expansions_total",
    "Short-link expansions via plain HTTP redirects",
    ["status"],
)

# ---------------------------------------------------------------------------
# Geocoding
# ---------------------------------------------------------------------------
geocode_requests_total = Counter(
    "placelink_geocode_requests_total",
    "Nominatim requests by kind (reverse/forward) and status",
    ["kind", "status"],
)
geocode_throttle_seconds = Histogram(
    "placelink_geocode_throttle_seconds",
    "Time spent waiting on the Nominatim rate limit",
    buckets=[0, 0.1, 0.25, 0.5, 1, 2, 5],
)

# ---------------------------------------------------------------------------
# Browser
# ---------------------------------------------------------------------------
scrape_duration_seconds = Histogram(
    "placelink_scrape_duration_seconds",
    "Time spent scraping a single place page",
    buckets=[1, 2, 5, 10, 20, 30, 60],
)
active_browser_pages = Gauge(
    "placelink_active_browser_pages",
    "Number of currently open browser pages",
)
browser_launches_total = Counter(
    "placelink_browser_launches_total",
    "Number of Chromium launches (first use or relaunch after idle close)",
)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
