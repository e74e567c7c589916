"""Google Maps URL detection and parsing.

Pure functions over strings, no I/O. Handles the URL dialects people paste
or share:
  - https://www.google.com/maps/place/...  (and regional google.<tld>/maps)
  - https://maps.google.com/...
  - https://goo.gl/maps/...               (legacy short links)
  - https://maps.app.goo.gl/...           (current short links)
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Callable
from urllib.parse import unquote_plus, urlparse

from placelink.schemas.place import (
    Coordinates,
    ExtractedUrlSignals,
    MapsUrlClassification,
    MapsUrlDetection,
)

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
# Classification
# ═══════════════════════════════════════════════════════════════════

# "com", or a 2-3 letter code with optional 2-letter second level (co.uk, com.au)
_TLD = r"(?:com|[a-z]{2,3}(?:\.[a-z]{2})?)"

MAPS_URL_PATTERN = re.compile(
    r"(?:https?://)?(?:"
    rf"(?:www\.)?google\.{_TLD}/maps\S*"
    rf"|maps\.google\.{_TLD}\S*"
    r"|goo\.gl/maps/\S*"
    r"|maps\.app\.goo\.gl/\S*"
    r")",
    re.IGNORECASE,
)

SHORT_URL_PATTERN = re.compile(
    r"^https?://(?:goo\.gl/maps/|maps\.app\.goo\.gl/)", re.IGNORECASE
)


def is_google_maps_url(text: str | None) -> bool:
    """Check whether text contains a Google Maps URL anywhere."""
    if not text or not isinstance(text, str):
        return False
    return MAPS_URL_PATTERN.search(text.strip()) is not None


_MAPS_HOST_PATTERN = re.compile(rf"^(?:maps\.google\.{_TLD}|maps\.app\.goo\.gl)$")
_GOOGLE_HOST_PATTERN = re.compile(rf"^(?:www\.)?google\.{_TLD}$")


def is_google_maps_destination(url: str | None) -> bool:
    """Check whether a URL itself is a Google Maps page, judged by its host.

    Unlike is_google_maps_url() this ignores Maps URLs buried in the query
    string: 'https://example.com/?next=google.com/maps' is not a destination.
    """
    if not url or not isinstance(url, str):
        return False
    parsed = urlparse(url.strip())
    if parsed.scheme not in ("http", "https"):
        return False
    host = (parsed.hostname or "").lower()
    if _MAPS_HOST_PATTERN.match(host):
        return True
    if _GOOGLE_HOST_PATTERN.match(host) or host == "goo.gl":
        return parsed.path == "/maps" or parsed.path.startswith("/maps/")
    return False


def extract_google_maps_url(text: str | None) -> str | None:
    """Extract the first Google Maps URL from free text.

    'Look: maps.app.goo.gl/abc123 nice' → 'https://maps.app.goo.gl/abc123'
    """
    if not text or not isinstance(text, str):
        return None
    match = MAPS_URL_PATTERN.search(text)
    if not match:
        return None
    url = match.group(0).strip()
    if not url.lower().startswith(("http://", "https://")):
        url = "https://" + url
    return url


def classify(text: str | None) -> MapsUrlClassification:
    """Classify free text; never raises."""
    url = extract_google_maps_url(text)
    return MapsUrlClassification(is_map_url=url is not None, url=url)


def detect_maps_url(text: str) -> MapsUrlDetection:
    """Like classify(), keeping the original text for callers that echo it back."""
    result = classify(text)
    return MapsUrlDetection(
        is_map_url=result.is_map_url, url=result.url, original_text=text or ""
    )


def is_shortened_maps_url(url: str | None) -> bool:
    """Check whether a URL is a short link that needs expansion."""
    if not url:
        return False
    return SHORT_URL_PATTERN.match(url.strip()) is not None


def is_consent_url(url: str | None) -> bool:
    """Check whether a URL points at Google's cookie-consent interstitial."""
    if not url:
        return False
    host = urlparse(url).netloc.lower()
    return host.startswith("consent.google.") or host.startswith("consent.youtube.")


# ═══════════════════════════════════════════════════════════════════
# Coordinates
# ═══════════════════════════════════════════════════════════════════

_NUM = r"(-?\d+\.?\d*)"

# A !3d/!4d pair closer than this to the @ viewport (either axis, ~11 m)
# is treated as the viewport rather than the place.
VIEWPORT_TOLERANCE = 0.0001

VIEWPORT_PATTERN = re.compile(rf"@{_NUM},{_NUM}")


def is_valid_coordinate(lat: float, lng: float) -> bool:
    """Both finite, lat in [-90, 90], lng in [-180, 180]."""
    try:
        lat = float(lat)
        lng = float(lng)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return -90 <= lat <= 90 and -180 <= lng <= 180


def _to_coordinates(raw_lat: str, raw_lng: str) -> Coordinates | None:
    try:
        lat = float(raw_lat)
        lng = float(raw_lng)
    except ValueError:
        return None
    if not is_valid_coordinate(lat, lng):
        return None
    return Coordinates(lat=lat, lng=lng)


def _pick_first(url: str, pattern: re.Pattern) -> Coordinates | None:
    match = pattern.search(url)
    if not match:
        return None
    return _to_coordinates(match.group(1), match.group(2))


def _pick_place_marker(url: str, pattern: re.Pattern) -> Coordinates | None:
    """Pick the !3d/!4d pair that marks the place rather than the viewport.

    Links often carry several pairs; the first one that differs from the @
    viewport by more than VIEWPORT_TOLERANCE wins. If every pair sits on the
    viewport (or there is no viewport), the first valid pair is used.
    """
    candidates = [
        coords
        for coords in (_to_coordinates(*m.groups()) for m in pattern.finditer(url))
        if coords is not None
    ]
    if not candidates:
        return None

    viewport = VIEWPORT_PATTERN.search(url)
    if viewport:
        view_lat, view_lng = float(viewport.group(1)), float(viewport.group(2))
        for coords in candidates:
            if (
                abs(coords.lat - view_lat) > VIEWPORT_TOLERANCE
                or abs(coords.lng - view_lng) > VIEWPORT_TOLERANCE
            ):
                return coords

    return candidates[0]


@dataclass(frozen=True)
class CoordinateRule:
    name: str
    pattern: re.Pattern
    pick: Callable[[str, re.Pattern], Coordinates | None]


# Strict priority, first valid result wins. @ and center= are usually the
# camera position, so they rank below the explicit place/query forms.
COORDINATE_RULES: tuple[CoordinateRule, ...] = (
    CoordinateRule("place_marker", re.compile(rf"!3d{_NUM}!4d{_NUM}"), _pick_place_marker),
    CoordinateRule("query", re.compile(rf"[?&]q={_NUM},{_NUM}"), _pick_first),
    CoordinateRule("ll", re.compile(rf"[?&]ll={_NUM},{_NUM}"), _pick_first),
    CoordinateRule("viewport", VIEWPORT_PATTERN, _pick_first),
    CoordinateRule("center", re.compile(rf"[?&]center={_NUM},{_NUM}"), _pick_first),
)


def extract_coordinates(url: str | None) -> Coordinates | None:
    """Extract place coordinates from a Google Maps URL.

    '.../@51.50,-0.12,17z/data=!3d51.5007292!4d-0.1268141'
        → Coordinates(lat=51.5007292, lng=-0.1268141)
    """
    if not url or not isinstance(url, str):
        return None
    for rule in COORDINATE_RULES:
        coords = rule.pick(url, rule.pattern)
        if coords is not None:
            logger.debug("Coordinates from %s rule: %s,%s", rule.name, coords.lat, coords.lng)
            return coords
    return None


# ═══════════════════════════════════════════════════════════════════
# Place name
# ═══════════════════════════════════════════════════════════════════

PLACE_SEGMENT_PATTERN = re.compile(r"/place/([^/@?#]+)", re.IGNORECASE)
_NUMERIC_ONLY = re.compile(r"^\d+$")


def decode_place_segment(url: str | None) -> str | None:
    """Return the decoded, trimmed /place/<segment> of a URL, unvalidated."""
    if not url or not isinstance(url, str):
        return None
    match = PLACE_SEGMENT_PATTERN.search(url)
    if not match:
        return None
    return unquote_plus(match.group(1)).strip()


def extract_place_name(url: str | None) -> str | None:
    """Extract the place name from the /place/ path segment.

    '/maps/place/Big+Ben/@51.5,-0.1,17z' → 'Big Ben'
    '/maps/place/12345/...'              → None (numeric noise)
    """
    name = decode_place_segment(url)
    if not name or len(name) < 2 or _NUMERIC_ONLY.match(name):
        return None
    return name


def clean_place_name_for_geocoding(name: str | None) -> str | None:
    """Strip address fragments and category suffixes from a place name.

    'Lina Stores Soho - Italian Restaurant, 51 Greek St' → 'Lina Stores Soho'
    'Noble Rot Soho, 2 Greek St'                         → 'Noble Rot Soho'
    """
    if not name or not isinstance(name, str):
        return None
    clean = name.split(",", 1)[0]
    clean = clean.split(" - ", 1)[0]
    clean = clean.strip()
    return clean or None


def extract_url_signals(url: str) -> ExtractedUrlSignals:
    """Run every URL extractor once and bundle the results."""
    normalized = extract_google_maps_url(url) or url.strip()
    return ExtractedUrlSignals(
        normalized_url=normalized,
        coordinates=extract_coordinates(normalized),
        place_name=extract_place_name(normalized),
    )
