"""Turn a pasted Google Maps link into one place record.

Coordinates found in the URL are authoritative. Geocoding fills in the
address around them, or finds coordinates for a bare place name. The
browser is used for short links a HEAD request cannot follow and, when
enabled, for the details only a rendered place page shows.
"""

import logging

from placelink.config import settings
from placelink.core.exceptions import PlaceScrapeError
from placelink.core.metrics import resolve_requests_total
from placelink.schemas.place import (
    Coordinates,
    ExtractedUrlSignals,
    FailureReason,
    PlaceInfo,
    PlaceSource,
    ResolvedPlace,
    ResolveFailure,
    ScrapedPlaceData,
    SmartGeocodeResult,
)
from placelink.services import geocoding, google_maps, redirect
from placelink.services.maps_url import (
    classify,
    clean_place_name_for_geocoding,
    extract_url_signals,
    is_shortened_maps_url,
)

logger = logging.getLogger(__name__)

UNKNOWN_PLACE = "Unknown Place"
NO_ADDRESS = "Address not available"

_FAILURE_MESSAGES = {
    FailureReason.NOT_MAPS_URL: "No Google Maps link found in the text",
    FailureReason.NOT_MAPS_REDIRECT: "The link does not lead to Google Maps",
    FailureReason.CONSENT_REQUIRED: "Google's consent page blocked the link",
    FailureReason.TIMEOUT: "Timed out following the link",
    FailureReason.UNREACHABLE: "Could not reach the link",
    FailureReason.SCRAPE_FAILED: "Could not load the place page",
    FailureReason.NO_LOCATION: "Could not determine a location for this link",
}


async def smart_geocode(
    url_place_name: str | None,
    extracted_coordinates: Coordinates | None,
    google_maps_url: str | None = None,
) -> SmartGeocodeResult | None:
    """Reconcile URL signals with geocoding into one best-effort result.

    With coordinates, the result always uses them, even when reverse
    geocoding finds nothing. With only a name, a forward lookup (retried
    once with the cleaned name) must succeed or the result is None.
    """
    if extracted_coordinates is not None:
        logger.info(
            "Using URL coordinates %s,%s",
            extracted_coordinates.lat,
            extracted_coordinates.lng,
        )
        reverse = await geocoding.reverse_geocode(extracted_coordinates)

        name = url_place_name or (reverse.name if reverse else None) or UNKNOWN_PLACE
        address = reverse.address if reverse and reverse.address else NO_ADDRESS

        place_info = PlaceInfo(
            name=name,
            address=address,
            display_name=reverse.display_name if reverse else address,
            lat=extracted_coordinates.lat,
            lng=extracted_coordinates.lng,
            place_type=reverse.place_type if reverse else None,
            city=reverse.city if reverse else None,
            country=reverse.country if reverse else None,
            google_maps_url=google_maps_url,
            url_extracted_name=url_place_name,
        )
        return SmartGeocodeResult(
            name=name,
            address=address,
            lat=extracted_coordinates.lat,
            lng=extracted_coordinates.lng,
            source=PlaceSource.URL_COORDS,
            place_info=place_info,
        )

    if url_place_name:
        logger.info("Forward geocoding place name: %s", url_place_name)
        found = await geocoding.forward_geocode(url_place_name)

        if found is None:
            cleaned = clean_place_name_for_geocoding(url_place_name)
            if cleaned and cleaned != url_place_name:
                logger.info("Retrying with cleaned name: %s", cleaned)
                found = await geocoding.forward_geocode(cleaned)

        if found is None:
            logger.warning("Could not geocode place name: %s", url_place_name)
            return None

        place_info = found.model_copy(
            update={
                "name": url_place_name,
                "google_maps_url": google_maps_url,
                "url_extracted_name": url_place_name,
            }
        )
        return SmartGeocodeResult(
            name=url_place_name,
            address=found.address,
            lat=found.lat,
            lng=found.lng,
            source=PlaceSource.FORWARD_GEOCODE,
            place_info=place_info,
        )

    logger.warning("Neither coordinates nor a place name to geocode")
    return None


def _fail(reason: FailureReason, source_url: str | None = None, message: str | None = None):
    resolve_requests_total.labels(outcome=reason.value).inc()
    return ResolveFailure(
        reason=reason,
        message=message or _FAILURE_MESSAGES[reason],
        source_url=source_url,
    )


def _parse_rating(rating: str | None) -> float | None:
    if not rating:
        return None
    try:
        return float(rating)
    except ValueError:
        return None


def _merge_scraped(result: SmartGeocodeResult, scraped: ScrapedPlaceData) -> SmartGeocodeResult:
    """Overlay page details on a geocoded result.

    The page's address is more exact than Nominatim's guess at the same
    coordinates, so it wins for url_coords results.
    """
    address = result.address
    if scraped.address and result.source == PlaceSource.URL_COORDS:
        address = scraped.address

    place_info = result.place_info
    if place_info is not None:
        place_info = place_info.model_copy(
            update={
                "address": address,
                "rating": _parse_rating(scraped.rating) or place_info.rating,
                "phone": scraped.phone or place_info.phone,
                "website": scraped.website or place_info.website,
                "opening_hours": scraped.opening_hours or place_info.opening_hours,
            }
        )
    return result.model_copy(update={"address": address, "place_info": place_info})


async def _scrape_details(url: str) -> ScrapedPlaceData | None:
    try:
        return await google_maps.scrape_place(url)
    except PlaceScrapeError as e:
        logger.warning("Scrape failed for %s: %s", url, e)
    except Exception as e:
        # Browser launch failures included; scraping is best-effort here
        logger.warning("Scrape unavailable for %s: %s", url, e)
    return None


async def _expand(url: str) -> tuple[str | None, ScrapedPlaceData | None, FailureReason | None]:
    """Resolve a short link to (expanded_url, scraped, failure_reason)."""
    expansion = await redirect.expand_short_url(url)
    if expansion.success:
        signals = extract_url_signals(expansion.expanded_url)
        if signals.coordinates is not None or signals.place_name:
            return expansion.expanded_url, None, None
        logger.info("Expanded URL carries no place signals, trying the browser")
    elif expansion.reason == FailureReason.NOT_MAPS_REDIRECT:
        return None, None, expansion.reason
    else:
        logger.info("HEAD expansion failed (%s), trying the browser", expansion.reason)

    outcome = await google_maps.expand_and_scrape(url)
    if outcome.success:
        return outcome.expanded_url, outcome.data, None

    # A HEAD redirect that worked still beats a failed browser attempt
    if expansion.success:
        return expansion.expanded_url, None, None
    return None, None, outcome.reason or expansion.reason


async def resolve_place(text: str, *, scrape: bool | None = None) -> ResolvedPlace | ResolveFailure:
    """Resolve free text containing a Google Maps link to a place.

    Never raises; every failure is a ResolveFailure carrying its reason.
    """
    classification = classify(text)
    if not classification.is_map_url:
        return _fail(FailureReason.NOT_MAPS_URL)

    source_url = classification.url
    url = source_url
    scraped: ScrapedPlaceData | None = None

    if is_shortened_maps_url(url):
        url, scraped, reason = await _expand(source_url)
        if reason is not None:
            return _fail(reason, source_url)

    signals: ExtractedUrlSignals = extract_url_signals(url)
    logger.info(
        "URL signals: coordinates=%s name=%r",
        signals.coordinates,
        signals.place_name,
    )

    want_details = settings.SCRAPE_PLACE_DETAILS if scrape is None else scrape
    has_signals = signals.coordinates is not None or bool(signals.place_name)
    if scraped is None and (want_details or not has_signals):
        scraped = await _scrape_details(signals.normalized_url)

    name = signals.place_name or (scraped.name if scraped else None)
    result = await smart_geocode(name, signals.coordinates, signals.normalized_url)

    if result is None and scraped is not None and scraped.address:
        logger.info("Geocoding scraped address: %s", scraped.address)
        found = await geocoding.forward_geocode(scraped.address)
        if found is not None:
            display_name = scraped.name or found.name
            result = SmartGeocodeResult(
                name=display_name,
                address=scraped.address,
                lat=found.lat,
                lng=found.lng,
                source=PlaceSource.FORWARD_GEOCODE,
                place_info=found.model_copy(
                    update={
                        "name": display_name,
                        "address": scraped.address,
                        "google_maps_url": signals.normalized_url,
                    }
                ),
            )

    if result is None:
        return _fail(FailureReason.NO_LOCATION, source_url)

    if scraped is not None:
        result = _merge_scraped(result, scraped)

    resolve_requests_total.labels(outcome=result.source.value).inc()
    logger.info(
        "Resolved %s -> %r (%s,%s) via %s",
        source_url,
        result.name,
        result.lat,
        result.lng,
        result.source.value,
    )
    return ResolvedPlace(
        name=result.name,
        address=result.address,
        lat=result.lat,
        lng=result.lng,
        source_url=signals.normalized_url,
        confidence_source=result.source,
        place_info=result.place_info,
        scraped=scraped,
    )
