"""Short-link expansion via plain HTTP redirects.

The cheap strategy: a HEAD request that follows redirects, no JavaScript.
When the destination relies on a client-side redirect or a consent wall,
callers fall back to the browser (google_maps.expand_and_scrape).
"""

import logging

import httpx

from placelink.config import settings
from placelink.core.metrics import redirect_expansions_total
from placelink.schemas.place import FailureReason, UrlExpansion
from placelink.services.maps_url import (
    is_consent_url,
    is_google_maps_destination,
    is_shortened_maps_url,
)

logger = logging.getLogger(__name__)

_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "en-US,en;q=0.9",
}


def _build_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=settings.REDIRECT_TIMEOUT,
        follow_redirects=True,
        headers=_HEADERS,
    )


def _failure(reason: FailureReason, error: str) -> UrlExpansion:
    redirect_expansions_total.labels(status=reason.value).inc()
    return UrlExpansion(success=False, reason=reason, error=error)


async def expand_short_url(short_url: str) -> UrlExpansion:
    """Expand a goo.gl/maps or maps.app.goo.gl link.

    Non-shortened URLs come back unchanged. A redirect that lands outside
    Google Maps is a NOT_MAPS_REDIRECT failure, never a URL.
    """
    if not short_url or not isinstance(short_url, str):
        return _failure(FailureReason.NOT_MAPS_URL, "Invalid URL")

    if not is_shortened_maps_url(short_url):
        return UrlExpansion(success=True, expanded_url=short_url)

    logger.info("Expanding short link: %s", short_url)
    try:
        async with _build_client() as client:
            resp = await client.head(short_url)
    except httpx.TimeoutException as e:
        logger.warning("Short link expansion timed out for %s: %s", short_url, e)
        return _failure(FailureReason.TIMEOUT, f"Timed out expanding {short_url}")
    except httpx.HTTPError as e:
        logger.warning("Short link expansion failed for %s: %s", short_url, e)
        return _failure(FailureReason.UNREACHABLE, str(e) or "Failed to expand URL")

    expanded_url = str(resp.url)
    logger.info("Expanded %s -> %s", short_url, expanded_url)

    if is_consent_url(expanded_url):
        return _failure(
            FailureReason.CONSENT_REQUIRED,
            "Redirect landed on the consent page; a browser is required",
        )

    if not is_google_maps_destination(expanded_url):
        return _failure(
            FailureReason.NOT_MAPS_REDIRECT, "Redirect did not lead to Google Maps"
        )

    redirect_expansions_total.labels(status="success").inc()
    return UrlExpansion(success=True, expanded_url=expanded_url)
