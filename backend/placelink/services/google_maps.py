"""Google Maps place-page scraper.

Strategy: render the place page in the shared headless Chromium (Google Maps
needs JavaScript; consent walls need a click), then parse the rendered HTML
with BeautifulSoup. Field extraction is table driven: each field has an
ordered list of (selector, validator) rules and the first rule whose text
passes its validator wins, so new fallbacks are added as data.

Entry points:
  - scrape_place(url)            — exact name/address/rating/hours for a URL
  - expand_and_scrape(short_url) — follow a short link in the browser, verify
                                   it landed on Google Maps, then scrape
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from placelink.config import settings
from placelink.core.exceptions import PlaceScrapeError
from placelink.core.metrics import scrape_duration_seconds
from placelink.schemas.place import FailureReason, ScrapedPlaceData, ScrapeOutcome
from placelink.services.browser import browser_session
from placelink.services.maps_url import (
    decode_place_segment,
    is_consent_url,
    is_google_maps_destination,
)

logger = logging.getLogger(__name__)

SCRAPER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Pre-accepted consent; avoids the interstitial in most regions
CONSENT_COOKIE = {
    "name": "CONSENT",
    "value": "YES+cb.20210720-07-p0.en+FX+410",
    "domain": ".google.com",
    "path": "/",
}


# ═══════════════════════════════════════════════════════════════════
# Content validators
# ═══════════════════════════════════════════════════════════════════

_ROAD_WORDS = re.compile(r"street|road|lane|ave|blvd", re.IGNORECASE)
_RATING_SHAPE = re.compile(r"^\d\.\d$")
_CURRENCY = re.compile(r"[$€£¥₹₩]")


def looks_like_address(text: str) -> bool:
    """Digit, a road-type word, or a comma (city, region)."""
    return bool(re.search(r"\d", text) or _ROAD_WORDS.search(text) or "," in text)


def has_address_shape(text: str) -> bool:
    """Stricter check for text not taken from an address element."""
    return bool(re.search(r"\d", text) or "," in text)


def looks_like_rating(text: str) -> bool:
    return bool(_RATING_SHAPE.match(text))


def looks_like_price(text: str) -> bool:
    return bool(_CURRENCY.search(text)) and len(text) <= 20


def _any_text(text: str) -> bool:
    return bool(text)


# ═══════════════════════════════════════════════════════════════════
# Selector tables
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class FieldRule:
    selector: str
    validator: Callable[[str], bool] = _any_text
    attribute: str | None = None  # read this attribute instead of the text


NAME_RULES: tuple[FieldRule, ...] = (
    FieldRule("h1.DUwDvf"),
    FieldRule("div[role='main'] h1"),
    FieldRule("h1"),
)

ADDRESS_RULES: tuple[FieldRule, ...] = (
    FieldRule('button[data-item-id="address"]', looks_like_address),
    FieldRule('[data-item-id="address"]', looks_like_address),
    FieldRule('div[data-section-id="ad"] button', looks_like_address),
    FieldRule('button[aria-label*="Address"]', looks_like_address),
    FieldRule('button[aria-label*="address"]', looks_like_address),
    FieldRule('[data-tooltip*="address" i]', looks_like_address),
)

RATING_RULES: tuple[FieldRule, ...] = (
    FieldRule('div.F7nice span[aria-hidden="true"]', looks_like_rating),
    FieldRule('span[aria-hidden="true"]', looks_like_rating),
)

PRICE_RULES: tuple[FieldRule, ...] = (
    FieldRule('span[aria-label^="Price"]', looks_like_price),
)

PHONE_RULES: tuple[FieldRule, ...] = (
    FieldRule('button[data-item-id^="phone"]'),
)

WEBSITE_RULES: tuple[FieldRule, ...] = (
    FieldRule('a[data-item-id="authority"]', attribute="href"),
)

HOURS_RULES: tuple[FieldRule, ...] = (
    FieldRule('button[data-item-id^="oh"]'),
    FieldRule('[data-item-id="oh"]', attribute="aria-label"),
)

ADDRESS_WAIT_SELECTOR = (
    'button[data-item-id="address"], [data-item-id="address"], '
    'div[data-section-id="ad"] button'
)

CONSENT_INDICATOR_SELECTORS = (
    'form[action*="consent"]',
    "#L2AGLb",  # Google's "Accept all" button
    'button[aria-label*="Accept"]',
    'button[aria-label*="Agree"]',
    "[data-ved] button",
)

CONSENT_INDICATOR_TEXT = ("before you continue", "accept all", "consent")

CONSENT_BUTTON_SELECTORS = (
    "#L2AGLb",
    'button[aria-label*="Accept all"]',
    'button[aria-label*="Accept"]',
    'button[aria-label*="Agree"]',
    'form[action*="consent"] button[type="submit"]',
    'form[action*="consent"] button',
)

CONSENT_BUTTON_WORDS = ("accept", "agree")


# ═══════════════════════════════════════════════════════════════════
# HTML parsing
# ═══════════════════════════════════════════════════════════════════


def _strip_icons(text: str) -> str:
    """Strip Google icon font characters (Unicode Private Use Area)."""
    return re.sub(r"[\ue000-\uf8ff]", "", text).strip()


def _element_text(el) -> str:
    return " ".join(_strip_icons(el.get_text(" ", strip=True)).split())


def _first_match(soup: BeautifulSoup, rules: tuple[FieldRule, ...]) -> str | None:
    for rule in rules:
        try:
            el = soup.select_one(rule.selector)
        except Exception as e:  # soupsieve rejects some selectors
            logger.debug("Selector %r failed: %s", rule.selector, e)
            continue
        if el is None:
            continue
        if rule.attribute:
            value = (el.get(rule.attribute) or "").strip()
        else:
            value = _element_text(el)
        if value and rule.validator(value):
            return value
    return None


def _address_from_aria_labels(soup: BeautifulSoup) -> str | None:
    """Fallback: buttons labelled 'Address: 51 Greek St, London'."""
    for btn in soup.select("button[aria-label]"):
        label = btn.get("aria-label", "")
        if "address:" in label.lower():
            address = _strip_icons(re.sub(r"^\s*address:\s*", "", label, flags=re.I))
            if address:
                return address
    return None


def parse_place_html(html: str) -> ScrapedPlaceData:
    """Extract place fields from a rendered place page."""
    soup = BeautifulSoup(html, "lxml")
    return ScrapedPlaceData(
        name=_first_match(soup, NAME_RULES),
        address=_first_match(soup, ADDRESS_RULES) or _address_from_aria_labels(soup),
        rating=_first_match(soup, RATING_RULES),
        price_level=_first_match(soup, PRICE_RULES),
        phone=_first_match(soup, PHONE_RULES),
        website=_first_match(soup, WEBSITE_RULES),
        opening_hours=_first_match(soup, HOURS_RULES),
    )


def address_from_url(url: str) -> str | None:
    """Use the /place/ segment as an address when it looks like one.

    '/place/10+Downing+St,+London/' → '10 Downing St, London'
    '/place/Big+Ben/'               → None
    """
    segment = decode_place_segment(url)
    if segment and has_address_shape(segment):
        return segment
    return None


def detect_consent_wall(html: str) -> bool:
    """Check rendered HTML for a consent form (inline or interstitial)."""
    soup = BeautifulSoup(html, "lxml")
    for selector in CONSENT_INDICATOR_SELECTORS:
        if soup.select_one(selector) is not None:
            return True
    body = soup.body
    text = body.get_text(" ", strip=True).lower() if body else ""
    return any(marker in text for marker in CONSENT_INDICATOR_TEXT)


# ═══════════════════════════════════════════════════════════════════
# Browser steps
# ═══════════════════════════════════════════════════════════════════


async def _find_consent_button(page: Page):
    for selector in CONSENT_BUTTON_SELECTORS:
        handle = await page.query_selector(selector)
        if handle is not None:
            logger.debug("Consent button found via %s", selector)
            return handle

    for handle in await page.query_selector_all("button"):
        text = (await handle.text_content() or "").lower()
        label = (await handle.get_attribute("aria-label") or "").lower()
        if any(word in text or word in label for word in CONSENT_BUTTON_WORDS):
            return handle
    return None


async def handle_consent_page(page: Page) -> bool:
    """Click through a consent wall if one is showing.

    Returns True when an accept control was clicked. The follow-up
    navigation is waited for but a timeout there is tolerated.
    """
    if not is_consent_url(page.url):
        try:
            html = await page.content()
        except PlaywrightError:
            return False
        if not detect_consent_wall(html):
            return False

    logger.info("Handling consent page: %s", page.url)
    try:
        button = await _find_consent_button(page)
        if button is None:
            logger.info("Consent wall detected but no accept control found")
            return False
        try:
            async with page.expect_navigation(
                wait_until="networkidle",
                timeout=settings.SCRAPE_CONSENT_NAVIGATION_TIMEOUT,
            ):
                await button.click()
        except PlaywrightTimeoutError:
            logger.info("Navigation after consent timed out, continuing")
        return True
    except PlaywrightError as e:
        logger.info("Consent handling error: %s", e)
        return False


async def _load_place_page(page: Page, url: str):
    """Primary navigation; failures here are fatal for the call."""
    try:
        await page.goto(
            url, wait_until="networkidle", timeout=settings.SCRAPE_NAVIGATION_TIMEOUT
        )
    except PlaywrightTimeoutError as e:
        raise PlaceScrapeError(
            f"Navigation timed out after {settings.SCRAPE_NAVIGATION_TIMEOUT}ms",
            url,
            timed_out=True,
        ) from e
    except PlaywrightError as e:
        raise PlaceScrapeError(f"Navigation failed: {e}", url) from e

    await handle_consent_page(page)


async def _wait_for_place_content(page: Page):
    """Secondary waits; each timeout is tolerated."""
    try:
        await page.wait_for_selector("h1", timeout=settings.SCRAPE_HEADING_TIMEOUT)
    except PlaywrightTimeoutError:
        logger.info("Heading not found within timeout, continuing")

    await asyncio.sleep(settings.SCRAPE_SETTLE_DELAY)

    try:
        await page.wait_for_selector(
            ADDRESS_WAIT_SELECTOR, timeout=settings.SCRAPE_ADDRESS_TIMEOUT
        )
    except PlaywrightTimeoutError:
        logger.info("Address selector not found within timeout, continuing")


async def _extract_place_data(page: Page) -> ScrapedPlaceData:
    final_url = page.url
    logger.debug("Final URL after load: %s", final_url)
    data = parse_place_html(await page.content())
    if not data.address:
        url_address = address_from_url(final_url)
        if url_address:
            logger.info("Address taken from URL path: %s", url_address)
            data = data.model_copy(update={"address": url_address})
    return data


# ═══════════════════════════════════════════════════════════════════
# Public entry points
# ═══════════════════════════════════════════════════════════════════


async def scrape_place(url: str) -> ScrapedPlaceData:
    """Scrape exact place details from a Google Maps URL.

    Raises PlaceScrapeError when the page cannot be loaded. Browser launch
    errors propagate unchanged.
    """
    logger.info("Scraping place page: %s", url)
    started = time.monotonic()
    try:
        async with browser_session.acquire_page(
            user_agent=SCRAPER_USER_AGENT, cookies=[CONSENT_COOKIE]
        ) as page:
            await _load_place_page(page, url)
            await _wait_for_place_content(page)
            try:
                data = await _extract_place_data(page)
            except PlaywrightError as e:
                raise PlaceScrapeError(f"Extraction failed: {e}", url) from e
    finally:
        scrape_duration_seconds.observe(time.monotonic() - started)

    logger.info("Scraped %s: name=%r address=%r", url, data.name, data.address)
    return data


async def expand_and_scrape(short_url: str) -> ScrapeOutcome:
    """Follow a short link in the browser and scrape where it lands.

    Never raises; failures come back as ScrapeOutcome(success=False).
    """
    logger.info("Expanding in browser: %s", short_url)
    started = time.monotonic()
    try:
        async with browser_session.acquire_page(
            user_agent=SCRAPER_USER_AGENT, cookies=[CONSENT_COOKIE]
        ) as page:
            await _load_place_page(page, short_url)

            landed_url = page.url
            if is_consent_url(landed_url):
                return ScrapeOutcome(
                    success=False,
                    reason=FailureReason.CONSENT_REQUIRED,
                    error="Could not get past the consent page",
                )
            if not is_google_maps_destination(landed_url):
                logger.warning("Short link %s led to %s", short_url, landed_url)
                return ScrapeOutcome(
                    success=False,
                    reason=FailureReason.NOT_MAPS_REDIRECT,
                    error="Redirect did not lead to Google Maps",
                )

            await _wait_for_place_content(page)
            data = await _extract_place_data(page)
            # Maps rewrites the URL (adding @lat,lng and data=) once rendered
            expanded_url = page.url if is_google_maps_destination(page.url) else landed_url
    except PlaceScrapeError as e:
        logger.warning("Browser expansion failed for %s: %s", short_url, e)
        return ScrapeOutcome(
            success=False,
            reason=FailureReason.TIMEOUT if e.timed_out else FailureReason.SCRAPE_FAILED,
            error=str(e),
        )
    except Exception as e:
        logger.warning("Browser expansion failed for %s: %s", short_url, e)
        return ScrapeOutcome(
            success=False,
            reason=FailureReason.SCRAPE_FAILED,
            error=str(e) or "Scraping failed",
        )
    finally:
        scrape_duration_seconds.observe(time.monotonic() - started)

    logger.info("Expanded URL: %s", expanded_url)
    return ScrapeOutcome(success=True, expanded_url=expanded_url, data=data)
