from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class PlaceSource(str, Enum):
    URL_COORDS = "url_coords"
    FORWARD_GEOCODE = "forward_geocode"
    REVERSE_GEOCODE = "reverse_geocode"


class FailureReason(str, Enum):
    NOT_MAPS_URL = "not_maps_url"
    NOT_MAPS_REDIRECT = "not_maps_redirect"
    CONSENT_REQUIRED = "consent_required"
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    SCRAPE_FAILED = "scrape_failed"
    NO_LOCATION = "no_location"


class Coordinates(BaseModel):
    model_config = {"frozen": True}

    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(..., ge=-180, le=180, allow_inf_nan=False)


# ---------------------------------------------------------------------------
# URL analysis
# ---------------------------------------------------------------------------


class MapsUrlClassification(BaseModel):
    is_map_url: bool
    url: str | None = None


class MapsUrlDetection(MapsUrlClassification):
    original_text: str


class ExtractedUrlSignals(BaseModel):
    model_config = {"frozen": True}

    normalized_url: str
    coordinates: Coordinates | None = None
    place_name: str | None = None


class UrlExpansion(BaseModel):
    success: bool
    expanded_url: str | None = None
    reason: FailureReason | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Scraping
# ---------------------------------------------------------------------------


class ScrapedPlaceData(BaseModel):
    # name/address are always present: None means "looked, found nothing"
    name: str | None = None
    address: str | None = None
    rating: str | None = Field(None, description="e.g. '4.5'")
    price_level: str | None = Field(None, description="e.g. '££'")
    phone: str | None = None
    website: str | None = None
    opening_hours: str | None = None


class ScrapeOutcome(BaseModel):
    success: bool
    expanded_url: str | None = None
    data: ScrapedPlaceData | None = None
    reason: FailureReason | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Geocoding
# ---------------------------------------------------------------------------


class PlaceInfo(BaseModel):
    name: str
    address: str
    display_name: str
    lat: float
    lng: float
    place_type: str | None = None
    city: str | None = None
    country: str | None = None

    # Details only a rendered place page provides
    rating: float | None = Field(None, description="1-5 scale")
    opening_hours: str | None = None
    website: str | None = None
    phone: str | None = None

    # Source tracking
    google_maps_url: str | None = None
    url_extracted_name: str | None = Field(
        None, description="Name taken from the /place/ segment, may differ from the geocoded name",
    )


class SmartGeocodeResult(BaseModel):
    name: str
    address: str
    lat: float
    lng: float
    source: PlaceSource
    place_info: PlaceInfo | None = None


# ---------------------------------------------------------------------------
# Pipeline output
# ---------------------------------------------------------------------------


class ResolvedPlace(BaseModel):
    status: Literal["resolved"] = "resolved"
    name: str
    address: str
    lat: float
    lng: float
    source_url: str
    confidence_source: PlaceSource
    place_info: PlaceInfo | None = None
    scraped: ScrapedPlaceData | None = None


class ResolveFailure(BaseModel):
    status: Literal["failed"] = "failed"
    reason: FailureReason
    message: str
    source_url: str | None = None


ResolveResult = Annotated[
    Union[ResolvedPlace, ResolveFailure], Field(discriminator="status")
]


# ---------------------------------------------------------------------------
# API requests
# ---------------------------------------------------------------------------


class ResolveRequest(BaseModel):
    text: str = Field(
        ..., min_length=1, max_length=8192,
        description="Pasted or shared text containing a Google Maps link",
    )
    scrape: bool | None = Field(
        None,
        description="Render the place page for exact name/address/hours (server default if unset)",
    )


class ClassifyRequest(BaseModel):
    text: str = Field(..., max_length=8192)
