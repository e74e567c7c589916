"""Place resolution API.

Endpoints:
  POST /v1/places/resolve  — Google Maps link in free text → place record
  POST /v1/places/classify — detect and normalize a Google Maps link, no I/O
"""

import logging

from fastapi import APIRouter

from placelink.schemas.place import (
    ClassifyRequest,
    MapsUrlDetection,
    ResolveRequest,
    ResolveResult,
)
from placelink.services.maps_url import detect_maps_url
from placelink.services.resolver import resolve_place

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/resolve",
    response_model=ResolveResult,
    summary="Resolve a Google Maps link",
    description=(
        "Find the Google Maps link in the submitted text, expand it if shortened, "
        "and resolve it to a name, address and coordinates. Failures are returned "
        "as a 200 with status 'failed' and a machine-readable reason."
    ),
    response_description="Resolved place, or a failure with its reason",
)
async def resolve(request: ResolveRequest):
    """Resolve the first Google Maps link in the text to a place."""
    result = await resolve_place(request.text, scrape=request.scrape)
    if result.status == "failed":
        logger.info("Resolve failed (%s) for %r", result.reason.value, request.text[:200])
    return result


@router.post(
    "/classify",
    response_model=MapsUrlDetection,
    summary="Detect a Google Maps link",
    description="Report whether the text contains a Google Maps link and return it normalized.",
)
async def classify_text(request: ClassifyRequest):
    return detect_maps_url(request.text)
