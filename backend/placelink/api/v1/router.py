from fastapi import APIRouter

from placelink.api.v1 import places

api_router = APIRouter(prefix="/v1")

api_router.include_router(places.router, prefix="/places", tags=["Places"])
