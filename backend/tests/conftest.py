import pytest
from httpx import ASGITransport, AsyncClient

from placelink.main import app


@pytest.fixture
async def client():
    """HTTP client wired straight to the ASGI app (no server, no lifespan)."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
