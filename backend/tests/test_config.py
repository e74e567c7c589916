"""Tests for placelink.config settings loading."""

from placelink.config import Settings, _FALLBACK_NOMINATIM_UA


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("NOMINATIM_MIN_INTERVAL", raising=False)
        s = Settings(_env_file=None)
        assert s.NOMINATIM_MIN_INTERVAL == 1.0
        assert s.NOMINATIM_BASE_URL == "https://nominatim.openstreetmap.org"
        assert s.SCRAPE_NAVIGATION_TIMEOUT == 30000

    def test_missing_user_agent_falls_back(self, monkeypatch):
        monkeypatch.setenv("NOMINATIM_USER_AGENT", "")
        s = Settings(_env_file=None)
        assert s.NOMINATIM_USER_AGENT == _FALLBACK_NOMINATIM_UA

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("NOMINATIM_USER_AGENT", "TripBoard/2.0 (ops@example.org)")
        monkeypatch.setenv("BROWSER_IDLE_TIMEOUT", "15")
        monkeypatch.setenv("BROWSER_CONSTRAINED_ENV", "true")
        s = Settings(_env_file=None)
        assert s.NOMINATIM_USER_AGENT == "TripBoard/2.0 (ops@example.org)"
        assert s.BROWSER_IDLE_TIMEOUT == 15.0
        assert s.BROWSER_CONSTRAINED_ENV is True
