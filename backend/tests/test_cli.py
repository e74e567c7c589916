"""Tests for the placelink command-line interface."""

import json
from unittest.mock import AsyncMock, patch

import pytest

from placelink import cli
from placelink.schemas.place import FailureReason, ResolveFailure


def _run(monkeypatch, *argv) -> int:
    monkeypatch.setattr("sys.argv", ["placelink", *argv])
    with pytest.raises(SystemExit) as exc_info:
        cli.main()
    return exc_info.value.code


class TestCli:
    def test_classify(self, monkeypatch, capsys):
        code = _run(monkeypatch, "classify", "go to maps.app.goo.gl/abc")
        out = json.loads(capsys.readouterr().out)
        assert code == 0
        assert out["url"] == "https://maps.app.goo.gl/abc"

    def test_classify_negative(self, monkeypatch, capsys):
        code = _run(monkeypatch, "classify", "nothing here")
        assert code == 1
        assert json.loads(capsys.readouterr().out)["is_map_url"] is False

    def test_extract(self, monkeypatch, capsys):
        code = _run(
            monkeypatch,
            "extract",
            "https://www.google.com/maps/place/Big+Ben/@51.5007292,-0.1246254,17z",
        )
        out = json.loads(capsys.readouterr().out)
        assert code == 0
        assert out["place_name"] == "Big Ben"
        assert out["coordinates"] == {"lat": 51.5007292, "lng": -0.1246254}

    def test_resolve_failure_exit_code(self, monkeypatch, capsys):
        failure = ResolveFailure(reason=FailureReason.NO_LOCATION, message="nope")
        with (
            patch("placelink.services.resolver.resolve_place", AsyncMock(return_value=failure)),
            patch("placelink.services.browser.browser_session.shutdown", AsyncMock()),
        ):
            code = _run(monkeypatch, "resolve", "https://maps.google.com/?q=x", "--no-scrape")

        assert code == 1
        assert json.loads(capsys.readouterr().out)["reason"] == "no_location"

    def test_reverse_geocode_needs_two_numbers(self, monkeypatch, capsys):
        code = _run(monkeypatch, "geocode", "--reverse", "51.5")
        assert code == 2

    def test_reverse_geocode_accepts_negative_longitude(self, monkeypatch, capsys):
        reverse = AsyncMock(return_value=None)
        with patch("placelink.services.geocoding.reverse_geocode", reverse):
            code = _run(monkeypatch, "geocode", "--reverse", "51.5", "-0.12")

        assert code == 1
        coords = reverse.await_args.args[0]
        assert (coords.lat, coords.lng) == (51.5, -0.12)

    def test_no_command_prints_help(self, monkeypatch, capsys):
        assert _run(monkeypatch) == 1

    def test_scrape_browser_launch_failure_exits_one(self, monkeypatch, capsys):
        launch_error = RuntimeError("Executable doesn't exist at /ms-playwright/chromium")
        shutdown = AsyncMock()
        with (
            patch("placelink.services.google_maps.scrape_place", AsyncMock(side_effect=launch_error)),
            patch("placelink.services.browser.browser_session.shutdown", shutdown),
        ):
            code = _run(monkeypatch, "scrape", "https://www.google.com/maps/place/Big+Ben")

        assert code == 1
        assert "Executable doesn't exist" in capsys.readouterr().err
        shutdown.assert_awaited_once()

    def test_serve_runs_uvicorn(self, monkeypatch):
        with patch("uvicorn.run") as run:
            code = _run(monkeypatch, "serve", "--host", "0.0.0.0", "--port", "9000")

        assert code == 0
        run.assert_called_once()
        assert run.call_args.args == ("placelink.main:app",)
        assert run.call_args.kwargs["host"] == "0.0.0.0"
        assert run.call_args.kwargs["port"] == 9000
        assert run.call_args.kwargs["reload"] is False
