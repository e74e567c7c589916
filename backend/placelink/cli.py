"""CLI for PlaceLink — resolve Google Maps links from the terminal.

Usage:
    python -m placelink.cli resolve "Dinner here https://maps.app.goo.gl/abc123"
    python -m placelink.cli resolve https://goo.gl/maps/abc123 --scrape
    python -m placelink.cli classify "see maps.google.com/?q=51.5,-0.12"
    python -m placelink.cli extract "https://www.google.com/maps/place/Big+Ben/@51.5,-0.12,17z"
    python -m placelink.cli scrape "https://www.google.com/maps/place/Big+Ben/..."
    python -m placelink.cli geocode "Big Ben, London"
    python -m placelink.cli geocode --reverse 51.5007 -0.1246
    python -m placelink.cli serve --host 0.0.0.0 --port 8000
"""

import argparse
import asyncio
import json
import logging
import sys


def _setup_logging(verbose: bool = False):
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _print(model) -> None:
    if model is None:
        print("null")
        return
    print(json.dumps(model.model_dump(mode="json", exclude_none=True), indent=2, ensure_ascii=False))


async def _cmd_resolve(args) -> int:
    """Resolve text containing a Google Maps link."""
    from placelink.services.browser import browser_session
    from placelink.services.resolver import resolve_place

    try:
        result = await resolve_place(args.text, scrape=args.scrape)
    finally:
        await browser_session.shutdown()

    _print(result)
    return 0 if result.status == "resolved" else 1


async def _cmd_classify(args) -> int:
    from placelink.services.maps_url import detect_maps_url

    result = detect_maps_url(args.text)
    _print(result)
    return 0 if result.is_map_url else 1


async def _cmd_extract(args) -> int:
    """Show the coordinates and place name carried by a URL, no network."""
    from placelink.services.maps_url import extract_url_signals

    _print(extract_url_signals(args.url))
    return 0


async def _cmd_scrape(args) -> int:
    """Render a place page and print what it shows."""
    from placelink.core.exceptions import PlaceScrapeError
    from placelink.services.browser import browser_session
    from placelink.services.google_maps import expand_and_scrape, scrape_place
    from placelink.services.maps_url import is_shortened_maps_url

    try:
        if is_shortened_maps_url(args.url):
            outcome = await expand_and_scrape(args.url)
            _print(outcome)
            return 0 if outcome.success else 1
        try:
            data = await scrape_place(args.url)
        except PlaceScrapeError as e:
            print(f"[ERROR] {e}", file=sys.stderr)
            return 1
        except Exception as e:
            # Browser launch failures (missing Chromium, sandbox errors)
            print(f"[ERROR] Browser unavailable: {e}", file=sys.stderr)
            return 1
        _print(data)
        return 0
    finally:
        await browser_session.shutdown()


async def _cmd_geocode(args) -> int:
    from placelink.schemas.place import Coordinates
    from placelink.services.geocoding import forward_geocode, reverse_geocode

    if args.reverse:
        if len(args.query) != 2:
            print("[ERROR] --reverse takes LAT LNG", file=sys.stderr)
            return 2
        try:
            coords = Coordinates(lat=float(args.query[0]), lng=float(args.query[1]))
        except ValueError as e:
            print(f"[ERROR] Invalid coordinates: {e}", file=sys.stderr)
            return 2
        place = await reverse_geocode(coords)
    else:
        place = await forward_geocode(" ".join(args.query))

    _print(place)
    return 0 if place is not None else 1


def _serve(args) -> int:
    """Run the HTTP API under uvicorn."""
    import uvicorn

    uvicorn.run(
        "placelink.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=None,
    )
    return 0


_COMMANDS = {
    "resolve": _cmd_resolve,
    "classify": _cmd_classify,
    "extract": _cmd_extract,
    "scrape": _cmd_scrape,
    "geocode": _cmd_geocode,
}


def main():
    parser = argparse.ArgumentParser(
        prog="placelink",
        description="PlaceLink CLI — turn Google Maps links into place records",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # --- resolve ---
    resolve_parser = subparsers.add_parser("resolve", help="Resolve text with a Maps link to a place")
    resolve_parser.add_argument("text", help="Text containing a Google Maps link")
    scrape_group = resolve_parser.add_mutually_exclusive_group()
    scrape_group.add_argument(
        "--scrape", dest="scrape", action="store_true", default=None,
        help="Render the place page for exact details",
    )
    scrape_group.add_argument(
        "--no-scrape", dest="scrape", action="store_false",
        help="Use only the URL and geocoding",
    )

    # --- classify ---
    classify_parser = subparsers.add_parser("classify", help="Detect a Google Maps link in text")
    classify_parser.add_argument("text", help="Free text")

    # --- extract ---
    extract_parser = subparsers.add_parser("extract", help="Extract coordinates and name from a URL")
    extract_parser.add_argument("url", help="Google Maps URL")

    # --- scrape ---
    scrape_parser = subparsers.add_parser("scrape", help="Scrape a place page in the browser")
    scrape_parser.add_argument("url", help="Google Maps place URL or short link")

    # --- geocode ---
    geocode_parser = subparsers.add_parser("geocode", help="Query Nominatim")
    geocode_parser.add_argument("query", nargs="+", help="Address or place name, or LAT LNG with --reverse")
    geocode_parser.add_argument("--reverse", action="store_true", help="Reverse geocode LAT LNG")

    # --- serve ---
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "serve":
        # The app configures its own logging from settings
        sys.exit(_serve(args))

    _setup_logging(args.verbose)

    sys.exit(asyncio.run(_COMMANDS[args.command](args)))


if __name__ == "__main__":
    main()
