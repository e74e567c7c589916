class PlaceLinkError(Exception):
    """Base class for errors raised inside the resolution pipeline."""


class PlaceScrapeError(PlaceLinkError):
    """A place page could not be loaded (primary navigation failed or timed out)."""

    def __init__(self, message: str, url: str, timed_out: bool = False):
        super().__init__(message)
        self.url = url
        self.timed_out = timed_out
