"""Exception hierarchy shared by the Rustizarr services."""
from __future__ import annotations

from typing import Optional


class RustizarrError(Exception):
    """Base class for every error raised by this project."""


class ConfigError(RustizarrError):
    """A mandatory setting is missing or malformed. Fatal at startup."""


class PlexError(RustizarrError):
    """The media server answered with a non-2xx status, unparseable JSON, or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ItemNotFoundError(PlexError):
    """A metadata request succeeded but carried no item."""

    def __init__(self, rating_key: str) -> None:
        super().__init__(f"Plex item {rating_key} not found", status_code=404)
        self.rating_key = rating_key
