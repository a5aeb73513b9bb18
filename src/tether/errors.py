"""Exceptions raised for programming errors.

Validation rejections and transport failures are not exceptions: the first
is a False return, the second goes through the error callback or the
model's "error" event.
"""


class TetherError(Exception):
    """Base class for tether errors."""


class SyncError(TetherError):
    """No sync bridge configured, or an unknown CRUD verb."""


class UrlError(TetherError):
    """A model's URL cannot be derived."""
