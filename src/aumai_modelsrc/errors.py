"""Exception types for aumai-modelsrc."""

from __future__ import annotations

__all__ = [
    "AnchorNotFoundError",
    "DecodeError",
    "FetchFailedError",
    "InvalidReferenceError",
    "ModelSourceError",
    "RecipeIOError",
    "TransportError",
    "UnexpectedStatusError",
]


class ModelSourceError(Exception):
    """Base class for every failure surfaced by aumai-modelsrc."""


class InvalidReferenceError(ModelSourceError):
    """The model reference could not be interpreted."""


class FetchFailedError(ModelSourceError):
    """The manifest could not be retrieved from the registry."""

    def __init__(self, message: str, url: str) -> None:
        super().__init__(message)
        self.url = url


class TransportError(FetchFailedError):
    """Connection-level failure, including expiry of the request deadline."""

    def __init__(self, message: str, url: str, timed_out: bool = False) -> None:
        super().__init__(message, url)
        self.timed_out = timed_out


class UnexpectedStatusError(FetchFailedError):
    """The registry answered with something other than 200 OK."""

    def __init__(self, url: str, status_code: int, status_text: str) -> None:
        super().__init__(f"failed to fetch manifest: {status_text}", url)
        self.status_code = status_code
        self.status_text = status_text


class DecodeError(ModelSourceError):
    """The manifest body is not valid JSON or does not fit the manifest shape."""


class AnchorNotFoundError(ModelSourceError):
    """The recipe text has no ``<key>=(...)`` array to rewrite."""

    def __init__(self, key: str, detail: str = "not found") -> None:
        super().__init__(f"array {key}=(...) {detail}")
        self.key = key


class RecipeIOError(ModelSourceError):
    """Reading or writing the recipe file failed."""

    def __init__(self, path: str, action: str, reason: str) -> None:
        super().__init__(f"failed to {action} {path}: {reason}")
        self.path = path
