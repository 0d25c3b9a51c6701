"""Error kinds raised by the recommendation workflow around retrieval."""

from __future__ import annotations


class StylystError(Exception):
    """Base class; ``kind`` is the stable identifier surfaced to API callers."""

    kind = "stylyst-error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_detail(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ConfigurationMissingError(StylystError):
    """No API key (or other required setting) is available."""

    kind = "configuration-missing"


class RemoteCallFailedError(StylystError):
    """The generative model could not be reached or returned an error."""

    kind = "remote-call-failed"


class ResponseMalformedError(StylystError):
    """The generative model answered, but not in the agreed JSON shape."""

    kind = "response-malformed"
