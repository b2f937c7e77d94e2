from __future__ import annotations


class LookupFailure(Exception):
    """Base class for failures of an external lookup provider."""

    outcome = "error"

    def __init__(self, message: str = "", *, source: str = "") -> None:
        super().__init__(message or self.outcome)
        self.source = source


class LookupTimeout(LookupFailure):
    """The provider did not answer within its slot budget."""

    outcome = "timeout"


class LookupUnavailable(LookupFailure):
    """Network failure, non-success status, or an undecodable body."""

    outcome = "unavailable"


class LookupMalformed(LookupFailure):
    """The provider answered, but not in the shape we expect."""

    outcome = "malformed"
