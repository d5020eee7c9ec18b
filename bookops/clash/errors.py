"""Exceptions raised by clash detection and resolution."""


class ClashResolutionError(Exception):
    """Base class for every failure to resolve a clash."""


class ResolutionPreconditionError(ClashResolutionError):
    """The request was rejected before any write (missing rationale, bad target)."""


class ResolutionWriteError(ClashResolutionError):
    """One or more account updates failed; the transaction was rolled back."""

    def __init__(self, message: str = "Failed to resolve clash") -> None:
        super().__init__(message)


class ClashNotFoundError(ClashResolutionError):
    """No clash exists for the account among the caller's visible builds."""


class ResolutionNotPermittedError(ClashResolutionError):
    """The caller's role does not allow resolving clashes in a member build's region."""


class BuildNotFoundError(ClashResolutionError):
    """The build does not exist or is outside the caller's regions."""
