"""Exception types for audit worker errors.

Every failure the worker can recover from is one of these. Attempt-level
errors end a single audit attempt and are turned into a FailureRecord by the
runner; request-level errors end a single persistent-mode request and are
turned into an error response by the server. Anything else propagates to the
CLI boundary.
"""

from __future__ import annotations


class BeaconException(Exception):
    """Base class for audit worker errors.

    Attributes:
        message: Human-readable description of the failure.
        url: The URL being processed when the failure happened, if any.
    """

    def __init__(self, message: str, url: str | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable description of the failure.
            url: The URL being processed, if any.
        """
        self.message = message
        self.url = url
        super().__init__(message)


# =============================================================================
# Attempt-level errors
# =============================================================================


class AuditAttemptException(BeaconException):
    """Base class for errors that end one audit attempt.

    A browser handle involved in the attempt is discarded afterwards.
    """


class InvalidURLException(AuditAttemptException):
    """Raised when a URL candidate cannot be audited."""

    def __init__(self, url: str, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Invalid URL: {url} ({reason})", url=url)


class BrowserLaunchException(AuditAttemptException):
    """Raised when the headless browser cannot be started."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Failed to launch browser: {reason}")


class AuditEngineException(AuditAttemptException):
    """Raised when the audit engine returns no usable report.

    Attributes:
        returncode: Engine process exit status, if it ran at all.
        stderr: Tail of the engine's diagnostic output.
    """

    def __init__(
        self,
        message: str,
        url: str,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message, url=url)


# =============================================================================
# Non-fatal errors
# =============================================================================


class FetchException(BeaconException):
    """Raised when the independent HTML fetch fails.

    This never ends an audit attempt: the extractor falls back to whatever
    content the audit engine captured.
    """


# =============================================================================
# Request-level errors (persistent mode)
# =============================================================================


class RequestParseException(BeaconException):
    """Raised when an input line is not a well-formed request."""


class UnknownActionException(BeaconException):
    """Raised when a request names an action the server does not know."""

    def __init__(self, action: str | None) -> None:
        self.action = action
        super().__init__(f"Unknown action: {action or 'none'}")
