"""Failure taxonomy for the inbox sync and relay core."""

from __future__ import annotations


class InboxError(RuntimeError):
    """Base class for all inbox sync failures."""


class NotAuthenticated(InboxError):
    """No session credential was found in the browser context."""

    def __init__(self, message: str = "not authenticated"):
        super().__init__(message)


class CredentialExpired(InboxError):
    """The session credential decoded fine but its expiry is in the past."""

    def __init__(self, expires_at=None):
        self.expires_at = expires_at
        suffix = f" (expired at {expires_at.isoformat()})" if expires_at else ""
        super().__init__(f"Session credential expired{suffix}; log in again")


class NoTargetContext(InboxError):
    """No authenticated tab for the target domain is open."""


class EndpointFailure(InboxError):
    """A single candidate endpoint failed; the resolver moves on to the next."""

    def __init__(self, candidate: str, reason: str, status: int | None = None):
        self.candidate = candidate
        self.reason = reason
        self.status = status
        super().__init__(f"{candidate}: {reason}")


class SessionLikelyExpired(EndpointFailure):
    """A 2xx response carried a markup document (login page) instead of JSON."""

    def __init__(self, candidate: str, status: int | None = None):
        super().__init__(
            candidate,
            "Got HTML instead of JSON - session expired?",
            status=status,
        )


class AllEndpointsFailed(InboxError):
    """Every candidate for an operation failed."""

    def __init__(self, operation: str, failures: list[EndpointFailure]):
        self.operation = operation
        self.failures = list(failures)
        last = self.last_error
        detail = str(last) if last else "no candidates"
        super().__init__(f"All endpoints failed for {operation}: {detail}")

    @property
    def session_expired(self) -> bool:
        """True when at least one candidate was bounced to a login page."""
        return any(isinstance(f, SessionLikelyExpired) for f in self.failures)

    @property
    def last_error(self) -> EndpointFailure | None:
        """The most specific failure: the last login redirect, else the last failure."""
        for failure in reversed(self.failures):
            if isinstance(failure, SessionLikelyExpired):
                return failure
        return self.failures[-1] if self.failures else None
