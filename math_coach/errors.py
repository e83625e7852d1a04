from __future__ import annotations


class MathCoachError(Exception):
    """Base class for errors raised by math_coach."""


class ValidationError(MathCoachError, ValueError):
    """Caller misuse: bad input that must not be partially applied."""


class NotFoundError(MathCoachError, LookupError):
    """Missing record, or a record the requester may not see.

    Access failures are reported as not-found so callers cannot probe for the
    existence of other students' tasks.
    """


class AuthorizationError(MathCoachError, PermissionError):
    """The requester is known but not allowed to perform the action."""
