from __future__ import annotations


class MembershipError(Exception):
    """
    Base for every error the data-access and API layers raise on purpose.

    status_code is what the app-level exception handler renders; the message
    becomes the {"detail": ...} body.
    """

    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ValidationError(MembershipError):
    """Malformed or missing input."""

    status_code = 400


class AuthorizationError(MembershipError):
    """Caller lacks the role (or ownership) the operation needs."""

    status_code = 403


class NotAuthenticatedError(AuthorizationError):
    """No usable acting member on the request."""

    status_code = 401


class NotFoundError(MembershipError):
    status_code = 404

    def __init__(self, entity: str, ident: object = None) -> None:
        msg = f"{entity} not found" if ident is None else f"{entity} {ident} not found"
        super().__init__(msg)
        self.entity = entity
        self.ident = ident


class ConflictError(MembershipError):
    """Uniqueness violation (duplicate email, duplicate RSVP, ...)."""

    status_code = 409


class StoreUnavailableError(MembershipError):
    """The relational store could not be reached."""

    status_code = 503


class ImmutableRecordError(MembershipError):
    """Write attempted against an append-only record (audit log)."""

    status_code = 405
