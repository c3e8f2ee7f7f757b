from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import Any, Generator, Optional

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlmodel import Session

from ..errors import ConflictError, StoreUnavailableError, ValidationError

logger = logging.getLogger(__name__)


class Repository:
    """
    Shared plumbing for the per-entity accessors.

    Every public method opens its own short-lived Session (one unit of work)
    and translates driver errors into the project's error taxonomy:
      - IntegrityError            -> ConflictError
      - OperationalError / lost   -> StoreUnavailableError
    """

    conflict_message = "Record already exists"

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        try:
            with Session(self.engine, expire_on_commit=False) as session:
                yield session
        except IntegrityError as e:
            logger.info("%s: integrity violation: %s", type(self).__name__, e.orig)
            raise ConflictError(self.conflict_message) from e
        except OperationalError as e:
            logger.error("%s: store unavailable: %s", type(self).__name__, e.orig)
            raise StoreUnavailableError("Database is unavailable") from e
        except DBAPIError as e:
            if e.connection_invalidated:
                raise StoreUnavailableError("Database connection lost") from e
            raise


# -----------------------------
# Input normalization helpers
# -----------------------------

_PHONE_RE = re.compile(r"^\+[1-9]\d{1,14}$")


def clean_text(
    value: Any,
    field: str,
    *,
    min_len: int = 1,
    max_len: Optional[int] = None,
) -> str:
    """Trim and length-check a required text field."""
    s = ("" if value is None else str(value)).strip()
    if not s:
        raise ValidationError(f"{field} is required")
    if len(s) < min_len:
        raise ValidationError(f"{field} must be at least {min_len} characters")
    if max_len is not None and len(s) > max_len:
        raise ValidationError(f"{field} cannot exceed {max_len} characters")
    return s


def clean_optional(value: Any, *, max_len: Optional[int] = None) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    if max_len is not None and len(s) > max_len:
        s = s[:max_len]
    return s


def normalize_email(value: Any) -> str:
    """Syntax check through email-validator. Stored lower-cased so uniqueness is case-insensitive."""
    s = ("" if value is None else str(value)).strip()
    try:
        checked = validate_email(s, check_deliverability=False)
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email format: {e}") from e
    return checked.normalized.lower()


def normalize_phone(value: Any) -> Optional[str]:
    s = clean_optional(value)
    if s is None:
        return None
    if not _PHONE_RE.match(s):
        raise ValidationError("Invalid phone format (E.164 required)")
    return s


def clamp_page(limit: int, offset: int, *, max_limit: int = 1000) -> tuple[int, int]:
    if limit < 1:
        limit = 1
    if limit > max_limit:
        limit = max_limit
    if offset < 0:
        offset = 0
    return limit, offset
