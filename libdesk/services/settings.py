"""Library policy settings.

Settings live in the ``settings`` table as text and are read through a
process-wide cache. Writes commit first and then invalidate the cache before
returning, so the next policy snapshot always sees the new value.

Services never read individual settings; they take a :class:`Policy`
snapshot built once per operation.
"""

import logging
import threading
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from libdesk.core.database import transactional
from libdesk.core.errors import ValidationError
from libdesk.models.models import Setting

logger = logging.getLogger("libdesk.settings")

DEFAULTS: Dict[str, Dict[str, str]] = {
    "max_books_per_student": {
        "value": "3",
        "type": "integer",
        "max": "100",
        "description": "Maximum number of books a student can borrow at once",
    },
    "borrowing_period": {
        "value": "7",
        "type": "integer",
        "max": "365",
        "description": "Number of days a student can keep a borrowed book",
    },
    "fine_per_day": {
        "value": "5.00",
        "type": "decimal",
        "max": "1000.00",
        "description": "Fine amount per day for overdue books",
    },
    "grace_period": {
        "value": "1",
        "type": "integer",
        "max": "365",
        "description": "Number of days before fines start accumulating",
    },
}

_MISSING = object()


def coerce(key: str, raw: Any) -> Any:
    """Convert a stored or submitted value to the type declared for ``key``."""
    meta = DEFAULTS.get(key, {})
    kind = meta.get("type")
    try:
        if kind == "integer":
            value = int(str(raw).strip())
            if not 0 <= value <= int(meta["max"]):
                raise ValueError(raw)
            return value
        if kind == "decimal":
            value = Decimal(str(raw).strip())
            if not value.is_finite() or not 0 <= value <= Decimal(meta["max"]):
                raise ValueError(raw)
            return value.quantize(Decimal("0.01"))
    except (ValueError, InvalidOperation):
        raise ValidationError(f"Invalid value for setting {key!r}: {raw!r}", key=key, value=str(raw))
    return raw


class SettingsProvider:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory
        self._cache: Dict[str, Optional[str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = _MISSING) -> Any:
        with self._lock:
            if key in self._cache:
                raw = self._cache[key]
            else:
                db = self._session_factory()
                try:
                    row = db.query(Setting).filter(Setting.key == key).first()
                    raw = row.value if row else None
                finally:
                    db.close()
                self._cache[key] = raw
        if raw is None:
            if default is not _MISSING:
                return default
            if key not in DEFAULTS:
                return None
            raw = DEFAULTS[key]["value"]
        return coerce(key, raw)

    def set(self, key: str, value: Any) -> Any:
        if key not in DEFAULTS:
            raise ValidationError(f"Unknown setting {key!r}", key=key)
        typed = coerce(key, value)
        db = self._session_factory()
        try:
            with transactional(db):
                row = db.query(Setting).filter(Setting.key == key).first()
                if row is None:
                    row = Setting(key=key, description=DEFAULTS[key]["description"])
                    db.add(row)
                row.value = str(typed)
        finally:
            db.close()
        self.invalidate(key)
        logger.info(f"Setting {key} changed to {typed}")
        return typed

    def invalidate(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._cache.clear()
            else:
                self._cache.pop(key, None)

    def reset_defaults(self) -> None:
        for key, meta in DEFAULTS.items():
            self.set(key, meta["value"])

    def all(self) -> Dict[str, Any]:
        return {key: self.get(key) for key in DEFAULTS}


@dataclass(frozen=True)
class Policy:
    max_books_per_student: int = 3
    borrowing_period: int = 7
    fine_per_day: Decimal = Decimal("5.00")
    grace_period: int = 1

    @classmethod
    def from_settings(cls, provider: SettingsProvider) -> "Policy":
        return cls(
            max_books_per_student=provider.get("max_books_per_student"),
            borrowing_period=provider.get("borrowing_period"),
            fine_per_day=provider.get("fine_per_day"),
            grace_period=provider.get("grace_period"),
        )
