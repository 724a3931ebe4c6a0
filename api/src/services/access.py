"""Access gate: one boolean deciding whether a user may use paid features."""

from collections.abc import Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from src.models import ACCESS_STATUSES, SubscriptionRecord


def _parse_period_end(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def can_access(
    record: SubscriptionRecord | Mapping[str, Any] | None,
    now: datetime | None = None,
) -> bool:
    """Evaluate a subscription snapshot against the current time.

    ``trialing`` is accepted alongside ``active`` for rows written before
    statuses were normalized. A missing or unparseable period end never
    expires; a parseable one in the past denies access even while the status
    still reads active.
    """
    if record is None:
        return False

    if isinstance(record, SubscriptionRecord):
        status = record.status
        period_end = record.current_period_end
    else:
        status = record.get("status")
        period_end = record.get("current_period_end")

    if isinstance(status, Enum):
        status = status.value
    if str(status or "").lower() not in ACCESS_STATUSES:
        return False

    end = _parse_period_end(period_end)
    if end is None:
        return True

    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return not end < now
