import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_timestamp(value: datetime) -> str:
    """Serialize a datetime the way rows store it (UTC, second precision)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="seconds")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp into an aware UTC datetime.

    Naive values are taken as UTC. Returns None for anything unparsable so a
    single bad row cannot break a report.
    """
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
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _as_float(value: Any) -> float:
    try:
        number = float(value or 0.0)
    except (TypeError, ValueError, OverflowError):
        return 0.0
    # NaN and infinity would poison sums and break JSON encoding
    if not math.isfinite(number):
        return 0.0
    return max(number, 0.0)


def _as_int(value: Any) -> int:
    return int(_as_float(value))


def _as_json(value: Any, default):
    if isinstance(value, (list, dict)):
        return value
    if isinstance(value, str) and value:
        try:
            return json.loads(value)
        except ValueError:
            return default
    return default


@dataclass
class AIInteraction:
    organization_id: str
    interaction_type: Optional[str] = None
    model_used: Optional[str] = None
    case_id: Optional[str] = None
    prompt: str = ""
    response: str = ""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0
    created_at: str = ""
    performance_metrics: dict = field(default_factory=dict)
    id: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "AIInteraction":
        """Build from a database row, defaulting anything missing or corrupt."""
        prompt_tokens = _as_int(row.get("prompt_tokens"))
        completion_tokens = _as_int(row.get("completion_tokens"))
        total_tokens = _as_int(row.get("total_tokens"))
        if not total_tokens and (prompt_tokens or completion_tokens):
            total_tokens = prompt_tokens + completion_tokens
        elif (prompt_tokens or completion_tokens) and total_tokens != prompt_tokens + completion_tokens:
            logger.debug(
                "Interaction %s: total_tokens %d != %d + %d",
                row.get("id"), total_tokens, prompt_tokens, completion_tokens,
            )
        return cls(
            id=row.get("id"),
            organization_id=row.get("organization_id") or "",
            case_id=row.get("case_id"),
            interaction_type=row.get("interaction_type") or None,
            model_used=row.get("model_used") or None,
            prompt=row.get("prompt") or "",
            response=row.get("response") or "",
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens,
            cost_usd=_as_float(row.get("cost_usd")),
            created_at=row.get("created_at") or "",
            performance_metrics=_as_json(row.get("performance_metrics"), {}),
        )


@dataclass
class CommunicationLog:
    direction: str
    sent_at: Optional[str] = None
    ai_sentiment: Optional[str] = None
    ai_flags: list = field(default_factory=list)
    thread_id: Optional[str] = None
    organization_id: str = ""
    case_id: Optional[str] = None
    debtor_id: Optional[str] = None
    type: str = "email"
    subject: str = ""
    content: str = ""
    from_email: Optional[str] = None
    to_email: Optional[str] = None
    ai_summary: Optional[str] = None
    delivery_status: Optional[str] = None
    created_at: str = ""
    id: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "CommunicationLog":
        return cls(
            id=row.get("id"),
            organization_id=row.get("organization_id") or "",
            case_id=row.get("case_id"),
            debtor_id=row.get("debtor_id"),
            type=row.get("type") or "email",
            direction=row.get("direction") or "",
            subject=row.get("subject") or "",
            content=row.get("content") or "",
            from_email=row.get("from_email"),
            to_email=row.get("to_email"),
            thread_id=row.get("thread_id"),
            ai_sentiment=row.get("ai_sentiment") or None,
            ai_summary=row.get("ai_summary"),
            ai_flags=_as_json(row.get("ai_flags"), []),
            delivery_status=row.get("delivery_status"),
            sent_at=row.get("sent_at"),
            created_at=row.get("created_at") or "",
        )
