"""
Heuristics over email conversation threads.

Two health labels live here: ``analyze_thread`` scores a single thread for
its detail view, ``calculate_conversation_health`` labels rows in thread
listings. They use different rules.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, Optional

from collectai.models.database_models import CommunicationLog, parse_timestamp, utc_now

SENTIMENT_SCORES = {"positive": 1, "neutral": 0, "negative": -1, "hostile": -2}

STALE_AFTER = timedelta(hours=24)


@dataclass
class ThreadAnalysis:
    message_count: int = 0
    conversation_health: str = "unknown"
    response_pattern: str = "no_data"
    engagement_level: str = "none"
    sentiment_trend: str = "neutral"
    average_response_time_hours: Optional[float] = None
    requires_attention: bool = False
    last_interaction: Optional[str] = None
    sentiment_distribution: dict = field(
        default_factory=lambda: {s: 0 for s in SENTIMENT_SCORES}
    )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ConversationThread:
    thread_id: str
    latest_message: CommunicationLog
    case: Optional[dict] = None
    debtor: Optional[dict] = None
    message_count: int = 1
    has_unread: bool = False
    last_direction: Optional[str] = None
    sentiment_trend: list = field(default_factory=list)
    conversation_health: str = "fair"

    def to_dict(self) -> dict:
        return asdict(self)


def _is_stale(message: CommunicationLog, now: datetime) -> bool:
    sent = parse_timestamp(message.sent_at)
    return sent is not None and sent < now - STALE_AFTER


def calculate_response_pattern(directions: list[str]) -> str:
    if len(directions) < 2:
        return "insufficient_data"

    inbound = directions.count("inbound")
    outbound = directions.count("outbound")

    if inbound == 0:
        return "one_way_outbound"
    if outbound == 0:
        return "one_way_inbound"

    ratio = inbound / outbound
    if ratio > 1.5:
        return "customer_heavy"
    if ratio < 0.5:
        return "business_heavy"
    return "balanced"


def _engagement_level(count: int) -> str:
    if count >= 5:
        return "high"
    if count >= 3:
        return "medium"
    if count >= 1:
        return "low"
    return "none"


def _response_times_hours(messages: list[CommunicationLog]) -> list[float]:
    """Delay of each outbound reply that directly follows an inbound message."""
    times = []
    for previous, current in zip(messages, messages[1:]):
        if previous.direction != "inbound" or current.direction != "outbound":
            continue
        asked = parse_timestamp(previous.sent_at)
        answered = parse_timestamp(current.sent_at)
        if asked is None or answered is None:
            continue
        times.append((answered - asked).total_seconds() / 3600)
    return times


def analyze_thread(
    messages: list[CommunicationLog],
    now: Optional[datetime] = None,
) -> ThreadAnalysis:
    """Detailed health read of one thread.

    ``messages`` must be sorted oldest first; response times are measured
    between adjacent messages.
    """
    if not messages:
        return ThreadAnalysis()

    now = now or utc_now()
    sentiments = [m.ai_sentiment for m in messages if m.ai_sentiment]
    directions = [m.direction for m in messages]

    score = (
        sum(SENTIMENT_SCORES.get(s, 0) for s in sentiments) / len(sentiments)
        if sentiments else 0.0
    )

    if score > 0:
        health = "good"
    elif score < -0.5:
        health = "poor"
    else:
        health = "fair"

    if score > 0.5:
        trend = "positive"
    elif score < -0.5:
        trend = "negative"
    else:
        trend = "neutral"

    last = messages[-1]
    requires_attention = (
        "hostile" in sentiments
        or "negative" in sentiments
        or any(m.ai_flags for m in messages)
        or (last.direction == "inbound" and _is_stale(last, now))
    )

    response_times = _response_times_hours(messages)

    return ThreadAnalysis(
        message_count=len(messages),
        conversation_health=health,
        response_pattern=calculate_response_pattern(directions),
        engagement_level=_engagement_level(len(messages)),
        sentiment_trend=trend,
        average_response_time_hours=(
            sum(response_times) / len(response_times) if response_times else None
        ),
        requires_attention=requires_attention,
        last_interaction=last.sent_at,
        sentiment_distribution={s: sentiments.count(s) for s in SENTIMENT_SCORES},
    )


def calculate_conversation_health(
    thread: ConversationThread,
    now: Optional[datetime] = None,
) -> str:
    """Quick health label for thread listings."""
    now = now or utc_now()
    trend = [s for s in thread.sentiment_trend if s]

    if "hostile" in trend:
        return "poor"
    if "negative" in trend and thread.last_direction == "inbound":
        return "concerning"
    if thread.last_direction == "inbound" and _is_stale(thread.latest_message, now):
        return "needs_attention"
    if "positive" in trend and thread.message_count > 2:
        return "good"
    return "fair"


def _message_time(message: CommunicationLog) -> Optional[datetime]:
    return parse_timestamp(message.sent_at) or parse_timestamp(message.created_at)


def _is_newer(candidate: CommunicationLog, current: CommunicationLog) -> bool:
    candidate_time = _message_time(candidate)
    current_time = _message_time(current)
    if candidate_time is None:
        return False
    return current_time is None or candidate_time > current_time


def summarize_threads(
    messages: Iterable[CommunicationLog],
    limit: int = 50,
    related: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> list[ConversationThread]:
    """Group messages by thread id into listing rows, newest thread first.

    ``related`` maps a message id to ``{"case": ..., "debtor": ...}`` for
    enriching each thread with the records of its first-seen message.
    """
    now = now or utc_now()
    related = related or {}
    threads: dict[str, ConversationThread] = {}

    for message in messages:
        if not message.thread_id:
            continue
        thread = threads.get(message.thread_id)
        if thread is None:
            extra = related.get(message.id, {})
            threads[message.thread_id] = ConversationThread(
                thread_id=message.thread_id,
                case=extra.get("case"),
                debtor=extra.get("debtor"),
                latest_message=message,
                last_direction=message.direction,
                sentiment_trend=[message.ai_sentiment] if message.ai_sentiment else [],
            )
            continue

        thread.message_count += 1
        if message.ai_sentiment:
            thread.sentiment_trend.append(message.ai_sentiment)
        if _is_newer(message, thread.latest_message):
            thread.latest_message = message
            thread.last_direction = message.direction

    ordered = sorted(
        threads.values(),
        key=lambda t: (_message_time(t.latest_message) is not None,
                       _message_time(t.latest_message) or now),
        reverse=True,
    )[:limit]

    for thread in ordered:
        thread.conversation_health = calculate_conversation_health(thread, now)
    return ordered
