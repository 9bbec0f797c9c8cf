"""
Spend analytics over AI interaction records.

Everything here is a pure fold over already-fetched rows: grouping into
time/model/type buckets, usage against an organization's limits, threshold
alerts and per-model metrics. Bad rows degrade to neutral values instead of
aborting a report. All calendar bucketing is UTC.
"""

from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from collectai.exceptions import ValidationError
from collectai.models.database_models import AIInteraction, parse_timestamp, utc_now
from collectai.models.schemas import CostLimits

GROUP_BY_OPTIONS = ("day", "week", "month", "model", "type")

UNKNOWN = "unknown"


def round_money(value: float, places: str = "0.01") -> float:
    """Round half-up, so rounding an already-rounded value is a no-op."""
    return float(Decimal(str(value)).quantize(Decimal(places), rounding=ROUND_HALF_UP))


def group_key(interaction: AIInteraction, group_by: str) -> str:
    if group_by == "model":
        return interaction.model_used or UNKNOWN
    if group_by == "type":
        return interaction.interaction_type or UNKNOWN

    created = parse_timestamp(interaction.created_at)
    if created is None:
        return UNKNOWN
    if group_by == "day":
        return created.date().isoformat()
    if group_by == "week":
        # Weeks start on Sunday; weekday() is 0 for Monday.
        days_since_sunday = (created.weekday() + 1) % 7
        return (created.date() - timedelta(days=days_since_sunday)).isoformat()
    if group_by == "month":
        return f"{created.year:04d}-{created.month:02d}"
    raise ValidationError(f"Unsupported group_by: {group_by}")


def group_interactions(interactions: Iterable[AIInteraction], group_by: str) -> list[dict]:
    """Bucket interactions and total cost, count and tokens per bucket."""
    if group_by not in GROUP_BY_OPTIONS:
        raise ValidationError(
            f"Unsupported group_by: {group_by}",
            details={"allowed": list(GROUP_BY_OPTIONS)},
        )

    grouped: dict[str, dict] = {}
    for interaction in interactions:
        key = group_key(interaction, group_by)
        group = grouped.setdefault(key, {
            "key": key,
            "cost": 0.0,
            "interactions": 0,
            "tokens": {"prompt": 0, "completion": 0, "total": 0},
            "models": {},
            "types": {},
        })
        group["cost"] += interaction.cost_usd
        group["interactions"] += 1
        group["tokens"]["prompt"] += interaction.prompt_tokens
        group["tokens"]["completion"] += interaction.completion_tokens
        group["tokens"]["total"] += interaction.total_tokens

        model = interaction.model_used or UNKNOWN
        kind = interaction.interaction_type or UNKNOWN
        group["models"][model] = group["models"].get(model, 0) + 1
        group["types"][kind] = group["types"].get(kind, 0) + 1

    result = []
    for group in grouped.values():
        result.append({
            **group,
            "cost": round_money(group["cost"]),
            "avg_cost_per_interaction": (
                round_money(group["cost"] / group["interactions"])
                if group["interactions"] else 0.0
            ),
        })
    return sorted(result, key=lambda g: g["key"])


def _usage_bucket(spent: float, limit: float) -> dict:
    percentage = round_money(spent / limit * 100) if limit > 0 else 0.0
    return {
        "spent": round_money(spent),
        "limit": limit,
        "percentage": percentage,
        "remaining": round_money(limit - spent),
    }


def compute_usage(
    interactions: Iterable[AIInteraction],
    limits: CostLimits,
    now: datetime,
) -> dict:
    """Spend for the current UTC month and day against the configured limits."""
    today = now.date()
    monthly_spend = 0.0
    daily_spend = 0.0
    for interaction in interactions:
        created = parse_timestamp(interaction.created_at)
        if created is None:
            continue
        if created.year == now.year and created.month == now.month:
            monthly_spend += interaction.cost_usd
        if created.date() == today:
            daily_spend += interaction.cost_usd

    return {
        "monthly": _usage_bucket(monthly_spend, limits.monthly_limit_usd),
        "daily": _usage_bucket(daily_spend, limits.daily_limit_usd),
        "alert_threshold": limits.alert_threshold_percent,
    }


def _fmt(value: float) -> str:
    return f"{value:g}"


def generate_alerts(usage: dict, limits: CostLimits) -> list[dict]:
    """Threshold and budget alerts. Rules are independent; all matches are returned."""
    alerts = []
    monthly = usage["monthly"]
    daily = usage["daily"]

    if monthly["percentage"] >= limits.alert_threshold_percent:
        alerts.append({
            "type": "warning",
            "level": "high" if monthly["percentage"] >= 95 else "medium",
            "message": (
                f"Monthly AI spend is at {_fmt(monthly['percentage'])}% of limit "
                f"(${_fmt(monthly['spent'])}/${_fmt(monthly['limit'])})"
            ),
            "category": "monthly_limit",
        })

    if daily["percentage"] >= limits.alert_threshold_percent:
        alerts.append({
            "type": "warning",
            "level": "high" if daily["percentage"] >= 95 else "medium",
            "message": (
                f"Daily AI spend is at {_fmt(daily['percentage'])}% of limit "
                f"(${_fmt(daily['spent'])}/${_fmt(daily['limit'])})"
            ),
            "category": "daily_limit",
        })

    if monthly["percentage"] >= 100:
        alerts.append({
            "type": "error",
            "level": "critical",
            "message": (
                f"Monthly AI budget exceeded! ${_fmt(monthly['spent'])} spent "
                f"(limit: ${_fmt(monthly['limit'])})"
            ),
            "category": "budget_exceeded",
        })

    if daily["percentage"] >= 100:
        alerts.append({
            "type": "error",
            "level": "critical",
            "message": (
                f"Daily AI budget exceeded! ${_fmt(daily['spent'])} spent "
                f"(limit: ${_fmt(daily['limit'])})"
            ),
            "category": "budget_exceeded",
        })

    return alerts


def calculate_model_metrics(interactions: Iterable[AIInteraction]) -> list[dict]:
    """Per-model cost efficiency, most expensive model first."""
    models: dict[str, dict] = {}
    last_seen: dict[str, datetime] = {}

    for interaction in interactions:
        name = interaction.model_used or UNKNOWN
        model = models.setdefault(name, {
            "name": name,
            "total_cost": 0.0,
            "total_interactions": 0,
            "total_tokens": 0,
            "avg_cost_per_interaction": 0.0,
            "avg_cost_per_token": 0.0,
            "performance_score": 0.0,
            "last_used": None,
        })
        model["total_cost"] += interaction.cost_usd
        model["total_interactions"] += 1
        model["total_tokens"] += interaction.total_tokens

        created = parse_timestamp(interaction.created_at)
        if created is not None and (name not in last_seen or created > last_seen[name]):
            last_seen[name] = created
            model["last_used"] = interaction.created_at

    result = []
    for model in models.values():
        if model["total_interactions"]:
            model["avg_cost_per_interaction"] = round_money(
                model["total_cost"] / model["total_interactions"]
            )
        if model["total_tokens"]:
            model["avg_cost_per_token"] = round_money(
                model["total_cost"] / model["total_tokens"], "0.000001"
            )
            # 0-100, higher is cheaper per token.
            model["performance_score"] = max(
                0.0, 100 - model["avg_cost_per_token"] * 100000
            )
        model["total_cost"] = round_money(model["total_cost"])
        result.append(model)

    return sorted(result, key=lambda m: m["total_cost"], reverse=True)


def build_cost_report(
    organization_id: str,
    interactions: list[AIInteraction],
    limits: CostLimits,
    group_by: str,
    start: datetime,
    end: datetime,
    now: Optional[datetime] = None,
) -> dict:
    now = now or utc_now()
    usage = compute_usage(interactions, limits, now)
    return {
        "organization_id": organization_id,
        "period": {
            "start": start.isoformat(),
            "end": end.isoformat(),
            "group_by": group_by,
        },
        "analytics": group_interactions(interactions, group_by),
        "usage": usage,
        "model_metrics": calculate_model_metrics(interactions),
        "total_interactions": len(interactions),
        "alerts": generate_alerts(usage, limits),
    }
