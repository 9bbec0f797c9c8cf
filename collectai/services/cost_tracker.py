import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

from collectai.config import Settings
from collectai.database import get_db
from collectai.exceptions import ValidationError
from collectai.models.database_models import (
    AIInteraction,
    parse_timestamp,
    to_timestamp,
    utc_now,
)
from collectai.models.schemas import CostLimits
from collectai.services.cost_analytics import GROUP_BY_OPTIONS, build_cost_report
from collectai.services.providers.base import estimate_cost

logger = logging.getLogger(__name__)

DEFAULT_RANGE_DAYS = 30


class CostTracker:
    def __init__(self, settings: Settings):
        self._pricing = settings.pricing_config
        self._default_limits = settings.default_cost_limits

    def _get_model_pricing(self, model_id: str) -> dict:
        """Look up pricing for a model across all providers."""
        for provider, models in self._pricing.items():
            if model_id in models:
                return models[model_id]
        return {}

    def calculate_generation_cost(self, model_id: str, tokens: int) -> float:
        """Estimated USD cost of a generation; 0.0 for unpriced models."""
        return round(estimate_cost(tokens, self._get_model_pricing(model_id)), 8)

    async def log_interaction(
        self,
        organization_id: str,
        interaction_type: str,
        model_used: str,
        prompt: str = "",
        response: str = "",
        case_id: str | None = None,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
        total_tokens: int = 0,
        cost_usd: float = 0.0,
        performance_metrics: dict | None = None,
        created_at: datetime | None = None,
    ) -> str:
        """Persist one AI interaction record."""
        interaction_id = str(uuid.uuid4())
        if not total_tokens:
            total_tokens = prompt_tokens + completion_tokens
        async with get_db() as db:
            await db.execute(
                """INSERT INTO ai_interactions
                   (id, organization_id, case_id, interaction_type, prompt,
                    response, model_used, prompt_tokens, completion_tokens,
                    total_tokens, cost_usd, performance_metrics, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (interaction_id, organization_id, case_id, interaction_type,
                 prompt, response, model_used, prompt_tokens, completion_tokens,
                 total_tokens, cost_usd, json.dumps(performance_metrics or {}),
                 to_timestamp(created_at or utc_now())),
            )
            await db.commit()
        return interaction_id

    async def fetch_interactions(
        self,
        organization_id: str,
        start: datetime,
        end: datetime,
        model: str | None = None,
        interaction_type: str | None = None,
        limit: int = 100,
    ) -> list[AIInteraction]:
        """Interactions in [start, end], newest first."""
        query = (
            "SELECT * FROM ai_interactions "
            "WHERE organization_id = ? AND created_at >= ? AND created_at <= ?"
        )
        params: list = [organization_id, to_timestamp(start), to_timestamp(end)]
        if model:
            query += " AND model_used = ?"
            params.append(model)
        if interaction_type:
            query += " AND interaction_type = ?"
            params.append(interaction_type)
        query += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        async with get_db() as db:
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
        return [AIInteraction.from_row(dict(r)) for r in rows]

    async def get_cost_limits(self, organization_id: str) -> CostLimits:
        """Saved limits for the organization, or the configured defaults."""
        async with get_db() as db:
            cursor = await db.execute(
                "SELECT value FROM system_settings "
                "WHERE organization_id = ? AND category = 'ai' AND key = 'cost_limits'",
                (organization_id,),
            )
            row = await cursor.fetchone()
        if row:
            try:
                return CostLimits(**{**self._default_limits, **json.loads(row["value"])})
            except ValueError:
                logger.warning(
                    "Ignoring unreadable cost limits for organization %s", organization_id
                )
        return CostLimits(**self._default_limits)

    async def set_cost_limits(self, organization_id: str, limits: CostLimits) -> CostLimits:
        async with get_db() as db:
            await db.execute(
                """INSERT INTO system_settings (organization_id, category, key, value)
                   VALUES (?, 'ai', 'cost_limits', ?)
                   ON CONFLICT (organization_id, category, key) DO UPDATE SET
                   value = excluded.value,
                   updated_at = strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now')""",
                (organization_id, limits.model_dump_json()),
            )
            await db.commit()
        logger.info("Updated cost limits for organization %s", organization_id)
        return limits

    async def aggregate_costs(
        self,
        organization_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        group_by: str = "day",
        model_filter: str | None = None,
        type_filter: str | None = None,
        limit: int = 100,
        now: Optional[datetime] = None,
    ) -> dict:
        """Grouped analytics, usage vs. limits, model metrics and alerts."""
        if group_by not in GROUP_BY_OPTIONS:
            raise ValidationError(f"Unsupported group_by: {group_by}")
        if limit <= 0:
            raise ValidationError("limit must be positive")

        now = now or utc_now()
        start = parse_timestamp(start)
        end = parse_timestamp(end) or now
        start = start or end - timedelta(days=DEFAULT_RANGE_DAYS)
        if start > end:
            raise ValidationError("start_date must not be after end_date")

        interactions = await self.fetch_interactions(
            organization_id, start, end,
            model=model_filter, interaction_type=type_filter, limit=limit,
        )
        limits = await self.get_cost_limits(organization_id)
        return build_cost_report(
            organization_id, interactions, limits, group_by, start, end, now=now,
        )
