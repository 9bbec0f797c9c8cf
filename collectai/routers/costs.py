from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from collectai.models.schemas import CostLimits, CostReportResponse
from collectai.services.cost_tracker import CostTracker
from collectai.dependencies import get_cost_tracker

router = APIRouter(prefix="/admin/ai", tags=["costs"])


@router.get("/costs", response_model=CostReportResponse)
async def get_cost_report(
    organization_id: str = Query(...),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    model: Optional[str] = Query(default=None),
    interaction_type: Optional[str] = Query(default=None),
    group_by: str = Query(default="day"),
    limit: int = Query(default=100),
    cost_tracker: CostTracker = Depends(get_cost_tracker),
):
    return await cost_tracker.aggregate_costs(
        organization_id,
        start=start_date,
        end=end_date,
        group_by=group_by,
        model_filter=model,
        type_filter=interaction_type,
        limit=limit,
    )


@router.get("/cost-limits", response_model=CostLimits)
async def get_cost_limits(
    organization_id: str = Query(...),
    cost_tracker: CostTracker = Depends(get_cost_tracker),
):
    return await cost_tracker.get_cost_limits(organization_id)


@router.put("/cost-limits", response_model=CostLimits)
async def update_cost_limits(
    limits: CostLimits,
    organization_id: str = Query(...),
    cost_tracker: CostTracker = Depends(get_cost_tracker),
):
    return await cost_tracker.set_cost_limits(organization_id, limits)
