import logging
import sqlite3

from fastapi import APIRouter, Depends, HTTPException

from collectai.exceptions import DataParseError
from collectai.models.database_models import to_timestamp, utc_now
from collectai.models.schemas import (
    CaseCreate, CommunicationCreate, DebtorCreate, StrategyRequest,
)
from collectai.services.case_service import CaseService
from collectai.services.communication_service import CommunicationService
from collectai.services.cost_tracker import CostTracker
from collectai.services.model_router import ModelRouter
from collectai.services.prompts import (
    build_strategy_prompt,
    default_strategy,
    next_action_due,
    validate_ai_response,
)
from collectai.services.providers.base import GenerationOptions
from collectai.dependencies import (
    get_case_service, get_communication_service,
    get_cost_tracker, get_model_router,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["cases"])


@router.post("/debtors", status_code=201)
async def create_debtor(
    debtor: DebtorCreate,
    case_service: CaseService = Depends(get_case_service),
):
    return await case_service.create_debtor(debtor)


@router.post("/cases", status_code=201)
async def create_case(
    case: CaseCreate,
    case_service: CaseService = Depends(get_case_service),
):
    try:
        return await case_service.create_case(case)
    except sqlite3.IntegrityError:
        raise HTTPException(status_code=404, detail="Debtor not found")


@router.get("/cases/{case_id}")
async def get_case(
    case_id: str,
    case_service: CaseService = Depends(get_case_service),
):
    case = await case_service.get_case(case_id)
    if not case:
        raise HTTPException(status_code=404, detail="Case not found")
    return case


@router.post("/cases/{case_id}/strategy")
async def generate_strategy(
    case_id: str,
    request: StrategyRequest,
    case_service: CaseService = Depends(get_case_service),
    comm_service: CommunicationService = Depends(get_communication_service),
    model_router: ModelRouter = Depends(get_model_router),
    cost_tracker: CostTracker = Depends(get_cost_tracker),
):
    """Generate a collection strategy for a case, or return the stored one."""
    case = await case_service.get_case(case_id)
    if not case:
        raise HTTPException(status_code=404, detail="Case not found")
    if case.get("ai_strategy") and not request.force_regenerate:
        return {
            "strategy": case["ai_strategy"],
            "generated_at": case["strategy_generated_at"],
            "next_action_due": case["next_action_due"],
            "regenerated": False,
        }

    debtor = case.get("debtor") or {}
    communications = await comm_service.get_case_communications(
        case["organization_id"], case_id
    )
    prompt = build_strategy_prompt(
        request.strategy_type, case, debtor, communications, request.context_notes
    )
    complexity = "negotiation" if request.strategy_type == "negotiation" else "complex"
    result = await model_router.route_and_generate(
        complexity,
        prompt,
        {"case": case, "debtor": debtor, "priority": case.get("priority")},
        GenerationOptions(language=debtor.get("language_preference") or "en"),
    )

    try:
        strategy = validate_ai_response(result.content, [])
    except DataParseError as e:
        logger.warning("Using default strategy for case %s: %s", case_id, e)
        strategy = default_strategy(request.strategy_type)

    now = utc_now()
    generated_at = to_timestamp(now)
    due = to_timestamp(next_action_due(strategy, now))
    await case_service.save_strategy(case_id, strategy, generated_at, due)

    await cost_tracker.log_interaction(
        organization_id=case["organization_id"],
        case_id=case_id,
        interaction_type="strategy_generation",
        model_used=result.model,
        prompt=prompt,
        response=result.content,
        prompt_tokens=result.prompt_tokens,
        completion_tokens=result.completion_tokens,
        total_tokens=result.tokens_used,
        cost_usd=result.cost,
        performance_metrics={
            "strategy_type": request.strategy_type,
            "context_notes": request.context_notes,
            "regenerated": request.force_regenerate,
        },
    )
    logger.info(
        "Generated %s strategy for case %s with %s", request.strategy_type, case_id, result.model
    )

    return {
        "strategy": strategy,
        "generated_at": generated_at,
        "next_action_due": due,
        "regenerated": True,
        "ai_cost": result.cost,
        "model_used": result.model,
    }


@router.post("/communications", status_code=201)
async def log_communication(
    communication: CommunicationCreate,
    comm_service: CommunicationService = Depends(get_communication_service),
):
    log = await comm_service.log_communication(**communication.model_dump())
    logger.info(
        "Logged %s %s communication %s", communication.direction, communication.type, log.id
    )
    return log
