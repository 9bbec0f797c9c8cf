import logging

from fastapi import APIRouter, Depends, HTTPException

from collectai.models.schemas import AnalyzeEmailRequest, GenerateRequest, GenerateResponse
from collectai.services.case_service import CaseService
from collectai.services.communication_service import CommunicationService
from collectai.services.cost_tracker import CostTracker
from collectai.services.model_router import ModelRouter
from collectai.services.prompts import (
    EMAIL_ANALYSIS_PROMPT,
    NEGOTIATION_RESPONSE_PROMPT,
    RESPONSE_ANALYSIS_PROMPT,
    build_communication_context,
    get_communication_prompt,
    interpolate_template,
    parse_email_analysis,
)
from collectai.services.providers.base import GenerationOptions
from collectai.dependencies import (
    get_case_service, get_communication_service,
    get_cost_tracker, get_model_router,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/ai", tags=["ai"])

INTERACTION_TYPES = {
    "email": "email_generation",
    "sms": "sms_generation",
    "script": "script_generation",
    "analysis": "analysis",
    "negotiation": "negotiation",
}


def task_complexity(request_type: str, tone: str) -> str:
    if request_type == "negotiation":
        return "negotiation"
    if request_type == "email" and tone == "urgent":
        return "complex"
    return "simple"


def select_prompt(request_type: str, tone: str, language: str) -> str:
    if request_type == "email" and tone == "urgent":
        return get_communication_prompt("escalation", language)
    if request_type == "analysis":
        return RESPONSE_ANALYSIS_PROMPT
    if request_type == "negotiation":
        return NEGOTIATION_RESPONSE_PROMPT
    return get_communication_prompt("initial_notice", language)


@router.post("/generate", response_model=GenerateResponse)
async def generate_content(
    request: GenerateRequest,
    model_router: ModelRouter = Depends(get_model_router),
    cost_tracker: CostTracker = Depends(get_cost_tracker),
):
    """Generate collection content with cost-aware backend routing."""
    debtor = request.context.debtor or {}
    case = request.context.case or {}
    complexity = task_complexity(request.type, request.tone)

    template = request.template or select_prompt(request.type, request.tone, request.language)
    variables = build_communication_context(case, debtor, request.type)
    variables.update({
        "company_name": debtor.get("company_name") or "Valued Client",
        "amount": case.get("outstanding_amount") or case.get("amount_owed") or 0,
        "currency": case.get("currency") or "AED",
        "days_overdue": case.get("days_overdue") or variables["days_overdue"],
        **request.variables,
    })
    prompt = interpolate_template(template, variables)

    result = await model_router.route_and_generate(
        complexity,
        prompt,
        request.context.model_dump(exclude_none=True),
        GenerationOptions(language=request.language, tone=request.tone),
    )

    organization_id = request.organization_id or case.get("organization_id") or "default"
    await cost_tracker.log_interaction(
        organization_id=organization_id,
        case_id=case.get("id"),
        interaction_type=INTERACTION_TYPES[request.type],
        model_used=result.model,
        prompt=prompt,
        response=result.content,
        prompt_tokens=result.prompt_tokens,
        completion_tokens=result.completion_tokens,
        total_tokens=result.tokens_used,
        cost_usd=result.cost,
        performance_metrics={
            "type": request.type,
            "complexity": complexity,
            "language": request.language,
            "tone": request.tone,
        },
    )
    logger.info(
        "Generated %s content with %s (%d tokens, $%.6f)",
        request.type, result.model, result.tokens_used, result.cost,
    )

    return GenerateResponse(
        content=result.content,
        tokens_used=result.tokens_used,
        model=result.model,
        cost=result.cost,
    )


@router.post("/analyze-email")
async def analyze_email(
    request: AnalyzeEmailRequest,
    model_router: ModelRouter = Depends(get_model_router),
    cost_tracker: CostTracker = Depends(get_cost_tracker),
    case_service: CaseService = Depends(get_case_service),
    comm_service: CommunicationService = Depends(get_communication_service),
):
    """Classify an inbound debtor email and attach the result to its log."""
    case = await case_service.get_case(request.case_id)
    if not case:
        raise HTTPException(status_code=404, detail="Case not found")
    debtor = case.get("debtor") or {}

    prompt = interpolate_template(EMAIL_ANALYSIS_PROMPT, {
        "from_email": request.from_email,
        "subject": request.subject,
        "email_content": request.email_content,
        "debtor_name": debtor.get("name"),
        "company_name": debtor.get("company_name"),
        "amount": case.get("amount_owed"),
        "currency": case.get("currency"),
        "case_status": case.get("status"),
    })

    result = await model_router.route_and_generate(
        "simple", prompt, {"case": case, "debtor": debtor},
        GenerationOptions(language="en"),
    )
    analysis = parse_email_analysis(result.content)

    log_id = await comm_service.record_email_analysis(
        request.organization_id, request.case_id, request.from_email, analysis
    )
    if log_id is None:
        logger.info(
            "No communication log from %s on case %s to attach analysis to",
            request.from_email, request.case_id,
        )

    await cost_tracker.log_interaction(
        organization_id=request.organization_id,
        case_id=request.case_id,
        interaction_type="email_analysis",
        model_used=result.model,
        prompt=prompt,
        response=result.content,
        prompt_tokens=result.prompt_tokens,
        completion_tokens=result.completion_tokens,
        total_tokens=result.tokens_used,
        cost_usd=result.cost,
        performance_metrics={
            "sentiment": analysis.sentiment,
            "urgency": analysis.urgency,
            "confidence_score": analysis.confidence_score,
        },
    )

    return {
        "success": True,
        "analysis": analysis.model_dump(),
        "case_id": request.case_id,
        "actions_taken": {
            "analysis_stored": log_id is not None,
            "payment_commitment_detected": analysis.payment_commitment.has_commitment,
            "alert_recommended": (
                analysis.urgency == "urgent" or bool(analysis.compliance_flags)
            ),
        },
    }
