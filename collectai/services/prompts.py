"""Prompt templates for collection communications, strategies and analysis.

Templates use ``{{name}}`` placeholders filled by ``interpolate_template``.
Communication templates exist in English and Arabic; everything else is
English only.
"""

import json
import logging
import re
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import ValidationError as SchemaError

from collectai.exceptions import DataParseError
from collectai.models.database_models import parse_timestamp, utc_now
from collectai.models.schemas import EmailAnalysis

logger = logging.getLogger(__name__)

COMMUNICATION_PROMPTS = {
    "initial_notice": {
        "en": """Generate a professional initial payment reminder as JSON with subject and content fields.
Company: {{company_name}}
Contact: {{contact_name}}
Amount: {{amount}} {{currency}}
Days Overdue: {{days_overdue}}
Invoice Details: {{invoice_details}}

Requirements:
- Tone: Friendly but professional
- Include: Payment options, contact information
- Avoid: Threatening language
- Reference: Our successful business relationship
- Cultural context: GCC business practices

Return format:
{
  "subject": "Professional subject line",
  "content": "Full email content with proper greetings, details, and professional closing",
  "call_to_action": "Clear next steps for the debtor",
  "deadline": "Payment deadline date",
  "escalation_level": 1
}""",
        "ar": """قم بإنشاء تذكير دفع أولي مهني بصيغة JSON مع حقول الموضوع والمحتوى.
الشركة: {{company_name}}
المبلغ: {{amount}} {{currency}}
أيام التأخير: {{days_overdue}}

المتطلبات:
- النبرة: ودية ولكن مهنية
- تشمل: خيارات الدفع، معلومات الاتصال
- تجنب: اللغة التهديدية
- السياق الثقافي: ممارسات الأعمال في دول مجلس التعاون الخليجي""",
    },
    "reminder": {
        "en": """Generate a follow-up payment reminder as JSON.
Company: {{company_name}}
Contact: {{contact_name}}
Amount: {{amount}} {{currency}}
Days Overdue: {{days_overdue}}
Previous Communications: {{previous_comms}}

Requirements:
- Tone: Professional but slightly more urgent
- Reference previous communications
- Maintain respectful approach
- Include consequences of continued delay
- Offer assistance with payment arrangements

Return JSON format with subject, content, call_to_action, deadline, escalation_level.""",
        "ar": """قم بإنشاء تذكير دفع متابعة بصيغة JSON.
الشركة: {{company_name}}
المبلغ: {{amount}} {{currency}}
أيام التأخير: {{days_overdue}}

المتطلبات:
- النبرة: مهنية ولكن أكثر إلحاحاً
- الإشارة إلى الاتصالات السابقة
- الحفاظ على النهج المحترم""",
    },
    "escalation": {
        "en": """Generate an escalation notice as JSON.
Company: {{company_name}}
Contact: {{contact_name}}
Amount: {{amount}} {{currency}}
Days Overdue: {{days_overdue}}
Previous Attempts: {{attempt_count}}
Country: {{country}}

Requirements:
- Tone: Firm but respectful
- Include escalation timeline and consequences
- Maintain professional relationship
- Consider local regulations and cultural sensitivities
- Offer final opportunity for resolution
- Comply with UAE Federal Decree-Law No. 15/2024 if applicable

Return JSON format with subject, content, call_to_action, deadline, escalation_level (3-4).""",
        "ar": """قم بإنشاء إشعار تصعيد بصيغة JSON.
الشركة: {{company_name}}
المبلغ: {{amount}} {{currency}}
أيام التأخير: {{days_overdue}}

المتطلبات:
- النبرة: حازمة ولكن محترمة
- تشمل الجدول الزمني للتصعيد والعواقب""",
    },
    "payment_plan": {
        "en": """Generate a payment plan proposal as JSON.
Company: {{company_name}}
Total Amount: {{total_amount}} {{currency}}
Suggested Terms: {{suggested_terms}}
Financial Situation: {{financial_status}}

Requirements:
- Show understanding of their situation
- Offer flexible, realistic terms
- Include incentives for early completion
- Maintain business relationship
- For Saudi Arabia: Ensure Sharia compliance (no interest)
- For UAE: Follow Federal Decree-Law requirements

Return JSON with subject, content, call_to_action, deadline, escalation_level (2).""",
        "ar": """قم بإنشاء اقتراح خطة دفع بصيغة JSON.
الشركة: {{company_name}}
المبلغ الإجمالي: {{total_amount}} {{currency}}

المتطلبات:
- إظهار فهم لوضعهم
- تقديم شروط مرنة وواقعية
- الامتثال للشريعة الإسلامية في السعودية""",
    },
    "final_notice": {
        "en": """Generate a final notice before legal action as JSON.
Company: {{company_name}}
Amount: {{amount}} {{currency}}
Country: {{country}}
Legal Requirements: {{legal_requirements}}

Requirements:
- Final demand for payment
- Legal action timeline (20 days for UAE)
- Opportunity to avoid legal proceedings
- Compliance with local laws
- Professional and respectful tone
- Cultural sensitivity

Return JSON with subject, content, call_to_action, deadline, escalation_level (5).""",
        "ar": """قم بإنشاء إشعار أخير قبل الإجراء القانوني بصيغة JSON.
الشركة: {{company_name}}
المبلغ: {{amount}} {{currency}}
البلد: {{country}}

المتطلبات:
- طلب أخير للدفع
- الجدول الزمني للإجراء القانوني
- فرصة لتجنب الإجراءات القانونية""",
    },
    "custom": {
        "en": """Generate a custom communication as JSON based on specific instructions.
Company: {{company_name}}
Contact: {{contact_name}}
Amount: {{amount}} {{currency}}
Custom Instructions: {{custom_instructions}}
Context: {{context}}

Requirements:
- Follow the custom instructions provided
- Maintain professional tone
- Consider GCC business culture
- Include appropriate call to action

Return JSON format with subject, content, call_to_action, deadline, escalation_level.""",
        "ar": """قم بإنشاء اتصال مخصص بصيغة JSON بناءً على تعليمات محددة.
الشركة: {{company_name}}
المبلغ: {{amount}} {{currency}}
التعليمات المخصصة: {{custom_instructions}}

المتطلبات:
- اتباع التعليمات المخصصة المقدمة
- الحفاظ على النبرة المهنية""",
    },
}

STRATEGY_PROMPTS = {
    "initial": """Analyze this debt collection case and generate an initial collection strategy.
Case Details: {{case_details}}
Debtor Profile: {{debtor_profile}}
Amount: {{amount}} {{currency}}
Days Overdue: {{days_overdue}}
Country: {{country}}

Generate a comprehensive strategy considering:
1. Cultural factors specific to {{country}}
2. Risk assessment based on debtor profile
3. Optimal communication sequence
4. Timeline for escalation
5. Legal compliance requirements
6. Relationship preservation strategies

Return as JSON with strategy structure including approach, timeline, next_steps, risk_assessment, cultural_considerations.""",
    "escalation": """Generate an escalation strategy for this overdue case.
Current Status: {{current_status}}
Previous Actions: {{previous_actions}}
Response History: {{response_history}}
Days Since Last Contact: {{days_since_contact}}

Consider:
1. Previous response patterns
2. Escalation triggers met
3. Legal action thresholds
4. Alternative resolution methods
5. Cost-benefit analysis

Return escalation strategy as JSON.""",
    "negotiation": """Create a negotiation strategy based on debtor's proposal.
Original Amount: {{original_amount}}
Debtor Proposal: {{debtor_proposal}}
Payment History: {{payment_history}}
Financial Indicators: {{financial_indicators}}

Develop strategy for:
1. Counter-offer analysis
2. Settlement recommendations
3. Payment plan alternatives
4. Risk mitigation
5. Relationship preservation

Return negotiation strategy as JSON.""",
    "legal": """Generate pre-legal action strategy.
Case Age: {{case_age}} days
Total Attempts: {{total_attempts}}
Last Response: {{last_response}}
Jurisdiction: {{country}}

Evaluate:
1. Legal action viability
2. Cost-benefit analysis
3. Alternative dispute resolution
4. Compliance requirements
5. Timeline for legal proceedings

Return legal strategy as JSON.""",
}

RESPONSE_ANALYSIS_PROMPT = """Analyze this email response from a debtor and provide detailed insights:
Email Content: "{{email_content}}"
Debtor Company: {{company_name}}
Country: {{country}}
Case Context: {{case_context}}

Analyze for:
1. Primary Intent (payment_promise, dispute, information_request, negotiation, refusal, acknowledgment)
2. Sentiment Score (0.0 = very negative, 1.0 = very positive)
3. Urgency Level (low, medium, high)
4. Payment Likelihood (0-100 percentage)
5. Emotional State (frustrated, cooperative, defensive, apologetic, professional)
6. Key Information Extracted (dates, amounts, commitments, concerns)
7. Cultural Context Indicators
8. Recommended Response Strategy

Consider GCC business culture:
- Relationship importance and face-saving
- Religious/cultural holidays impact
- Business hierarchy and respect
- Indirect communication styles
- Honor and reputation considerations

Return as JSON with intent, intent_confidence, sentiment, urgency, payment_likelihood,
emotional_state, key_information, cultural_indicators, recommended_action,
response_priority, escalation_recommended, notes."""

NEGOTIATION_RESPONSE_PROMPT = """Generate a professional negotiation response based on debtor's proposal.
Debtor Proposal: {{proposal}}
Original Amount: {{original_amount}} {{currency}}
Company Profile: {{company_profile}}
Payment History: {{payment_history}}
Cultural Context: {{country}} - {{language_preference}}

Generate response that:
1. Acknowledges their proposal respectfully
2. Provides counter-offer analysis
3. Maintains relationship focus (critical in GCC)
4. Includes clear next steps and deadlines
5. Considers Islamic banking principles for Saudi Arabia
6. Offers face-saving alternatives
7. Shows flexibility while protecting interests

Return as JSON with subject, content, recommended_settlement, timeline, cultural_considerations.

Tone requirements:
- Professional and respectful
- Solutions-oriented
- Culturally appropriate for {{country}}
- Maintains long-term business relationship potential"""

EMAIL_ANALYSIS_PROMPT = """Analyze this email from a debtor in a debt collection case. Provide:

1. Sentiment (positive, neutral, negative, hostile)
2. Intent (payment_promise, dispute, request_info, complaint, acknowledgment, other)
3. Urgency level (low, medium, high, urgent)
4. Key points extracted
5. Recommended next action
6. Any payment commitments mentioned
7. Compliance concerns or red flags

Email Details:
- From: {{from_email}}
- Subject: {{subject}}
- Content: {{email_content}}

Debtor Information:
- Name: {{debtor_name}}
- Company: {{company_name}}
- Amount Owed: {{amount}} {{currency}}
- Case Status: {{case_status}}

Respond in JSON format with these fields:
{
  "sentiment": "positive|neutral|negative|hostile",
  "intent": "payment_promise|dispute|request_info|complaint|acknowledgment|other",
  "urgency": "low|medium|high|urgent",
  "key_points": ["point1", "point2"],
  "recommended_action": "suggested next step",
  "payment_commitment": {
    "has_commitment": boolean,
    "amount": number|null,
    "date": "YYYY-MM-DD"|null,
    "details": "additional details"
  },
  "compliance_flags": ["flag1", "flag2"] or [],
  "confidence_score": 0.0-1.0
}"""

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")
_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


def _render(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def interpolate_template(template: str, variables: dict[str, Any]) -> str:
    """Fill ``{{name}}`` placeholders; unknown or None variables stay as-is."""
    def replace(match: re.Match) -> str:
        value = variables.get(match.group(1))
        return match.group(0) if value is None else _render(value)

    return _PLACEHOLDER.sub(replace, template)


def get_communication_prompt(kind: str, language: str = "en") -> str:
    prompts = COMMUNICATION_PROMPTS.get(kind)
    if prompts is None:
        raise KeyError(f"Unknown communication prompt: {kind}")
    return prompts.get(language) or prompts["en"]


def get_strategy_prompt(kind: str) -> str:
    return STRATEGY_PROMPTS[kind]


def _days_since(created_at: Any, now: datetime) -> int:
    created = parse_timestamp(created_at)
    if created is None:
        return 0
    return max((now - created).days, 0)


def build_communication_context(
    case: dict,
    debtor: dict,
    communication_type: str,
    additional_context: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Template variables for a communication prompt."""
    now = now or utc_now()
    created = parse_timestamp(case.get("created_at"))
    return {
        "company_name": debtor.get("company_name"),
        "contact_name": debtor.get("primary_contact_name") or debtor.get("name"),
        "amount": case.get("outstanding_amount", case.get("amount_owed")),
        "currency": case.get("currency") or "USD",
        "total_amount": case.get("total_amount"),
        "days_overdue": _days_since(case.get("created_at"), now),
        "country": debtor.get("country"),
        "language_preference": debtor.get("language_preference") or "en",
        "risk_profile": debtor.get("risk_profile"),
        "communication_type": communication_type,
        "case_priority": case.get("priority"),
        "invoice_details": (
            f"Invoice #{str(case.get('id', ''))[:8]} dated "
            f"{created.date().isoformat() if created else 'unknown'}"
        ),
        **(additional_context or {}),
    }


def build_strategy_context(
    case: dict,
    debtor: dict,
    communications: Optional[list[dict]] = None,
    additional_context: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Template variables for a strategy prompt, with the five latest communications."""
    now = now or utc_now()
    dated = [c for c in communications or [] if parse_timestamp(c.get("created_at"))]
    recent = sorted(
        dated, key=lambda c: parse_timestamp(c["created_at"]), reverse=True,
    )[:5]

    return {
        "case_details": {
            "id": case.get("id"),
            "total_amount": case.get("total_amount"),
            "outstanding_amount": case.get("outstanding_amount", case.get("amount_owed")),
            "currency": case.get("currency") or "USD",
            "status": case.get("status"),
            "priority": case.get("priority"),
            "created_at": case.get("created_at"),
            "current_stage": case.get("current_stage"),
        },
        "debtor_profile": {
            "company_name": debtor.get("company_name"),
            "company_type": debtor.get("company_type"),
            "country": debtor.get("country"),
            "language_preference": debtor.get("language_preference"),
            "risk_profile": debtor.get("risk_profile"),
            "behavioral_score": debtor.get("behavioral_score"),
        },
        "amount": case.get("outstanding_amount", case.get("amount_owed")),
        "currency": case.get("currency") or "USD",
        "days_overdue": _days_since(case.get("created_at"), now),
        "country": debtor.get("country"),
        "communication_history": [
            {
                "direction": c.get("direction"),
                "status": c.get("delivery_status"),
                "channel": c.get("type"),
                "sentiment": c.get("ai_sentiment"),
                "date": c.get("created_at"),
            }
            for c in recent
        ],
        **(additional_context or {}),
    }


def _default_field(name: str, now: datetime) -> Any:
    defaults = {
        "subject": "Payment Reminder",
        "content": "Please contact us regarding your outstanding payment.",
        "call_to_action": "Please make payment or contact us to discuss.",
        "deadline": (now + timedelta(days=7)).isoformat(),
        "escalation_level": 1,
    }
    return defaults.get(name)


def validate_ai_response(
    response: str,
    expected_fields: list[str],
    now: Optional[datetime] = None,
) -> dict:
    """Parse a JSON object out of a model response and backfill missing fields.

    Raises DataParseError when the response is not a JSON object.
    """
    text = (response or "").strip()
    fenced = _CODE_FENCE.match(text)
    if fenced:
        text = fenced.group(1)
    try:
        parsed = json.loads(text)
    except ValueError as e:
        raise DataParseError(f"Invalid AI response format: {e}") from e
    if not isinstance(parsed, dict):
        raise DataParseError("Invalid AI response format: expected a JSON object")

    missing = [f for f in expected_fields if f not in parsed]
    if missing:
        logger.warning("AI response missing fields: %s", ", ".join(missing))
        now = now or utc_now()
        for name in missing:
            parsed[name] = _default_field(name, now)
    return parsed


def parse_email_analysis(response: str) -> EmailAnalysis:
    """Structured email analysis, or the neutral default when unparsable."""
    try:
        parsed = validate_ai_response(response, [])
        return EmailAnalysis.model_validate(parsed)
    except (DataParseError, SchemaError) as e:
        logger.warning("Falling back to default email analysis: %s", e)
        return EmailAnalysis()


def build_strategy_prompt(
    kind: str,
    case: dict,
    debtor: dict,
    communications: Optional[list[dict]] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """Fill a strategy template from the case, its debtor and its communication logs."""
    now = now or utc_now()
    communications = communications or []
    outbound = [c for c in communications if c.get("direction") == "outbound"]
    inbound = sorted(
        (c for c in communications if c.get("direction") == "inbound"),
        key=lambda c: parse_timestamp(c.get("sent_at") or c.get("created_at")) or now,
    )
    contacted = [
        parse_timestamp(c.get("sent_at") or c.get("created_at")) for c in communications
    ]
    last_contact = max((ts for ts in contacted if ts), default=None)
    context = build_strategy_context(case, debtor, communications, {
        "current_status": case.get("status"),
        "previous_actions": f"{len(outbound)} outbound communications",
        "response_history": [c.get("ai_sentiment") or "unknown" for c in inbound],
        "days_since_contact": _days_since(last_contact, now) if last_contact else "never contacted",
        "original_amount": case.get("amount_owed"),
        "debtor_proposal": notes or "none provided",
        "payment_history": "no payments recorded",
        "financial_indicators": debtor.get("risk_profile") or "unknown",
        "total_attempts": len(outbound),
        "last_response": inbound[-1].get("content") if inbound else "no response",
    }, now=now)
    context["case_age"] = context["days_overdue"]

    prompt = interpolate_template(get_strategy_prompt(kind), context)
    prompt += f"\n\nCommunication History: {_render(context['communication_history'])}"
    if notes:
        prompt += f"\nAdditional Notes: {notes}"
    return prompt


def default_strategy(kind: str) -> dict:
    """Conservative plan used when the model's strategy cannot be parsed."""
    return {
        "type": kind,
        "approach": "conservative",
        "next_steps": ["Manual review required - AI response could not be parsed"],
        "timeline": "1-2 weeks",
        "risk_assessment": "medium",
        "error": "Failed to parse AI response",
    }


def next_action_due(strategy: dict, now: Optional[datetime] = None) -> datetime:
    """Due date for the next action, read from the strategy's timeline text."""
    now = now or utc_now()
    timeline = str(strategy.get("timeline") or "").lower()
    if "1-2 days" in timeline:
        days = 2
    elif "2 weeks" in timeline:
        days = 14
    elif "week" in timeline:
        days = 7
    else:
        days = 3
    return now + timedelta(days=days)
