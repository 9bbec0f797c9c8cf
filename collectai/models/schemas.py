from datetime import datetime
from pydantic import BaseModel, EmailStr, Field
from typing import Any, Literal, Optional


# --- Settings ---
class CostLimits(BaseModel):
    monthly_limit_usd: float = Field(default=1000.0, ge=0, le=100000)
    daily_limit_usd: float = Field(default=50.0, ge=0, le=10000)
    alert_threshold_percent: float = Field(default=80.0, ge=0, le=100)


# --- AI generation ---
class GenerationContext(BaseModel):
    debtor: Optional[dict[str, Any]] = None
    case: Optional[dict[str, Any]] = None
    history: Optional[list[Any]] = None
    priority: Optional[Literal["low", "medium", "high"]] = None


class GenerateRequest(BaseModel):
    type: Literal["email", "sms", "script", "analysis", "negotiation"]
    context: GenerationContext = GenerationContext()
    tone: Literal["friendly", "formal", "urgent"] = "formal"
    language: Literal["en", "ar"] = "en"
    template: Optional[str] = None
    variables: dict[str, Any] = {}
    organization_id: Optional[str] = None


class GenerateResponse(BaseModel):
    content: str
    tokens_used: int = 0
    model: str
    cost: float = 0.0


# --- Email analysis ---
class AnalyzeEmailRequest(BaseModel):
    organization_id: str
    case_id: str
    email_content: str = Field(..., min_length=1, max_length=50000)
    subject: str = ""
    from_email: EmailStr


class PaymentCommitment(BaseModel):
    has_commitment: bool = False
    amount: Optional[float] = None
    date: Optional[str] = None
    details: Optional[str] = None


class EmailAnalysis(BaseModel):
    sentiment: Literal["positive", "neutral", "negative", "hostile"] = "neutral"
    intent: str = "other"
    urgency: Literal["low", "medium", "high", "urgent"] = "medium"
    key_points: list[str] = ["Email received and logged"]
    recommended_action: str = "Review email manually"
    payment_commitment: PaymentCommitment = PaymentCommitment()
    compliance_flags: list[str] = []
    confidence_score: float = Field(default=0.5, ge=0.0, le=1.0)


# --- Debtors / cases / communications ---
class DebtorCreate(BaseModel):
    organization_id: str
    name: str = Field(..., min_length=1)
    company_name: Optional[str] = None
    primary_contact_email: Optional[EmailStr] = None
    country: Optional[str] = None
    language_preference: Literal["en", "ar"] = "en"


class CaseCreate(BaseModel):
    organization_id: str
    debtor_id: str
    amount_owed: float = Field(default=0.0, ge=0)
    currency: str = "AED"
    status: str = "active"
    priority: Literal["low", "medium", "high"] = "medium"


class StrategyRequest(BaseModel):
    strategy_type: Literal["initial", "escalation", "negotiation", "legal"] = "initial"
    force_regenerate: bool = False
    context_notes: Optional[str] = None


class CommunicationCreate(BaseModel):
    organization_id: str
    direction: Literal["inbound", "outbound"]
    case_id: Optional[str] = None
    debtor_id: Optional[str] = None
    type: str = "email"
    subject: str = ""
    content: str = ""
    from_email: Optional[str] = None
    to_email: Optional[str] = None
    thread_id: Optional[str] = None
    ai_sentiment: Optional[Literal["positive", "neutral", "negative", "hostile"]] = None
    ai_flags: list[str] = []
    delivery_status: Optional[str] = None
    sent_at: Optional[datetime] = None


# --- Health ---
class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str = "0.1.0"
    interaction_count: int = 0
    communication_count: int = 0


# --- Cost ---
class CostReportResponse(BaseModel):
    organization_id: str
    period: dict
    analytics: list[dict] = []
    usage: dict
    model_metrics: list[dict] = []
    total_interactions: int = 0
    alerts: list[dict] = []
