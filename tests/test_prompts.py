import json
from datetime import datetime, timedelta, timezone

import pytest

from collectai.exceptions import DataParseError
from collectai.models.schemas import EmailAnalysis
from collectai.services.prompts import (
    COMMUNICATION_PROMPTS,
    EMAIL_ANALYSIS_PROMPT,
    STRATEGY_PROMPTS,
    build_communication_context,
    build_strategy_context,
    build_strategy_prompt,
    default_strategy,
    get_communication_prompt,
    get_strategy_prompt,
    interpolate_template,
    next_action_due,
    parse_email_analysis,
    validate_ai_response,
)

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class TestInterpolateTemplate:
    def test_replaces_known_placeholders(self):
        result = interpolate_template(
            "Dear {{company_name}}, you owe {{amount}} {{currency}}.",
            {"company_name": "Acme", "amount": 1500, "currency": "AED"},
        )
        assert result == "Dear Acme, you owe 1500 AED."

    def test_unknown_and_none_left_untouched(self):
        result = interpolate_template(
            "{{known}} {{unknown}} {{empty}}", {"known": "x", "empty": None}
        )
        assert result == "x {{unknown}} {{empty}}"

    def test_falsy_values_are_substituted(self):
        assert interpolate_template("{{days}} days", {"days": 0}) == "0 days"

    def test_structured_values_rendered_as_json(self):
        result = interpolate_template("Case: {{case}}", {"case": {"id": "c1"}})
        assert json.loads(result.removeprefix("Case: ")) == {"id": "c1"}


class TestTemplateLookup:
    def test_every_communication_prompt_has_both_languages(self):
        for kind, prompts in COMMUNICATION_PROMPTS.items():
            assert set(prompts) == {"en", "ar"}, kind

    def test_arabic_prompt(self):
        assert "{{company_name}}" in get_communication_prompt("reminder", "ar")
        assert get_communication_prompt("reminder", "ar") != get_communication_prompt("reminder")

    def test_unknown_language_falls_back_to_english(self):
        assert get_communication_prompt("final_notice", "fr") == (
            COMMUNICATION_PROMPTS["final_notice"]["en"]
        )

    def test_unknown_kind(self):
        with pytest.raises(KeyError):
            get_communication_prompt("thank_you")

    def test_strategy_prompts(self):
        assert set(STRATEGY_PROMPTS) == {"initial", "escalation", "negotiation", "legal"}
        assert "Jurisdiction: {{country}}" in get_strategy_prompt("legal")


class TestContextBuilders:
    CASE = {
        "id": "0f1e2d3c-aaaa-bbbb-cccc-000000000000",
        "amount_owed": 12000.0,
        "priority": "high",
        "created_at": "2026-10-08T12:00:00+00:00",
    }
    DEBTOR = {"name": "Omar", "company_name": "Gulf Staffing", "country": "UAE"}

    def test_communication_context(self):
        context = build_communication_context(
            self.CASE, self.DEBTOR, "reminder", {"previous_comms": 2}, now=NOW
        )
        assert context["company_name"] == "Gulf Staffing"
        assert context["contact_name"] == "Omar"
        assert context["amount"] == 12000.0
        assert context["currency"] == "USD"
        assert context["days_overdue"] == 10
        assert context["communication_type"] == "reminder"
        assert context["invoice_details"] == "Invoice #0f1e2d3c dated 2026-10-08"
        assert context["previous_comms"] == 2

    def test_extra_context_overrides(self):
        context = build_communication_context(
            self.CASE, self.DEBTOR, "custom", {"currency": "SAR"}, now=NOW
        )
        assert context["currency"] == "SAR"

    def test_strategy_context_keeps_five_latest_communications(self):
        comms = [
            {"direction": "outbound", "type": "email",
             "created_at": (NOW - timedelta(days=d)).isoformat()}
            for d in range(7)
        ]
        context = build_strategy_context(self.CASE, self.DEBTOR, comms, now=NOW)

        history = context["communication_history"]
        assert len(history) == 5
        assert history[0]["date"] == NOW.isoformat()
        assert history[-1]["date"] == (NOW - timedelta(days=4)).isoformat()
        assert context["case_details"]["priority"] == "high"
        assert context["debtor_profile"]["country"] == "UAE"
        assert context["days_overdue"] == 10


class TestStrategyHelpers:
    CASE = {
        "id": "case-1", "status": "active", "amount_owed": 9000.0, "currency": "SAR",
        "created_at": "2026-09-18T12:00:00+00:00",
    }
    DEBTOR = {"company_name": "Najd Foods", "country": "Saudi Arabia", "risk_profile": "high"}
    COMMS = [
        {"direction": "outbound", "sent_at": "2026-10-01T09:00:00+00:00",
         "created_at": "2026-10-01T09:00:00+00:00"},
        {"direction": "inbound", "ai_sentiment": "negative", "content": "We dispute this",
         "sent_at": "2026-10-15T09:00:00+00:00", "created_at": "2026-10-15T09:00:00+00:00"},
        {"direction": "outbound", "sent_at": "2026-10-16T12:00:00+00:00",
         "created_at": "2026-10-16T12:00:00+00:00"},
    ]

    def test_escalation_prompt_uses_history(self):
        prompt = build_strategy_prompt(
            "escalation", self.CASE, self.DEBTOR, self.COMMS, now=NOW
        )
        assert "Current Status: active" in prompt
        assert "Previous Actions: 2 outbound communications" in prompt
        assert 'Response History: ["negative"]' in prompt
        assert "Days Since Last Contact: 2" in prompt
        assert "Additional Notes" not in prompt

    def test_legal_prompt(self):
        prompt = build_strategy_prompt("legal", self.CASE, self.DEBTOR, self.COMMS, now=NOW)
        assert "Case Age: 30 days" in prompt
        assert "Total Attempts: 2" in prompt
        assert "Last Response: We dispute this" in prompt
        assert "Jurisdiction: Saudi Arabia" in prompt

    def test_without_communications(self):
        prompt = build_strategy_prompt(
            "escalation", self.CASE, self.DEBTOR, [], notes="Board meeting next week", now=NOW
        )
        assert "Days Since Last Contact: never contacted" in prompt
        assert "Communication History: []" in prompt
        assert prompt.endswith("Additional Notes: Board meeting next week")

    def test_unknown_strategy_kind(self):
        with pytest.raises(KeyError):
            build_strategy_prompt("aggressive", self.CASE, self.DEBTOR, now=NOW)

    def test_default_strategy(self):
        strategy = default_strategy("legal")
        assert strategy["type"] == "legal"
        assert strategy["risk_assessment"] == "medium"
        assert strategy["next_steps"] == [
            "Manual review required - AI response could not be parsed"
        ]

    @pytest.mark.parametrize("timeline, days", [
        ("1-2 days", 2),
        ("Within 2 weeks", 14),
        ("1 week", 7),
        ("30 days", 3),
        (None, 3),
    ])
    def test_next_action_due(self, timeline, days):
        assert next_action_due({"timeline": timeline}, NOW) == NOW + timedelta(days=days)


class TestValidateAIResponse:
    def test_plain_json(self):
        parsed = validate_ai_response('{"subject": "Hello", "content": "Body"}', ["subject", "content"])
        assert parsed == {"subject": "Hello", "content": "Body"}

    def test_fenced_json(self):
        text = '```json\n{"subject": "Hello"}\n```'
        assert validate_ai_response(text, [])["subject"] == "Hello"

    def test_missing_fields_get_defaults(self):
        parsed = validate_ai_response(
            "{}",
            ["subject", "content", "call_to_action", "deadline", "escalation_level", "tone"],
            now=NOW,
        )
        assert parsed["subject"] == "Payment Reminder"
        assert parsed["content"] == "Please contact us regarding your outstanding payment."
        assert parsed["call_to_action"] == "Please make payment or contact us to discuss."
        assert parsed["deadline"] == (NOW + timedelta(days=7)).isoformat()
        assert parsed["escalation_level"] == 1
        assert parsed["tone"] is None

    def test_invalid_json_raises(self):
        with pytest.raises(DataParseError):
            validate_ai_response("Sure! Here is your email.", ["subject"])

    def test_non_object_raises(self):
        with pytest.raises(DataParseError):
            validate_ai_response("[1, 2, 3]", [])


class TestParseEmailAnalysis:
    def test_valid_analysis(self):
        text = json.dumps({
            "sentiment": "positive",
            "intent": "payment_promise",
            "urgency": "high",
            "key_points": ["Will pay Friday"],
            "recommended_action": "Confirm payment date",
            "payment_commitment": {
                "has_commitment": True, "amount": 5000, "date": "2026-10-23",
                "details": "Bank transfer",
            },
            "compliance_flags": [],
            "confidence_score": 0.9,
        })
        analysis = parse_email_analysis(text)
        assert analysis.sentiment == "positive"
        assert analysis.payment_commitment.has_commitment is True
        assert analysis.payment_commitment.amount == 5000
        assert analysis.confidence_score == 0.9

    def test_unparsable_response_uses_default(self):
        analysis = parse_email_analysis("I could not analyze this email.")
        assert analysis == EmailAnalysis()
        assert analysis.key_points == ["Email received and logged"]
        assert analysis.recommended_action == "Review email manually"
        assert analysis.confidence_score == 0.5

    def test_out_of_range_values_use_default(self):
        analysis = parse_email_analysis('{"sentiment": "furious"}')
        assert analysis == EmailAnalysis()

    def test_prompt_mentions_required_fields(self):
        assert "confidence_score" in EMAIL_ANALYSIS_PROMPT
        assert "{{email_content}}" in EMAIL_ANALYSIS_PROMPT
