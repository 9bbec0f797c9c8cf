import sqlite3
from datetime import datetime, timezone

import pytest

from collectai.models.schemas import CaseCreate, DebtorCreate, EmailAnalysis
from collectai.services.case_service import CaseService
from collectai.services.communication_service import CommunicationService
from collectai.services.thread_analyzer import analyze_thread


@pytest.fixture
def comm_service():
    return CommunicationService()


@pytest.fixture
def case_service():
    return CaseService()


async def _create_case(case_service, email="billing@acme.ae"):
    debtor = await case_service.create_debtor(DebtorCreate(
        organization_id="org-1", name="Omar", company_name="Acme",
        primary_contact_email=email, country="UAE",
    ))
    case = await case_service.create_case(CaseCreate(
        organization_id="org-1", debtor_id=debtor["id"], amount_owed=12000,
    ))
    return debtor, case


@pytest.mark.asyncio
class TestCaseService:
    async def test_create_and_get_case(self, initialized_db, case_service):
        debtor, case = await _create_case(case_service)

        assert case["currency"] == "AED"
        assert case["status"] == "active"

        fetched = await case_service.get_case(case["id"])
        assert fetched["amount_owed"] == 12000
        assert fetched["debtor"]["id"] == debtor["id"]
        assert fetched["debtor"]["company_name"] == "Acme"

    async def test_get_missing_case(self, initialized_db, case_service):
        assert await case_service.get_case("nope") is None

    async def test_case_requires_existing_debtor(self, initialized_db, case_service):
        with pytest.raises(sqlite3.IntegrityError):
            await case_service.create_case(
                CaseCreate(organization_id="org-1", debtor_id="missing")
            )


@pytest.mark.asyncio
class TestCommunicationService:
    async def test_log_communication(self, initialized_db, comm_service):
        log = await comm_service.log_communication(
            organization_id="org-1",
            direction="inbound",
            subject="Re: invoice",
            thread_id="t1",
            ai_flags=["dispute"],
        )
        assert log.id
        assert log.direction == "inbound"
        assert log.ai_flags == ["dispute"]
        assert log.sent_at

    async def test_thread_messages_oldest_first(self, initialized_db, comm_service):
        for sent_at in ("2026-10-18T10:00:00+00:00", "2026-10-16T10:00:00+00:00",
                        "2026-10-17T10:00:00+00:00"):
            await comm_service.log_communication(
                "org-1", "outbound", thread_id="t1", sent_at=sent_at,
            )
        await comm_service.log_communication(
            "org-2", "outbound", thread_id="t1", sent_at="2026-10-18T11:00:00+00:00",
        )

        messages = await comm_service.get_thread_messages("org-1", "t1")
        assert [m.sent_at[:10] for m in messages] == ["2026-10-16", "2026-10-17", "2026-10-18"]

    async def test_list_thread_communications(self, initialized_db, comm_service, case_service):
        debtor, case = await _create_case(case_service)
        await comm_service.log_communication(
            "org-1", "outbound", case_id=case["id"], to_email="billing@acme.ae",
            thread_id="t1", sent_at="2026-10-17T10:00:00+00:00",
        )
        await comm_service.log_communication(
            "org-1", "inbound", case_id=case["id"], from_email="billing@acme.ae",
            thread_id="t1", sent_at="2026-10-18T10:00:00+00:00",
        )
        await comm_service.log_communication(
            "org-1", "outbound", to_email="other@example.com",
            thread_id="t2", sent_at="2026-10-18T11:00:00+00:00",
        )
        await comm_service.log_communication("org-1", "outbound", thread_id=None)

        messages, related = await comm_service.list_thread_communications("org-1")
        assert [m.thread_id for m in messages] == ["t2", "t1", "t1"]
        assert related[messages[0].id] == {"case": None, "debtor": None}
        case_info = related[messages[1].id]
        assert case_info["case"]["id"] == case["id"]
        assert case_info["debtor"]["company_name"] == "Acme"

        messages, _ = await comm_service.list_thread_communications(
            "org-1", debtor_email="billing@acme.ae"
        )
        assert len(messages) == 2

        messages, _ = await comm_service.list_thread_communications(
            "org-1", case_id=case["id"], limit=1
        )
        assert len(messages) == 2

    async def test_record_email_analysis_updates_newest_log(
        self, initialized_db, comm_service, case_service
    ):
        _, case = await _create_case(case_service)
        older = await comm_service.log_communication(
            "org-1", "inbound", case_id=case["id"], from_email="billing@acme.ae",
            sent_at="2026-10-16T10:00:00+00:00", thread_id="t9",
        )
        newer = await comm_service.log_communication(
            "org-1", "inbound", case_id=case["id"], from_email="billing@acme.ae",
            sent_at="2026-10-18T10:00:00+00:00", thread_id="t9",
        )

        analysis = EmailAnalysis(
            sentiment="negative",
            key_points=["Disputes amount", "Requests invoice copy"],
            compliance_flags=["dispute"],
        )
        updated_id = await comm_service.record_email_analysis(
            "org-1", case["id"], "billing@acme.ae", analysis
        )
        assert updated_id == newer.id

        messages = await comm_service.get_thread_messages("org-1", "t9")
        assert [m.id for m in messages] == [older.id, newer.id]
        assert messages[0].ai_sentiment is None
        assert messages[1].ai_sentiment == "negative"
        assert messages[1].ai_summary == "Disputes amount; Requests invoice copy"
        assert messages[1].ai_flags == ["dispute"]

    async def test_record_email_analysis_without_log(
        self, initialized_db, comm_service
    ):
        result = await comm_service.record_email_analysis(
            "org-1", "case-x", "someone@example.com", EmailAnalysis()
        )
        assert result is None

    async def test_case_communications_newest_first(
        self, initialized_db, comm_service, case_service
    ):
        _, case = await _create_case(case_service)
        first = await comm_service.log_communication(
            "org-1", "outbound", case_id=case["id"], sent_at="2026-10-16T10:00:00+00:00",
        )
        second = await comm_service.log_communication(
            "org-1", "inbound", case_id=case["id"], sent_at="2026-10-17T10:00:00+00:00",
        )
        await comm_service.log_communication(
            "org-2", "inbound", case_id=case["id"], sent_at="2026-10-18T10:00:00+00:00",
        )

        rows = await comm_service.get_case_communications("org-1", case["id"])
        assert [r["id"] for r in rows] == [second.id, first.id]

    async def test_record_email_analysis_ignores_other_organizations(
        self, initialized_db, comm_service, case_service
    ):
        _, case = await _create_case(case_service)
        foreign = await comm_service.log_communication(
            "org-2", "inbound", case_id=case["id"], from_email="billing@acme.ae",
            sent_at="2026-10-18T10:00:00+00:00", thread_id="t-other",
        )

        result = await comm_service.record_email_analysis(
            "org-1", case["id"], "billing@acme.ae", EmailAnalysis(sentiment="hostile")
        )
        assert result is None

        messages = await comm_service.get_thread_messages("org-2", "t-other")
        assert [m.id for m in messages] == [foreign.id]
        assert messages[0].ai_sentiment is None

    async def test_sent_at_with_offset_sorts_by_instant(
        self, initialized_db, comm_service
    ):
        # 12:00+04:00 is 08:00 UTC, an hour before the reply
        inbound = await comm_service.log_communication(
            "org-1", "inbound", thread_id="t-tz", ai_sentiment="neutral",
            sent_at="2026-10-17T12:00:00+04:00",
        )
        outbound = await comm_service.log_communication(
            "org-1", "outbound", thread_id="t-tz", ai_sentiment="neutral",
            sent_at=datetime(2026, 10, 17, 9, 0, tzinfo=timezone.utc),
        )
        assert inbound.sent_at == "2026-10-17T08:00:00+00:00"

        messages = await comm_service.get_thread_messages("org-1", "t-tz")
        assert [m.id for m in messages] == [inbound.id, outbound.id]

        analysis = analyze_thread(
            messages, now=datetime(2026, 10, 17, 10, 0, tzinfo=timezone.utc)
        )
        assert analysis.average_response_time_hours == 1.0
        assert analysis.requires_attention is False

    async def test_naive_sent_at_is_read_as_utc(self, initialized_db, comm_service):
        log = await comm_service.log_communication(
            "org-1", "outbound", thread_id="t-naive", sent_at="2026-10-17T09:30:00",
        )
        assert log.sent_at == "2026-10-17T09:30:00+00:00"
