import json
import uuid
from datetime import datetime
from typing import Optional

from collectai.database import get_db
from collectai.models.database_models import (
    CommunicationLog,
    parse_timestamp,
    to_timestamp,
    utc_now,
)
from collectai.models.schemas import EmailAnalysis


class CommunicationService:

    async def log_communication(
        self,
        organization_id: str,
        direction: str,
        case_id: str | None = None,
        debtor_id: str | None = None,
        type: str = "email",
        subject: str = "",
        content: str = "",
        from_email: str | None = None,
        to_email: str | None = None,
        thread_id: str | None = None,
        ai_sentiment: str | None = None,
        ai_flags: list[str] | None = None,
        delivery_status: str | None = None,
        sent_at: datetime | str | None = None,
    ) -> CommunicationLog:
        """Insert a log. ``sent_at`` is stored as UTC so it sorts by time."""
        log_id = str(uuid.uuid4())
        async with get_db() as db:
            await db.execute(
                """INSERT INTO communication_logs
                   (id, organization_id, case_id, debtor_id, type, direction,
                    subject, content, from_email, to_email, thread_id,
                    ai_sentiment, ai_flags, delivery_status, sent_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (log_id, organization_id, case_id, debtor_id, type, direction,
                 subject, content, from_email, to_email, thread_id,
                 ai_sentiment, json.dumps(ai_flags or []), delivery_status,
                 to_timestamp(parse_timestamp(sent_at) or utc_now())),
            )
            await db.commit()
            cursor = await db.execute(
                "SELECT * FROM communication_logs WHERE id = ?", (log_id,)
            )
            row = await cursor.fetchone()
            return CommunicationLog.from_row(dict(row))

    async def get_thread_messages(
        self, organization_id: str, thread_id: str
    ) -> list[CommunicationLog]:
        """All messages of one thread, oldest first."""
        async with get_db() as db:
            cursor = await db.execute(
                """SELECT * FROM communication_logs
                   WHERE organization_id = ? AND thread_id = ?
                   ORDER BY COALESCE(sent_at, created_at) ASC""",
                (organization_id, thread_id),
            )
            rows = await cursor.fetchall()
            return [CommunicationLog.from_row(dict(row)) for row in rows]

    async def get_case_communications(
        self, organization_id: str, case_id: str, limit: int = 20
    ) -> list[dict]:
        """Newest logs on a case as plain rows."""
        async with get_db() as db:
            cursor = await db.execute(
                """SELECT * FROM communication_logs
                   WHERE organization_id = ? AND case_id = ?
                   ORDER BY COALESCE(sent_at, created_at) DESC LIMIT ?""",
                (organization_id, case_id, limit),
            )
            rows = await cursor.fetchall()
            return [dict(row) for row in rows]

    async def list_thread_communications(
        self,
        organization_id: str,
        case_id: str | None = None,
        debtor_email: str | None = None,
        limit: int = 50,
    ) -> tuple[list[CommunicationLog], dict]:
        """Threaded messages newest first, with the case and debtor of each.

        Fetches ``limit * 3`` rows so that ``limit`` threads can usually be
        filled. The second element maps message id to
        ``{"case": ..., "debtor": ...}``.
        """
        query = """SELECT cl.*,
                          cc.status AS case_status, cc.amount_owed AS case_amount_owed,
                          cc.currency AS case_currency, cc.priority AS case_priority,
                          d.name AS debtor_name, d.company_name AS debtor_company_name,
                          d.primary_contact_email AS debtor_email
                   FROM communication_logs cl
                   LEFT JOIN collection_cases cc ON cc.id = cl.case_id
                   LEFT JOIN debtors d ON d.id = COALESCE(cl.debtor_id, cc.debtor_id)
                   WHERE cl.organization_id = ? AND cl.thread_id IS NOT NULL"""
        params: list = [organization_id]
        if case_id:
            query += " AND cl.case_id = ?"
            params.append(case_id)
        if debtor_email:
            query += " AND (cl.from_email = ? OR cl.to_email = ?)"
            params.extend([debtor_email, debtor_email])
        query += " ORDER BY COALESCE(cl.sent_at, cl.created_at) DESC LIMIT ?"
        params.append(limit * 3)

        async with get_db() as db:
            cursor = await db.execute(query, params)
            rows = [dict(r) for r in await cursor.fetchall()]

        messages = []
        related = {}
        for row in rows:
            message = CommunicationLog.from_row(row)
            messages.append(message)
            related[message.id] = {
                "case": {
                    "id": row["case_id"],
                    "status": row["case_status"],
                    "amount_owed": row["case_amount_owed"],
                    "currency": row["case_currency"],
                    "priority": row["case_priority"],
                } if row["case_status"] is not None else None,
                "debtor": {
                    "name": row["debtor_name"],
                    "company_name": row["debtor_company_name"],
                    "email": row["debtor_email"],
                } if row["debtor_name"] is not None else None,
            }
        return messages, related

    async def record_email_analysis(
        self, organization_id: str, case_id: str, from_email: str, analysis: EmailAnalysis
    ) -> Optional[str]:
        """Attach an analysis to the newest log from this sender on the case.

        Returns the updated log id, or None when no log matched.
        """
        async with get_db() as db:
            cursor = await db.execute(
                """SELECT id FROM communication_logs
                   WHERE organization_id = ? AND case_id = ? AND from_email = ?
                   ORDER BY COALESCE(sent_at, created_at) DESC LIMIT 1""",
                (organization_id, case_id, from_email),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            await db.execute(
                """UPDATE communication_logs SET
                   ai_sentiment = ?, ai_summary = ?, ai_flags = ?
                   WHERE id = ? AND organization_id = ?""",
                (analysis.sentiment, "; ".join(analysis.key_points),
                 json.dumps(analysis.compliance_flags), row["id"], organization_id),
            )
            await db.commit()
            return row["id"]
