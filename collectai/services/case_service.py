import json
import uuid

from collectai.database import get_db
from collectai.models.schemas import CaseCreate, DebtorCreate


class CaseService:

    async def create_debtor(self, debtor: DebtorCreate) -> dict:
        debtor_id = str(uuid.uuid4())
        async with get_db() as db:
            await db.execute(
                """INSERT INTO debtors
                   (id, organization_id, name, company_name,
                    primary_contact_email, country, language_preference)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (debtor_id, debtor.organization_id, debtor.name,
                 debtor.company_name, debtor.primary_contact_email,
                 debtor.country, debtor.language_preference),
            )
            await db.commit()
            cursor = await db.execute("SELECT * FROM debtors WHERE id = ?", (debtor_id,))
            row = await cursor.fetchone()
            return dict(row)

    async def create_case(self, case: CaseCreate) -> dict:
        """Insert a case. Raises ``sqlite3.IntegrityError`` for an unknown debtor."""
        case_id = str(uuid.uuid4())
        async with get_db() as db:
            await db.execute(
                """INSERT INTO collection_cases
                   (id, organization_id, debtor_id, status, amount_owed,
                    currency, priority)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (case_id, case.organization_id, case.debtor_id, case.status,
                 case.amount_owed, case.currency, case.priority),
            )
            await db.commit()
            cursor = await db.execute(
                "SELECT * FROM collection_cases WHERE id = ?", (case_id,)
            )
            row = await cursor.fetchone()
            return dict(row)

    async def get_case(self, case_id: str) -> dict | None:
        """The case with its debtor nested under ``debtor``."""
        async with get_db() as db:
            cursor = await db.execute(
                "SELECT * FROM collection_cases WHERE id = ?", (case_id,)
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            case = dict(row)
            if case.get("ai_strategy"):
                case["ai_strategy"] = json.loads(case["ai_strategy"])
            cursor = await db.execute(
                "SELECT * FROM debtors WHERE id = ?", (case["debtor_id"],)
            )
            debtor = await cursor.fetchone()
            case["debtor"] = dict(debtor) if debtor else None
            return case

    async def save_strategy(
        self, case_id: str, strategy: dict, generated_at: str, next_action_due: str
    ) -> None:
        async with get_db() as db:
            await db.execute(
                """UPDATE collection_cases SET
                   ai_strategy = ?, strategy_generated_at = ?, next_action_due = ?
                   WHERE id = ?""",
                (json.dumps(strategy), generated_at, next_action_due, case_id),
            )
            await db.commit()
