"""Income/expense history queries used by goal auto-tracking."""

from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from goaltrack.models.transaction import Transaction
from goaltrack.logging_config import get_logger

logger = get_logger(__name__)


def _as_date(value: Any) -> Optional[date_type]:
    """Normalize a tracking-rule boundary (ISO string, datetime or date) to a date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date_type):
        return value
    return datetime.fromisoformat(str(value)).date()


class TransactionHistory:
    """Sums a user's transactions matching a goal's tracking rules."""

    def __init__(self, db: AsyncSession):
        """Initialize transaction history.

        Args:
            db: Database session
        """
        self.db = db

    def _base_conditions(self, user_id: UUID, rules: dict[str, Any]) -> list:
        conditions = [
            Transaction.user_id == user_id,
            Transaction.deleted_at.is_(None),
        ]

        start_date = _as_date(rules.get("start_date"))
        if start_date:
            conditions.append(Transaction.date >= start_date)
        end_date = _as_date(rules.get("end_date"))
        if end_date:
            conditions.append(Transaction.date <= end_date)

        if rules.get("categories"):
            conditions.append(Transaction.category.in_(rules["categories"]))
        if rules.get("exclude_categories"):
            conditions.append(Transaction.category.not_in(rules["exclude_categories"]))

        return conditions

    async def _sum(self, conditions: list) -> Decimal:
        stmt = select(func.coalesce(func.sum(Transaction.amount), 0)).where(and_(*conditions))
        result = await self.db.execute(stmt)
        return Decimal(str(result.scalar_one()))

    async def income_total(self, user_id: UUID, rules: dict[str, Any]) -> Decimal:
        """Total income matching the rules, honouring the source allow list.

        Args:
            user_id: Owner of the transactions
            rules: Goal tracking rules

        Returns:
            Summed income amount
        """
        conditions = self._base_conditions(user_id, rules)
        conditions.append(Transaction.type == "INCOME")
        if rules.get("sources"):
            conditions.append(Transaction.source.in_(rules["sources"]))
        return await self._sum(conditions)

    async def expense_total(self, user_id: UUID, rules: dict[str, Any]) -> Decimal:
        """Total expenses matching the rules. The source list does not apply."""
        conditions = self._base_conditions(user_id, rules)
        conditions.append(Transaction.type == "EXPENSE")
        return await self._sum(conditions)

    async def net_progress(self, user_id: UUID, goal_type: str, rules: dict[str, Any]) -> Decimal:
        """Net amount a goal of ``goal_type`` has earned from matching history.

        Income always counts towards the goal. Expenses are subtracted for
        expense_reduction goals, added for debt_payoff goals and ignored for
        every other type.

        Args:
            user_id: Owner of the transactions
            goal_type: Goal type
            rules: Goal tracking rules

        Returns:
            Net progress amount (may be negative)
        """
        transaction_types = rules.get("transaction_types")
        total = Decimal("0")

        if not transaction_types or "income" in transaction_types:
            total += await self.income_total(user_id, rules)

        if not transaction_types or "expense" in transaction_types:
            expenses = await self.expense_total(user_id, rules)
            if goal_type == "expense_reduction":
                # Raw subtraction; there is no stored baseline spend
                total -= expenses
            elif goal_type == "debt_payoff":
                total += expenses

        logger.debug(
            "Tracked transactions summed",
            user_id=str(user_id),
            goal_type=goal_type,
            net=str(total),
        )
        return total
