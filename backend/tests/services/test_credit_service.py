"""Tests for the credit ledger: reservation, refund, grants and free allowance."""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import select

from cvbuilder.core.exceptions import InsufficientCreditsError
from cvbuilder.db.models.credit_usage import CreditUsage
from cvbuilder.domain.credits import CreditAction
from cvbuilder.services import credit_service
from cvbuilder.services.system_config_service import upsert_config

pytestmark = pytest.mark.integration


async def _usage_rows(factory, user_id):
    async with factory() as session:
        result = await session.execute(select(CreditUsage).where(CreditUsage.user_id == user_id))
        return list(result.scalars().all())


class TestFreeAllowance:
    async def test_new_row_gets_free_credits(self, db, make_user):
        user = await make_user()
        credits = await credit_service.get_or_create_credits(user.id)

        assert credits.balance == Decimal("3.00")
        assert credits.total_purchased == Decimal("3.00")
        assert credits.total_used == Decimal("0.00")

    async def test_free_credits_follow_system_config(self, db, make_user):
        async with db() as session:
            await upsert_config(session, "free_credits", "5")
            await session.commit()

        user = await make_user()
        assert await credit_service.get_balance(user.id) == Decimal("5.00")

    async def test_get_or_create_is_idempotent(self, db, make_user):
        user = await make_user()
        first = await credit_service.get_or_create_credits(user.id)
        second = await credit_service.get_or_create_credits(user.id)
        assert first.id == second.id


class TestCost:
    async def test_defaults(self, db):
        assert await credit_service.get_cost(CreditAction.CV_GENERATION) == Decimal("1.00")
        assert await credit_service.get_cost(CreditAction.ATS_OPTIMIZATION) == Decimal("0.50")

    async def test_non_spending_action_rejected(self, db):
        with pytest.raises(ValueError):
            await credit_service.get_cost(CreditAction.PURCHASE)


class TestReserve:
    async def test_reserve_decrements_balance(self, db, make_user):
        user = await make_user()
        reservation = await credit_service.reserve(user.id, Decimal("1"), CreditAction.CV_GENERATION)

        credits = await credit_service.get_or_create_credits(user.id)
        assert reservation.amount == Decimal("1.00")
        assert credits.balance == Decimal("2.00")
        assert credits.total_used == Decimal("1.00")

    async def test_reserve_writes_negative_spend_row(self, db, make_user):
        user = await make_user()
        reservation = await credit_service.reserve(user.id, Decimal("1"), CreditAction.CV_GENERATION)

        rows = await _usage_rows(db, user.id)
        assert [(r.id, r.action, r.credits, r.document_id) for r in rows] == [
            (reservation.usage_id, "CV_GENERATION", Decimal("-1.00"), None)
        ]

    async def test_insufficient_balance_raises_and_changes_nothing(self, db, make_user):
        user = await make_user(balance=Decimal("0.50"))

        with pytest.raises(InsufficientCreditsError) as exc_info:
            await credit_service.reserve(user.id, Decimal("1"), CreditAction.CV_GENERATION)

        assert exc_info.value.required == Decimal("1.00")
        assert exc_info.value.balance == Decimal("0.50")
        assert await credit_service.get_balance(user.id) == Decimal("0.50")
        assert await _usage_rows(db, user.id) == []

    async def test_exact_balance_can_be_spent(self, db, make_user):
        user = await make_user(balance=Decimal("0.50"))
        await credit_service.reserve(user.id, Decimal("0.5"), CreditAction.ATS_OPTIMIZATION)
        assert await credit_service.get_balance(user.id) == Decimal("0.00")

    async def test_concurrent_reservations_never_overspend(self, db, make_user):
        user = await make_user(balance=Decimal("2"))

        results = await asyncio.gather(
            *(credit_service.reserve(user.id, Decimal("1"), CreditAction.CV_GENERATION) for _ in range(4)),
            return_exceptions=True,
        )

        succeeded = [r for r in results if not isinstance(r, Exception)]
        failed = [r for r in results if isinstance(r, InsufficientCreditsError)]
        assert len(succeeded) == 2
        assert len(failed) == 2
        assert await credit_service.get_balance(user.id) == Decimal("0.00")


class TestSettleAndRefund:
    async def test_settle_attaches_details_to_spend_row(self, db, make_user):
        user = await make_user()
        reservation = await credit_service.reserve(user.id, Decimal("1"), CreditAction.CV_GENERATION)

        async with db() as session:
            await credit_service.settle(
                session, reservation, None, description="CV - Engineer", metadata={"provider": "ANTHROPIC"}
            )
            await session.commit()

        rows = await _usage_rows(db, user.id)
        assert len(rows) == 1
        assert rows[0].id == reservation.usage_id
        assert rows[0].credits == Decimal("-1.00")
        assert rows[0].description == "CV - Engineer"
        assert rows[0].details == {"provider": "ANTHROPIC"}

    async def test_settle_rolled_back_with_callers_transaction(self, db, make_user):
        user = await make_user()
        reservation = await credit_service.reserve(user.id, Decimal("1"), CreditAction.CV_GENERATION)

        async with db() as session:
            await credit_service.settle(session, reservation, None, metadata={"provider": "ANTHROPIC"})
            await session.rollback()

        rows = await _usage_rows(db, user.id)
        assert rows[0].details is None

    async def test_refund_restores_balance_and_offsets_spend(self, db, make_user):
        user = await make_user()
        reservation = await credit_service.reserve(user.id, Decimal("1"), CreditAction.COVER_LETTER_GENERATION)

        await credit_service.refund(reservation, reason="ai_generation_failed: AIProviderError")

        credits = await credit_service.get_or_create_credits(user.id)
        assert credits.balance == Decimal("3.00")
        assert credits.total_used == Decimal("0.00")

        rows = {r.action: r for r in await _usage_rows(db, user.id)}
        assert set(rows) == {"COVER_LETTER_GENERATION", "REFUND"}
        assert rows["COVER_LETTER_GENERATION"].credits == Decimal("-1.00")
        assert rows["REFUND"].credits == Decimal("1.00")
        assert rows["REFUND"].details == {
            "refunded_action": "COVER_LETTER_GENERATION",
            "usage_id": str(reservation.usage_id),
        }

    async def test_rows_sum_to_balance_change(self, db, make_user):
        user = await make_user()
        kept = await credit_service.reserve(user.id, Decimal("1"), CreditAction.CV_GENERATION)
        refunded = await credit_service.reserve(user.id, Decimal("0.5"), CreditAction.ATS_OPTIMIZATION)
        await credit_service.refund(refunded, reason="generation_cancelled: CancelledError")
        await credit_service.grant(user.id, Decimal("10"), CreditAction.PURCHASE, description="Purchased 10 credits")

        rows = await _usage_rows(db, user.id)
        balance = await credit_service.get_balance(user.id)
        assert kept.amount == Decimal("1.00")
        assert balance == Decimal("12.00")
        assert sum(r.credits for r in rows) == balance - Decimal("3.00")


class TestGrant:
    async def test_grant_adds_to_balance_and_purchased(self, db, make_user):
        user = await make_user()
        await credit_service.grant(user.id, Decimal("25"), CreditAction.PURCHASE, description="Purchased 25 credits")

        credits = await credit_service.get_or_create_credits(user.id)
        assert credits.balance == Decimal("28.00")
        assert credits.total_purchased == Decimal("28.00")

        rows = await _usage_rows(db, user.id)
        assert [(r.action, r.credits) for r in rows] == [("PURCHASE", Decimal("25.00"))]

    async def test_grant_creates_missing_row(self, db, make_user):
        user = await make_user()
        # Users created outside registration may have no balance row yet
        async with db() as session:
            from sqlalchemy import delete

            from cvbuilder.db.models.user_credits import UserCredits

            await session.execute(delete(UserCredits).where(UserCredits.user_id == user.id))
            await session.commit()

        await credit_service.grant(user.id, Decimal("2"), CreditAction.ADMIN_GRANT, description="Support")
        assert await credit_service.get_balance(user.id) == Decimal("5.00")


class TestLowBalance:
    async def test_threshold_is_inclusive(self, db):
        assert await credit_service.is_low(Decimal("2.00")) is True
        assert await credit_service.is_low(Decimal("2.50")) is False
