"""Credit ledger: balances, reservations and the usage audit log.

Spending is two-phase. ``reserve`` takes the credits up front with a single
conditional UPDATE so two concurrent requests can never both spend the last
credit, and writes the negative spend row in the same transaction. The caller
then either ``settle``s (ties that row to the document it paid for) or
``refund``s (puts the credits back with an offsetting REFUND row).

Every balance change has exactly one usage row, signed like the change, so the
rows of a user always sum to ``balance`` minus the opening free credits.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cvbuilder.core.exceptions import InsufficientCreditsError
from cvbuilder.db.base import get_session_factory
from cvbuilder.db.models.credit_usage import CreditUsage
from cvbuilder.db.models.user_credits import UserCredits
from cvbuilder.domain.credits import SPEND_ACTIONS, CreditAction, to_credits
from cvbuilder.services.system_config_service import get_config_decimal

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CreditReservation:
    """Credits already taken from a balance, awaiting settle or refund."""

    user_id: uuid.UUID
    amount: Decimal
    action: CreditAction
    usage_id: uuid.UUID


async def _load_credits(session: AsyncSession, user_id: uuid.UUID) -> UserCredits | None:
    result = await session.execute(select(UserCredits).where(UserCredits.user_id == user_id))
    return result.scalar_one_or_none()


async def ensure_credits_row(session: AsyncSession, user_id: uuid.UUID) -> UserCredits:
    """Return the balance row inside ``session``, adding it with the free allowance if missing.

    Flushes but does not commit. A concurrent insert surfaces as
    ``IntegrityError`` at flush time.
    """
    credits = await _load_credits(session, user_id)
    if credits is not None:
        return credits

    free = to_credits(await get_config_decimal(session, "free_credits"))
    credits = UserCredits(user_id=user_id, balance=free, total_purchased=free, total_used=Decimal("0"))
    session.add(credits)
    await session.flush()
    logger.info("credits_initialized", user_id=str(user_id), free_credits=str(free))
    return credits


async def get_or_create_credits(user_id: uuid.UUID) -> UserCredits:
    """Return the user's balance row, creating it with ``free_credits`` on first access."""
    factory = get_session_factory()

    async with factory() as session:
        try:
            credits = await ensure_credits_row(session, user_id)
            await session.commit()
            return credits
        except IntegrityError:
            # Another request created the row first
            await session.rollback()

    async with factory() as session:
        credits = await _load_credits(session, user_id)
        if credits is None:
            raise RuntimeError(f"credits row for {user_id} vanished after conflict")
        return credits


async def get_cost(action: CreditAction) -> Decimal:
    """Credit cost of a spending action, from system config with code defaults."""
    if action not in SPEND_ACTIONS:
        raise ValueError(f"{action} does not spend credits")

    factory = get_session_factory()
    async with factory() as session:
        return to_credits(await get_config_decimal(session, SPEND_ACTIONS[action]))


async def reserve(user_id: uuid.UUID, amount: Decimal, action: CreditAction) -> CreditReservation:
    """Atomically take ``amount`` from the balance.

    Raises:
        InsufficientCreditsError: balance is below ``amount``. Nothing changes.
    """
    amount = to_credits(amount)
    await get_or_create_credits(user_id)

    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(
            update(UserCredits)
            .where(UserCredits.user_id == user_id, UserCredits.balance >= amount)
            .values(
                balance=UserCredits.balance - amount,
                total_used=UserCredits.total_used + amount,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await session.rollback()
            current = await _load_credits(session, user_id)
            balance = to_credits(current.balance) if current else Decimal("0.00")
            logger.info(
                "credits_insufficient",
                user_id=str(user_id),
                action=action.value,
                required=str(amount),
                balance=str(balance),
            )
            raise InsufficientCreditsError(required=amount, balance=balance)
        usage_id = uuid.uuid4()
        session.add(
            CreditUsage(
                id=usage_id,
                user_id=user_id,
                credits=-amount,
                action=action.value,
            )
        )
        await session.commit()

    logger.info("credits_reserved", user_id=str(user_id), action=action.value, amount=str(amount))
    return CreditReservation(user_id=user_id, amount=amount, action=action, usage_id=usage_id)


async def settle(
    session: AsyncSession,
    reservation: CreditReservation,
    document_id: uuid.UUID | None,
    description: str | None = None,
    metadata: dict | None = None,
) -> None:
    """Tie the spend row of ``reservation`` to what it paid for.

    Runs inside the caller's transaction, so the row only points at a document
    that was actually committed.
    """
    values: dict = {"document_id": document_id}
    if description is not None:
        values["description"] = description
    if metadata is not None:
        values["details"] = metadata
    await session.execute(
        update(CreditUsage)
        .where(CreditUsage.id == reservation.usage_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


async def refund(reservation: CreditReservation, reason: str) -> None:
    """Return reserved credits to the balance and log a REFUND row."""
    factory = get_session_factory()
    async with factory() as session:
        await session.execute(
            update(UserCredits)
            .where(UserCredits.user_id == reservation.user_id)
            .values(
                balance=UserCredits.balance + reservation.amount,
                total_used=UserCredits.total_used - reservation.amount,
            )
            .execution_options(synchronize_session=False)
        )
        session.add(
            CreditUsage(
                user_id=reservation.user_id,
                credits=reservation.amount,
                action=CreditAction.REFUND.value,
                description=reason[:500],
                details={"refunded_action": reservation.action.value, "usage_id": str(reservation.usage_id)},
            )
        )
        await session.commit()

    logger.warning(
        "credits_refunded",
        user_id=str(reservation.user_id),
        action=reservation.action.value,
        amount=str(reservation.amount),
        reason=reason,
    )


async def grant(
    user_id: uuid.UUID,
    amount: Decimal,
    action: CreditAction,
    description: str,
    metadata: dict | None = None,
    session: AsyncSession | None = None,
) -> None:
    """Add credits (purchase, promo code, admin grant) and log the usage row.

    With ``session`` the grant joins the caller's transaction and the caller
    commits. Without it the grant commits on its own.
    """
    amount = to_credits(amount)

    async def _apply(s: AsyncSession) -> None:
        await ensure_credits_row(s, user_id)
        await s.execute(
            update(UserCredits)
            .where(UserCredits.user_id == user_id)
            .values(
                balance=UserCredits.balance + amount,
                total_purchased=UserCredits.total_purchased + amount,
            )
            .execution_options(synchronize_session=False)
        )
        s.add(
            CreditUsage(
                user_id=user_id,
                credits=amount,
                action=action.value,
                description=description,
                details=metadata,
            )
        )

    if session is not None:
        await _apply(session)
    else:
        factory = get_session_factory()
        async with factory() as own:
            await _apply(own)
            await own.commit()

    logger.info("credits_granted", user_id=str(user_id), action=action.value, amount=str(amount))


async def get_balance(user_id: uuid.UUID) -> Decimal:
    credits = await get_or_create_credits(user_id)
    return to_credits(credits.balance)


async def recent_usage(user_id: uuid.UUID, limit: int = 10) -> list[CreditUsage]:
    factory = get_session_factory()
    async with factory() as session:
        result = await session.execute(
            select(CreditUsage)
            .where(CreditUsage.user_id == user_id)
            .order_by(CreditUsage.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


async def is_low(balance: Decimal) -> bool:
    """True when ``balance`` is at or below the low-credit warning threshold."""
    factory = get_session_factory()
    async with factory() as session:
        threshold = await get_config_decimal(session, "low_credit_threshold")
    return balance <= threshold
