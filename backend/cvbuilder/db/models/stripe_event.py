"""StripeWebhookEvent model: claimed webhook event ids."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, String

from cvbuilder.db.base import Base


class StripeWebhookEvent(Base):
    """A row per processed Stripe event id; the primary key makes replays a no-op."""

    __tablename__ = "stripe_webhook_events"

    event_id = Column(String(255), primary_key=True)
    event_type = Column(String(100), nullable=True)
    processed_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
