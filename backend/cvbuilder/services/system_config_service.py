"""Read and write admin-editable business settings (``system_config`` table)."""

from decimal import Decimal, InvalidOperation

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cvbuilder.db.models.system_config import SystemConfig
from cvbuilder.domain.credits import SYSTEM_CONFIG_DEFAULTS

logger = structlog.get_logger(__name__)


async def get_config_value(session: AsyncSession, key: str) -> str | None:
    """Return the stored value for ``key``, falling back to the code default."""
    result = await session.execute(select(SystemConfig.value).where(SystemConfig.key == key))
    value = result.scalar_one_or_none()
    if value is not None:
        return value
    default = SYSTEM_CONFIG_DEFAULTS.get(key)
    return default[0] if default else None


async def get_config_decimal(session: AsyncSession, key: str) -> Decimal:
    """Return ``key`` as a Decimal. A non-numeric stored value falls back to the default."""
    raw = await get_config_value(session, key)
    try:
        return Decimal(raw)
    except (InvalidOperation, TypeError):
        logger.warning("system_config_invalid_number", key=key, value=raw)
        return Decimal(SYSTEM_CONFIG_DEFAULTS[key][0])


async def get_config_bool(session: AsyncSession, key: str) -> bool:
    raw = await get_config_value(session, key)
    return (raw or "").strip().lower() == "true"


async def list_config(session: AsyncSession) -> list[dict]:
    """All settings, stored rows first, then defaults not yet persisted."""
    result = await session.execute(select(SystemConfig).order_by(SystemConfig.key))
    rows = result.scalars().all()
    seen = {row.key for row in rows}
    items = [{"key": r.key, "value": r.value, "description": r.description} for r in rows]
    for key, (value, description) in SYSTEM_CONFIG_DEFAULTS.items():
        if key not in seen:
            items.append({"key": key, "value": value, "description": description})
    return items


async def upsert_config(session: AsyncSession, key: str, value: str, description: str | None = None) -> SystemConfig:
    """Create or update a setting. Caller commits."""
    result = await session.execute(select(SystemConfig).where(SystemConfig.key == key))
    row = result.scalar_one_or_none()
    if row is None:
        default_description = SYSTEM_CONFIG_DEFAULTS.get(key, ("", ""))[1]
        row = SystemConfig(key=key, value=value, description=description or default_description)
        session.add(row)
    else:
        row.value = value
        if description is not None:
            row.description = description
    await session.flush()
    return row
