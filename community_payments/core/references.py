"""Payment reference generation."""
import secrets

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from community_payments.database.models import Payment

# 16 random bytes -> 32 hex characters
REFERENCE_ENTROPY_BYTES = 16


def new_reference(prefix: str = "MCB") -> str:
    """
    Mint a payment reference.

    Args:
        prefix: Reference prefix, e.g. ``MCB``

    Returns:
        str: ``<PREFIX>_<32 upper-case hex characters>``
    """
    return f"{prefix}_{secrets.token_hex(REFERENCE_ENTROPY_BYTES).upper()}"


async def reference_in_use(db: AsyncSession, reference: str) -> bool:
    """Check whether any payment already uses the reference, internal or external."""
    stmt = select(Payment.id).where(
        or_(Payment.reference == reference, Payment.external_reference == reference)
    ).limit(1)
    result = await db.execute(stmt)
    return result.scalar_one_or_none() is not None
