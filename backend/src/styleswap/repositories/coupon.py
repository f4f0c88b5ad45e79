"""Coupon repository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from styleswap.models.coupon import Coupon


class CouponRepository:
    """Repository for Coupon entities (read-mostly)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, coupon: Coupon) -> Coupon:
        coupon.code = coupon.code.strip().upper()
        self.session.add(coupon)
        await self.session.flush()
        return coupon

    async def get_active_by_code(self, code: str) -> Coupon | None:
        """Look up an active coupon by user-entered code.

        Args:
            code: Code as typed; trimmed and upper-cased before matching

        Returns:
            Active coupon if found, None otherwise
        """
        normalized = code.strip().upper()
        if not normalized:
            return None
        result = await self.session.execute(
            select(Coupon).where(
                Coupon.code == normalized,  # type: ignore[arg-type]
                Coupon.is_active == True,  # type: ignore[arg-type]  # noqa: E712
            )
        )
        return result.scalar_one_or_none()
