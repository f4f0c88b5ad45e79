"""Free-tier claims and prepaid render credits.

State lives in the kv_store table under namespaced keys:
    guest_free_used:<session id>  -> {"used": true}
    credits:<email>               -> {"balance": n}
"""

from typing import Callable

import structlog

logger = structlog.get_logger()

GUEST_KEY_PREFIX = "guest_free_used:"
USER_KEY_PREFIX = "credits:"
GUEST_FREE_CLAIMS = 1
WELCOME_BONUS_CREDITS = 2


def _user_key(email: str) -> str:
    return f"{USER_KEY_PREFIX}{email.strip().lower()}"


class CreditLedger:
    """Reads and spends free claims and credits through a UnitOfWork."""

    def __init__(self, uow_factory: Callable):
        self.uow_factory = uow_factory

    async def guest_credits(self, session_id: str) -> int:
        async with await self.uow_factory() as uow:
            used = await uow.kv.get(f"{GUEST_KEY_PREFIX}{session_id}")
        return 0 if used else GUEST_FREE_CLAIMS

    async def user_credits(self, email: str) -> int:
        """Current balance; the first lookup grants the welcome bonus."""
        async with await self.uow_factory() as uow:
            return await self._user_balance(uow, email)

    async def spend_credit(self, email: str | None = None, session_id: str | None = None) -> bool:
        """Spend one credit (user) or the free claim (guest).

        Returns:
            True if a credit was spent, False if none was left
        """
        if email:
            async with await self.uow_factory() as uow:
                balance = await self._user_balance(uow, email)
                if balance <= 0:
                    logger.info("credits.exhausted", email=email)
                    return False
                await uow.kv.set(_user_key(email), {"balance": balance - 1})
            logger.info("credits.spent", email=email, remaining=balance - 1)
            return True

        if not session_id:
            return False

        key = f"{GUEST_KEY_PREFIX}{session_id}"
        async with await self.uow_factory() as uow:
            if await uow.kv.get(key):
                logger.info("credits.guest_claim_used", session_id=session_id)
                return False
            await uow.kv.set(key, {"used": True})
        logger.info("credits.guest_claimed", session_id=session_id)
        return True

    async def add_credits(self, email: str, amount: int) -> int:
        """Add purchased credits.

        Returns:
            New balance
        """
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive, got {amount}")

        async with await self.uow_factory() as uow:
            balance = await self._user_balance(uow, email) + amount
            await uow.kv.set(_user_key(email), {"balance": balance})
        logger.info("credits.added", email=email, amount=amount, balance=balance)
        return balance

    async def _user_balance(self, uow, email: str) -> int:
        key = _user_key(email)
        stored = await uow.kv.get(key)
        if stored is None:
            await uow.kv.set(key, {"balance": WELCOME_BONUS_CREDITS})
            logger.info("credits.welcome_bonus", email=email, amount=WELCOME_BONUS_CREDITS)
            return WELCOME_BONUS_CREDITS
        return int(stored.get("balance", 0))
