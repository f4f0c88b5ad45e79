"""Free claim and credit ledger tests."""

import pytest

from styleswap.services.credits import GUEST_FREE_CLAIMS, WELCOME_BONUS_CREDITS, CreditLedger


@pytest.fixture
def ledger(uow_factory):
    return CreditLedger(uow_factory)


@pytest.mark.asyncio
async def test_guest_gets_one_free_claim(ledger):
    assert await ledger.guest_credits("session-1") == GUEST_FREE_CLAIMS

    assert await ledger.spend_credit(session_id="session-1") is True
    assert await ledger.spend_credit(session_id="session-1") is False

    assert await ledger.guest_credits("session-1") == 0
    assert await ledger.guest_credits("session-2") == GUEST_FREE_CLAIMS


@pytest.mark.asyncio
async def test_first_lookup_grants_welcome_bonus(ledger):
    assert await ledger.user_credits("New@Example.com") == WELCOME_BONUS_CREDITS
    # Emails are case-insensitive and the bonus is granted once
    assert await ledger.user_credits("new@example.com") == WELCOME_BONUS_CREDITS


@pytest.mark.asyncio
async def test_user_spends_until_empty(ledger):
    for _ in range(WELCOME_BONUS_CREDITS):
        assert await ledger.spend_credit(email="user@example.com") is True

    assert await ledger.spend_credit(email="user@example.com") is False
    assert await ledger.user_credits("user@example.com") == 0


@pytest.mark.asyncio
async def test_add_credits(ledger):
    assert await ledger.add_credits("user@example.com", 10) == WELCOME_BONUS_CREDITS + 10

    with pytest.raises(ValueError):
        await ledger.add_credits("user@example.com", 0)


@pytest.mark.asyncio
async def test_spend_without_identity_fails(ledger):
    assert await ledger.spend_credit() is False
