"""In-memory user account store with usage counters."""

from __future__ import annotations

import logging
from typing import Optional

from ..domain.entities import UsageCounters, UserAccount, UserContext
from ..domain.ports import IUserStore

logger = logging.getLogger(__name__)


class InMemoryUserStore(IUserStore):
    """Tracks accounts seen in validated tokens and their usage.

    Accounts are keyed by user id. Registration and credentials belong to
    the external account service; an account record appears here the
    first time its token is used.
    """

    def __init__(self):
        self._accounts: dict[str, UserAccount] = {}

    async def ensure(self, context: UserContext) -> UserAccount:
        account = self._accounts.get(context.user_id)
        if account is None:
            account = UserAccount(
                user_id=context.user_id,
                email=context.email,
                username=context.username,
            )
            self._accounts[context.user_id] = account
            logger.info(f"Tracking usage for new user {context.user_id}")
        return account

    async def get(self, user_id: str) -> Optional[UserAccount]:
        return self._accounts.get(user_id)

    async def record_usage(self, user_id: str, tokens: int) -> UsageCounters:
        """Add one request and ``tokens`` to the user's counters.

        Unknown users get an account on the spot so usage is never lost.
        """
        if tokens < 0:
            raise ValueError("tokens must be non-negative")

        account = self._accounts.get(user_id)
        if account is None:
            account = UserAccount(user_id=user_id)
            self._accounts[user_id] = account

        account.usage.request_count += 1
        account.usage.token_count += tokens
        return UsageCounters(
            request_count=account.usage.request_count,
            token_count=account.usage.token_count,
        )

    async def close(self) -> None:
        self._accounts.clear()
