"""Transaction manager — the only place currency is spent.

A premium purchase runs as one unit against the account store:

  1. Take the exclusive lock on the user's account.
  2. Re-check that the purchase does not already exist.
  3. Re-check the balance under the lock.
  4. Deduct the cost.
  5. Insert the purchase record.
  6. Insert the choice-history entry.
  7. Commit.

The store only commits when the unit exits cleanly, so a failure anywhere in
steps 2–6 (including cancellation) leaves the balance and purchase records
exactly as they were. Steps 2 and 3 are repeated under the lock because the
caller's earlier reads may be stale by the time the lock is held. Ownership
is checked first: a request that lost the race to buy the same choice must
see AlreadyPurchased, not InsufficientFunds for money the winner just spent.
"""

from __future__ import annotations

import logging
from contextlib import AbstractAsyncContextManager
from typing import Protocol

from branching_tales.errors import (
    AlreadyPurchasedError,
    EngineError,
    InsufficientFundsError,
    PersistenceError,
)
from branching_tales.models import (
    Account,
    ChoiceHistoryEntry,
    PurchaseRecord,
    PurchaseResult,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol: what the transaction manager needs from an account store
# ---------------------------------------------------------------------------

class AccountStore(Protocol):
    async def get_balance(self, user_id: str) -> int: ...

    async def get_account(self, user_id: str) -> Account: ...

    def locked_account(self, user_id: str) -> AbstractAsyncContextManager[Account]: ...


# ---------------------------------------------------------------------------
# TransactionManager
# ---------------------------------------------------------------------------

class TransactionManager:
    def __init__(self, accounts: AccountStore) -> None:
        self._accounts = accounts

    async def purchase_premium_choice(
        self, user_id: str, story_id: str, choice_id: str, cost: int
    ) -> PurchaseResult:
        try:
            new_balance = await self._purchase(user_id, story_id, choice_id, cost)
        except EngineError as e:
            logger.info(
                "purchase rejected user=%s choice=%s code=%s: %s",
                user_id, choice_id, e.code, e,
            )
            return PurchaseResult(success=False, error=e.code, message=e.user_message)
        except OSError as e:
            logger.error("purchase rolled back user=%s choice=%s: %s", user_id, choice_id, e)
            err = PersistenceError(str(e))
            return PurchaseResult(success=False, error=err.code, message=err.user_message)

        logger.info(
            "purchase committed user=%s story=%s choice=%s cost=%d balance=%d",
            user_id, story_id, choice_id, cost, new_balance,
        )
        return PurchaseResult(success=True, new_balance=new_balance)

    async def _purchase(self, user_id: str, story_id: str, choice_id: str, cost: int) -> int:
        if cost < 0:
            raise ValueError("cost must be non-negative")

        async with self._accounts.locked_account(user_id) as account:
            if account.owns(choice_id):
                raise AlreadyPurchasedError(f"choice {choice_id!r} already owned")
            if account.balance < cost:
                raise InsufficientFundsError(
                    f"balance {account.balance} is below cost {cost}"
                )

            account.balance -= cost
            self._insert_purchase(account, story_id, choice_id, cost)
            self._insert_history(account, story_id, choice_id)
            return account.balance

    def _insert_purchase(self, account: Account, story_id: str, choice_id: str, cost: int) -> None:
        account.purchases.append(
            PurchaseRecord(choice_id=choice_id, story_id=story_id, cost=cost)
        )

    def _insert_history(self, account: Account, story_id: str, choice_id: str) -> None:
        account.choice_history.append(ChoiceHistoryEntry(choice_id=choice_id, story_id=story_id))
