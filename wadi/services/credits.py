"""Credit ledger with atomic debit and refund support."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wadi.config import settings
from wadi.errors import InvalidInputError
from wadi.models.credit import CreditAccount, CreditHistory

logger = logging.getLogger(__name__)


@dataclass
class DebitResult:
    success: bool
    new_balance: int


class CreditLedger:
    """Per-user credit balance plus an append-only usage history.

    Debits are a single conditional ``UPDATE ... WHERE credits >= amount``
    so two concurrent debits can never both drain the same credit.
    """

    def __init__(self, db: Session, initial_credits: Optional[int] = None):
        self.db = db
        self.initial_credits = settings.INITIAL_CREDITS if initial_credits is None else initial_credits

    def _ensure_account(self, user_id: str) -> CreditAccount:
        account = self.db.get(CreditAccount, user_id)
        if account:
            return account

        account = CreditAccount(user_id=user_id, credits=self.initial_credits, credits_used=0)
        self.db.add(account)
        try:
            self.db.commit()
            logger.info(f"Opened credit account for user {user_id} with {self.initial_credits} credits")
        except IntegrityError:
            # Opened concurrently by another request
            self.db.rollback()
            account = self.db.get(CreditAccount, user_id)
        return account

    def get_account(self, user_id: str) -> CreditAccount:
        account = self._ensure_account(user_id)
        self.db.refresh(account)
        return account

    def get_balance(self, user_id: str) -> int:
        return self.get_account(user_id).credits

    def debit(
        self,
        user_id: str,
        amount: int,
        reason: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> DebitResult:
        """
        Deduct credits if, and only if, the balance covers the amount.

        Returns:
            DebitResult; success is False (and nothing changed) when the
            balance is insufficient
        """
        self._check_amount(amount)
        self._ensure_account(user_id)

        result = self.db.execute(
            update(CreditAccount)
            .where(CreditAccount.user_id == user_id, CreditAccount.credits >= amount)
            .values(
                credits=CreditAccount.credits - amount,
                credits_used=CreditAccount.credits_used + amount,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            self.db.rollback()
            balance = self.get_balance(user_id)
            logger.info(f"Debit of {amount} refused for user {user_id}: balance {balance}")
            return DebitResult(success=False, new_balance=balance)

        self.db.add(
            CreditHistory(
                user_id=user_id,
                entry_type="debit",
                amount=amount,
                reason=reason,
                meta=metadata or {},
            )
        )
        self.db.commit()

        balance = self.get_balance(user_id)
        logger.info(f"Debited {amount} credits from user {user_id} ({reason}), balance {balance}")
        return DebitResult(success=True, new_balance=balance)

    def credit(
        self,
        user_id: str,
        amount: int,
        reason: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Add credits (purchases, refunds). Returns the new balance."""
        self._check_amount(amount)
        self._ensure_account(user_id)

        self.db.execute(
            update(CreditAccount)
            .where(CreditAccount.user_id == user_id)
            .values(credits=CreditAccount.credits + amount)
            .execution_options(synchronize_session=False)
        )
        self.db.add(
            CreditHistory(
                user_id=user_id,
                entry_type="credit",
                amount=amount,
                reason=reason,
                meta=metadata or {},
            )
        )
        self.db.commit()

        balance = self.get_balance(user_id)
        logger.info(f"Credited {amount} credits to user {user_id} ({reason}), balance {balance}")
        return balance

    def history(self, user_id: str, limit: int = 50) -> List[CreditHistory]:
        """Usage history, newest first."""
        return (
            self.db.query(CreditHistory)
            .filter(CreditHistory.user_id == user_id)
            .order_by(CreditHistory.created_at.desc(), CreditHistory.entry_pk.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def _check_amount(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidInputError("Valid amount is required")
