from __future__ import annotations

from typing import Protocol

import structlog
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from repricer.core.errors import InsufficientCreditsError
from repricer.db.models import CreditAccount, CreditTransaction

logger = structlog.get_logger(__name__)


class CreditService(Protocol):
    def has_available_credits(self, org_id: str, amount: int) -> bool: ...

    def use_credits(
        self,
        org_id: str,
        amount: int,
        description: str,
        reference_id: str | None = None,
    ) -> int: ...


class CreditLedger:
    """
    Per-organization credit balance backed by the credit_accounts table.

    Deductions use a conditional UPDATE so that two concurrent callers can
    never take the balance below zero.
    """

    def __init__(self, db: Session):
        self.db = db

    def balance(self, org_id: str) -> int:
        value = self.db.execute(
            select(CreditAccount.balance).where(CreditAccount.org_id == org_id)
        ).scalar_one_or_none()
        return int(value or 0)

    def has_available_credits(self, org_id: str, amount: int) -> bool:
        if amount <= 0:
            return True
        return self.balance(org_id) >= amount

    def use_credits(
        self,
        org_id: str,
        amount: int,
        description: str,
        reference_id: str | None = None,
    ) -> int:
        if amount <= 0:
            return self.balance(org_id)

        result = self.db.execute(
            update(CreditAccount)
            .where(CreditAccount.org_id == org_id, CreditAccount.balance >= amount)
            .values(balance=CreditAccount.balance - amount)
        )
        if result.rowcount == 0:
            self.db.rollback()
            logger.warning("credits.insufficient", org_id=org_id, amount=amount)
            raise InsufficientCreditsError(org_id, amount)

        self.db.add(
            CreditTransaction(
                org_id=org_id,
                amount=-amount,
                description=description,
                reference_id=reference_id,
            )
        )
        self.db.commit()

        remaining = self.balance(org_id)
        logger.info(
            "credits.deducted",
            org_id=org_id,
            amount=amount,
            remaining=remaining,
            reference_id=reference_id,
        )
        return remaining

    def top_up(self, org_id: str, amount: int, description: str = "Top up") -> int:
        account = self.db.get(CreditAccount, org_id)
        if account is None:
            account = CreditAccount(org_id=org_id, balance=0)
            self.db.add(account)
        account.balance = (account.balance or 0) + amount
        self.db.add(
            CreditTransaction(org_id=org_id, amount=amount, description=description)
        )
        self.db.commit()
        return account.balance
