"""Append-only escrow ledger.

Every monetary movement is a ``LedgerEntry`` row. When an entry touches a real
account the balance column is adjusted in the same session flush, so the entry
and the balance change commit or roll back together with the caller's
transaction. The ledger never commits on its own.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Optional

from sqlalchemy import func

from models import LEDGER_KINDS, LEDGER_POOLS, Account, LedgerEntry, epoch_ms
from utils.errors import InsufficientFunds, ValidationError

logger = logging.getLogger(__name__)

KIND_ALIASES = {"release": "payment"}

# Kinds that debit/credit real account balances.
BALANCE_KINDS = frozenset({"deposit", "payment", "refund"})
# Kinds counted in pool totals. Penalties record money withheld from a payout into
# the system sink; allocations and reward points are informational only.
POOL_KINDS = frozenset({"deposit", "payment", "penalty", "refund"})


class Ledger:
    def __init__(self, session, clock: Callable[[], int] = epoch_ms) -> None:
        self.session = session
        self.clock = clock

    def _endpoint(self, name: str, lock: bool) -> Optional[Account]:
        if not name:
            raise ValidationError("Ledger endpoint is required")
        if name in LEDGER_POOLS:
            return None
        account = self.session.get(Account, name, with_for_update=lock, populate_existing=lock)
        if account is None:
            raise ValidationError("Unknown ledger endpoint", endpoint=name)
        return account

    def append(
        self,
        kind: str,
        amount: int,
        source: str,
        destination: str,
        complaint_id: Optional[str] = None,
        description: str = "",
    ) -> LedgerEntry:
        kind = KIND_ALIASES.get(kind, kind)
        if kind not in LEDGER_KINDS:
            raise ValidationError("Unknown ledger entry kind", kind=kind)
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise ValidationError("Ledger amounts must be integers", amount=amount)
        if amount < 0:
            raise ValidationError("Ledger amounts cannot be negative", amount=amount)
        if source == destination:
            raise ValidationError("Ledger source and destination must differ", endpoint=source)

        moves_balance = kind in BALANCE_KINDS
        source_account = self._endpoint(source, lock=moves_balance)
        destination_account = self._endpoint(destination, lock=moves_balance)

        if moves_balance:
            if source_account is not None:
                if source_account.balance < amount:
                    raise InsufficientFunds(
                        "Balance too low for ledger debit",
                        account_id=source_account.id,
                        balance=source_account.balance,
                        amount=amount,
                    )
                source_account.balance -= amount
            if destination_account is not None:
                destination_account.balance += amount

        entry = LedgerEntry(
            kind=kind,
            complaint_id=complaint_id or None,
            amount=amount,
            source=source,
            destination=destination,
            description=description or "",
            created_at=self.clock(),
        )
        self.session.add(entry)
        self.session.flush()
        logger.info(
            "Ledger entry appended",
            extra={"kind": kind, "amount": amount, "source": source, "destination": destination, "complaint_id": complaint_id},
        )
        return entry

    def balance_of(self, account_id: str) -> int:
        account = self.session.get(Account, account_id)
        if account is None:
            raise ValidationError("Unknown account", account_id=account_id)
        return account.balance

    def _sum(self, *criteria) -> int:
        total = self.session.query(func.coalesce(func.sum(LedgerEntry.amount), 0)).filter(*criteria).scalar()
        return int(total or 0)

    def pool_total(self, pool: str) -> int:
        if pool not in LEDGER_POOLS:
            raise ValidationError("Unknown ledger pool", pool=pool)
        money = LedgerEntry.kind.in_(POOL_KINDS)
        inflow = self._sum(money, LedgerEntry.destination == pool)
        outflow = self._sum(money, LedgerEntry.source == pool)
        return inflow - outflow

    def replayed_balance(self, account_id: str) -> int:
        """Opening balance plus every balance-moving entry; should equal ``balance_of``."""
        account = self.session.get(Account, account_id)
        if account is None:
            raise ValidationError("Unknown account", account_id=account_id)
        moving = LedgerEntry.kind.in_(BALANCE_KINDS)
        credits = self._sum(moving, LedgerEntry.destination == account_id)
        debits = self._sum(moving, LedgerEntry.source == account_id)
        return (account.opening_balance or 0) + credits - debits

    def entries_for(self, complaint_id: str, kind: Optional[str] = None) -> List[LedgerEntry]:
        query = self.session.query(LedgerEntry).filter(LedgerEntry.complaint_id == complaint_id)
        if kind:
            query = query.filter(LedgerEntry.kind == KIND_ALIASES.get(kind, kind))
        return query.order_by(LedgerEntry.id).all()

    def recent(self, limit: int = 100) -> List[LedgerEntry]:
        return self.session.query(LedgerEntry).order_by(LedgerEntry.id.desc()).limit(limit).all()
