"""
Escrow ledger tests.

1. Entry validation (kind, amount, endpoints)
2. Balance movement for money kinds
3. Informational kinds leave balances alone
4. Pool totals and replayed balances
"""
import pytest

from extensions import db
from models import LedgerEntry
from utils.errors import InsufficientFunds, ValidationError


@pytest.fixture
def ledger(engine):
    return engine.ledger


# =============================================================================
# VALIDATION
# =============================================================================

class TestValidation:
    @pytest.mark.parametrize("amount", [-1, 2.5, "10", True, None])
    def test_rejects_non_integer_or_negative_amounts(self, ledger, student, amount):
        with pytest.raises(ValidationError):
            ledger.append("deposit", amount, student.id, "escrow")
        assert db.session.query(LedgerEntry).count() == 0

    def test_rejects_unknown_kind(self, ledger, student):
        with pytest.raises(ValidationError):
            ledger.append("bonus", 5, "system", student.id)

    def test_rejects_same_source_and_destination(self, ledger):
        with pytest.raises(ValidationError):
            ledger.append("penalty", 5, "system", "system")

    def test_rejects_unknown_endpoint(self, ledger):
        with pytest.raises(ValidationError):
            ledger.append("deposit", 5, "no-such-account", "escrow")

    def test_overdraft_raises_insufficient_funds(self, ledger, student):
        with pytest.raises(InsufficientFunds):
            ledger.append("deposit", 101, student.id, "escrow")
        assert ledger.balance_of(student.id) == 100


# =============================================================================
# BALANCES AND POOLS
# =============================================================================

class TestBalances:
    def test_deposit_moves_balance_into_escrow(self, ledger, student):
        entry = ledger.append("deposit", 10, student.id, "escrow", description="deposit")
        db.session.commit()

        assert entry.id is not None
        assert ledger.balance_of(student.id) == 90
        assert ledger.pool_total("escrow") == 10

    def test_release_alias_is_stored_as_payment(self, ledger, student, vendor):
        ledger.append("deposit", 10, student.id, "escrow")
        entry = ledger.append("release", 10, "escrow", vendor.id)
        db.session.commit()

        assert entry.kind == "payment"
        assert ledger.balance_of(vendor.id) == 60
        assert ledger.pool_total("escrow") == 0

    def test_allocation_and_reward_are_informational(self, ledger, vendor):
        ledger.append("allocation", 500, "admin", vendor.id)
        ledger.append("reward", 10, "system", vendor.id)
        db.session.commit()

        assert ledger.balance_of(vendor.id) == 50
        assert ledger.pool_total("admin") == 0
        assert ledger.pool_total("system") == 0

    def test_penalty_counts_toward_system_pool_only(self, ledger, vendor):
        ledger.append("penalty", 20, vendor.id, "system")
        db.session.commit()

        assert ledger.pool_total("system") == 20
        assert ledger.balance_of(vendor.id) == 50

    def test_replayed_balance_matches_stored_balance(self, ledger, student, vendor):
        ledger.append("deposit", 10, student.id, "escrow")
        ledger.append("deposit", 10, student.id, "escrow")
        ledger.append("refund", 10, "escrow", student.id)
        ledger.append("payment", 10, "escrow", vendor.id)
        db.session.commit()

        assert ledger.replayed_balance(student.id) == ledger.balance_of(student.id) == 90
        assert ledger.replayed_balance(vendor.id) == ledger.balance_of(vendor.id) == 60

    def test_unknown_pool_is_rejected(self, ledger):
        with pytest.raises(ValidationError):
            ledger.pool_total("treasury")

    def test_entries_for_filters_by_kind(self, ledger, raise_mess):
        complaint_id = raise_mess()
        deposits = ledger.entries_for(complaint_id, kind="deposit")
        assert [entry.kind for entry in deposits] == ["deposit"]
        assert ledger.entries_for(complaint_id, kind="release") == []
