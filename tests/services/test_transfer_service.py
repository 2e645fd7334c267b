"""Tests for safe <-> registry and safe <-> bank transfers."""

import pytest

from treasury_kernel.domain.effects import Direction, TransactionType
from treasury_kernel.domain.requests import BankTransferKind, SafeRegistryDirection
from treasury_kernel.domain.values import Balances
from treasury_kernel.exceptions import (
    InsufficientFundsError,
    InvalidAmountError,
    InvalidChoiceError,
    NotesTooShortError,
)


class TestSafeRegistryTransfer:

    def test_transfer_exceeding_safe(self, transfer_service, ledger_store, seed_balances, test_actor_id):
        seed_balances(safe=50_000)

        with pytest.raises(InsufficientFundsError) as exc_info:
            transfer_service.transfer_safe_registry(
                SafeRegistryDirection.SAFE_TO_REGISTRY, 1_000_000, "test", test_actor_id
            )

        assert exc_info.value.location == "safe"
        assert exc_info.value.available == 50_000
        assert exc_info.value.required == 1_000_000
        assert ledger_store.transaction_count() == 1
        assert ledger_store.get_balances().balances == Balances(safe=50_000)

    def test_safe_to_registry(self, transfer_service, seed_balances, test_actor_id):
        seed_balances(safe=50_000)

        result = transfer_service.transfer_safe_registry(
            "safe_to_registry", 20_000, "Appoint caisse", test_actor_id
        )

        row = result.transaction
        assert TransactionType(row.type) is TransactionType.SAFE_TO_REGISTRY
        assert Direction(row.direction) is Direction.OUT
        assert row.source_location == "safe"
        assert row.destination_location == "registry"
        assert row.description == "Transfert coffre vers caisse: 20000"
        assert row.notes == "Appoint caisse"
        assert row.receipt_number is None
        assert result.bank_transfer is None
        assert result.balances == Balances(safe=30_000, registry=20_000)

    def test_registry_to_safe(self, transfer_service, seed_balances, test_actor_id):
        seed_balances(safe=50_000, registry=20_000)

        result = transfer_service.transfer_safe_registry(
            SafeRegistryDirection.REGISTRY_TO_SAFE, 5_000, "Trop de monnaie", test_actor_id
        )

        assert Direction(result.transaction.direction) is Direction.IN
        assert result.balances == Balances(safe=55_000, registry=15_000)

    @pytest.mark.parametrize("notes", [None, "", "  ", "ab"])
    def test_notes_required(self, transfer_service, seed_balances, test_actor_id, notes):
        seed_balances(safe=50_000)
        with pytest.raises(NotesTooShortError):
            transfer_service.transfer_safe_registry(
                SafeRegistryDirection.SAFE_TO_REGISTRY, 1_000, notes, test_actor_id
            )

    def test_amount_must_be_positive(self, transfer_service, test_actor_id):
        with pytest.raises(InvalidAmountError):
            transfer_service.transfer_safe_registry(
                SafeRegistryDirection.SAFE_TO_REGISTRY, 0, "Appoint", test_actor_id
            )

    def test_unknown_direction(self, transfer_service, ledger_store, seed_balances, test_actor_id):
        seed_balances(safe=50_000)

        with pytest.raises(InvalidChoiceError) as exc_info:
            transfer_service.transfer_safe_registry("sideways", 100, "notes ok", test_actor_id)

        assert exc_info.value.field == "direction"
        assert exc_info.value.allowed == ("safe_to_registry", "registry_to_safe")
        assert ledger_store.transaction_count() == 1

    def test_direction_given_as_string(self, transfer_service, seed_balances, test_actor_id):
        seed_balances(safe=50_000)

        result = transfer_service.transfer_safe_registry(
            "safe_to_registry", 10_000, "Appoint caisse", test_actor_id
        )

        assert result.balances == Balances(safe=40_000, registry=10_000)


class TestBankTransfer:

    def test_deposit_writes_bank_record(self, transfer_service, seed_balances, test_actor_id):
        seed_balances(safe=100_000)

        result = transfer_service.transfer_safe_bank(
            BankTransferKind.DEPOSIT,
            60_000,
            test_actor_id,
            bank_name="BICIS",
            bank_reference="BRD-001",
            carried_by="Moussa",
        )

        assert TransactionType(result.transaction.type) is TransactionType.BANK_DEPOSIT
        assert result.transaction.description == "Depot banque (BICIS)"
        assert result.transaction.reference_id == "BRD-001"
        assert result.balances == Balances(safe=40_000, bank=60_000)

        record = result.bank_transfer
        assert record.kind == "deposit"
        assert record.amount == 60_000
        assert record.transaction_id == result.transaction.id
        assert record.carried_by == "Moussa"
        assert record.safe_balance_before == 100_000
        assert record.safe_balance_after == 40_000
        assert record.bank_balance_before == 0
        assert record.bank_balance_after == 60_000

    def test_withdrawal(self, transfer_service, seed_balances, test_actor_id):
        seed_balances(safe=10_000, bank=500_000)

        result = transfer_service.transfer_safe_bank("withdrawal", 200_000, test_actor_id)

        assert TransactionType(result.transaction.type) is TransactionType.BANK_WITHDRAWAL
        assert Direction(result.transaction.direction) is Direction.IN
        assert result.balances == Balances(safe=210_000, bank=300_000)
        assert result.bank_transfer.kind == "withdrawal"

    def test_withdrawal_exceeding_bank(self, transfer_service, ledger_store, seed_balances, test_actor_id):
        seed_balances(safe=10_000, bank=5_000)

        with pytest.raises(InsufficientFundsError) as exc_info:
            transfer_service.transfer_safe_bank(BankTransferKind.WITHDRAWAL, 6_000, test_actor_id)

        assert exc_info.value.location == "bank"
        assert exc_info.value.shortfall == 1_000
        assert ledger_store.transaction_count() == 2

    def test_logs(self, transfer_service, seed_balances, test_actor_id, captured_logs):
        seed_balances(safe=100_000)
        transfer_service.transfer_safe_bank(BankTransferKind.DEPOSIT, 1_000, test_actor_id)

        messages = [r["message"] for r in captured_logs()]
        assert "transfer_completed" in messages
        assert "bank_transfer_recorded" in messages

    def test_unknown_kind(self, transfer_service, ledger_store, seed_balances, test_actor_id):
        seed_balances(safe=50_000)

        with pytest.raises(InvalidChoiceError) as exc_info:
            transfer_service.transfer_safe_bank("loan", 10_000, test_actor_id)

        assert exc_info.value.field == "kind"
        assert exc_info.value.code == "INVALID_CHOICE"
        assert ledger_store.transaction_count() == 1
