"""
Tests for the daily opening and closing.

The opening is two-phase: preview_opening() computes the discrepancy and
writes nothing; confirm_opening() reconciles the safe and moves the float.
"""

import pytest
from sqlalchemy import select

from treasury_kernel.domain.effects import Direction, TransactionType
from treasury_kernel.domain.values import Balances
from treasury_kernel.domain.workflows import OpeningState
from treasury_kernel.exceptions import (
    DayAlreadyOpenedError,
    DayNotOpenedError,
    InsufficientFundsError,
    InsufficientFundsForFloatError,
    InvalidAmountError,
)
from treasury_kernel.models.balance import BalanceSnapshot
from treasury_kernel.services.daily_opening_service import (
    DiscrepancySeverity,
    classify_discrepancy,
)


class TestClassifyDiscrepancy:

    @pytest.mark.parametrize(
        "discrepancy, expected",
        [
            (0, DiscrepancySeverity.NONE),
            (-5_000, DiscrepancySeverity.MINOR),
            (50_000, DiscrepancySeverity.MINOR),
            (-50_001, DiscrepancySeverity.MAJOR),
            (60_000, DiscrepancySeverity.MAJOR),
        ],
    )
    def test_thresholds(self, discrepancy, expected):
        assert classify_discrepancy(discrepancy, 50_000) is expected


class TestPreviewOpening:

    def test_matching_count(self, opening_service, seed_balances):
        seed_balances(safe=100_000)

        preview = opening_service.preview_opening(100_000)

        assert preview.expected_safe_balance == 100_000
        assert preview.counted_safe_balance == 100_000
        assert preview.discrepancy == 0
        assert preview.severity is DiscrepancySeverity.NONE
        assert preview.suggested_float_amount == 2_000_000
        assert preview.state is OpeningState.AWAITING_FLOAT

    def test_preview_writes_nothing(self, opening_service, ledger_store, session):
        preview = opening_service.preview_opening(95_000)

        assert preview.discrepancy == 95_000
        assert ledger_store.transaction_count() == 0
        assert session.execute(select(BalanceSnapshot)).scalar_one_or_none() is None

    def test_negative_count_rejected(self, opening_service):
        with pytest.raises(InvalidAmountError):
            opening_service.preview_opening(-1)

    def test_day_already_opened(self, opening_service, seed_balances, test_actor_id):
        seed_balances(safe=100_000)
        preview = opening_service.preview_opening(100_000)
        opening_service.confirm_opening(preview, 20_000, test_actor_id)

        with pytest.raises(DayAlreadyOpenedError) as exc_info:
            opening_service.preview_opening(80_000)
        assert exc_info.value.registry_balance == 20_000


class TestConfirmOpening:

    def test_open_without_discrepancy(self, opening_service, ledger_store, seed_balances, test_actor_id):
        seed_balances(safe=100_000)
        preview = opening_service.preview_opening(100_000)

        result = opening_service.confirm_opening(preview, 20_000, test_actor_id)

        assert result.adjustment is None
        assert result.adjustment_created is False
        assert result.state is OpeningState.OPENED
        assert result.balances == Balances(safe=80_000, registry=20_000)
        assert TransactionType(result.float_transfer.type) is TransactionType.SAFE_TO_REGISTRY
        assert result.float_transfer.amount == 20_000

        snapshot = ledger_store.get_balances()
        assert snapshot.registry_float_amount == 20_000
        assert snapshot.balances == Balances(safe=80_000, registry=20_000)

    def test_shortage_is_adjusted_before_float(self, opening_service, seed_balances, test_actor_id):
        seed_balances(safe=100_000)
        preview = opening_service.preview_opening(95_000)
        assert preview.discrepancy == -5_000
        assert preview.severity is DiscrepancySeverity.MINOR

        result = opening_service.confirm_opening(preview, 20_000, test_actor_id)

        adjustment = result.adjustment
        assert result.adjustment_created
        assert TransactionType(adjustment.type) is TransactionType.ADJUSTMENT
        assert Direction(adjustment.direction) is Direction.OUT
        assert adjustment.amount == 5_000
        assert adjustment.safe_balance_after == 95_000
        assert adjustment.reference_type == "daily_opening"
        assert adjustment.sequence < result.float_transfer.sequence
        assert result.balances == Balances(safe=75_000, registry=20_000)

    def test_surplus_is_adjusted(self, opening_service, seed_balances, test_actor_id):
        seed_balances(safe=100_000)
        preview = opening_service.preview_opening(160_000)
        assert preview.severity is DiscrepancySeverity.MAJOR

        result = opening_service.confirm_opening(preview, 20_000, test_actor_id)

        assert Direction(result.adjustment.direction) is Direction.IN
        assert result.adjustment.amount == 60_000
        assert result.balances == Balances(safe=140_000, registry=20_000)

    def test_float_larger_than_count(self, opening_service, ledger_store, seed_balances, test_actor_id):
        seed_balances(safe=100_000)
        preview = opening_service.preview_opening(10_000)

        with pytest.raises(InsufficientFundsForFloatError) as exc_info:
            opening_service.confirm_opening(preview, 20_000, test_actor_id)

        assert isinstance(exc_info.value, InsufficientFundsError)
        assert exc_info.value.float_amount == 20_000
        assert ledger_store.transaction_count() == 1

    def test_float_must_be_positive(self, opening_service, test_actor_id):
        preview = opening_service.preview_opening(0)
        with pytest.raises(InvalidAmountError):
            opening_service.confirm_opening(preview, 0, test_actor_id)

    def test_stale_preview_after_opening(self, opening_service, seed_balances, test_actor_id):
        seed_balances(safe=100_000)
        preview = opening_service.preview_opening(100_000)
        opening_service.confirm_opening(preview, 20_000, test_actor_id)

        with pytest.raises(DayAlreadyOpenedError):
            opening_service.confirm_opening(preview, 20_000, test_actor_id)

    def test_discrepancy_recomputed_when_ledger_moved(
        self, opening_service, recorder, seed_balances, test_actor_id, captured_logs
    ):
        seed_balances(safe=100_000)
        preview = opening_service.preview_opening(100_000)
        recorder.record(TransactionType.STUDENT_PAYMENT, Direction.IN, 10_000, test_actor_id)

        result = opening_service.confirm_opening(preview, 20_000, test_actor_id)

        assert result.discrepancy == -10_000
        assert result.adjustment.amount == 10_000
        assert result.balances == Balances(safe=80_000, registry=20_000)
        assert any(r["message"] == "opening_discrepancy_recomputed" for r in captured_logs())


class TestCloseDay:

    @pytest.fixture
    def opened_day(self, opening_service, seed_balances, test_actor_id):
        seed_balances(safe=100_000)
        preview = opening_service.preview_opening(100_000)
        return opening_service.confirm_opening(preview, 20_000, test_actor_id)

    def test_not_opened(self, closing_service, test_actor_id):
        with pytest.raises(DayNotOpenedError):
            closing_service.close_day(0, test_actor_id)

    def test_count_matches(self, opened_day, closing_service, test_actor_id):
        result = closing_service.close_day(20_000, test_actor_id)

        assert result.expected_registry_balance == 20_000
        assert result.discrepancy == 0
        assert result.adjustment is None
        assert TransactionType(result.sweep.type) is TransactionType.REGISTRY_TO_SAFE
        assert result.sweep.amount == 20_000
        assert result.balances == Balances(safe=100_000, registry=0)

    def test_shortage(self, opened_day, closing_service, test_actor_id):
        result = closing_service.close_day(18_000, test_actor_id, notes="Rendu monnaie")

        assert result.discrepancy == -2_000
        assert TransactionType(result.adjustment.type) is TransactionType.REGISTRY_ADJUSTMENT
        assert Direction(result.adjustment.direction) is Direction.OUT
        assert result.adjustment.amount == 2_000
        assert result.sweep.amount == 18_000
        assert result.balances == Balances(safe=98_000, registry=0)

    def test_surplus(self, opened_day, closing_service, test_actor_id):
        result = closing_service.close_day(25_000, test_actor_id)

        assert Direction(result.adjustment.direction) is Direction.IN
        assert result.balances == Balances(safe=105_000, registry=0)

    def test_empty_registry_count(self, opened_day, closing_service, test_actor_id):
        result = closing_service.close_day(0, test_actor_id)

        assert result.sweep is None
        assert result.adjustment.amount == 20_000
        assert result.balances == Balances(safe=80_000, registry=0)

    def test_next_day_can_open_again(
        self, opened_day, closing_service, opening_service, deterministic_clock, test_actor_id
    ):
        closing_service.close_day(20_000, test_actor_id)
        deterministic_clock.advance_days(1)

        preview = opening_service.preview_opening(100_000)

        assert preview.discrepancy == 0
