# ABOUTME: Tests the XP award calculation and its atomic and saga-based persistence.
# ABOUTME: Simulates concurrent writers and failing stores to check no partial award goes unnoticed.

import threading

import pytest

from src.common.errors import (
    ConcurrentAwardError,
    DataSourceUnavailableError,
    InvalidInputError,
    PartialAwardError,
)
from src.progression.award import (
    ProgressionLedger,
    ProgressionState,
    SagaProgressionLedger,
    apply_award,
    award_xp,
)
from src.progression.store import InMemoryProgressionStore


def test_award_from_level_one_levels_up():
    result = award_xp(ProgressionState("kid", total_xp=0), 150)
    assert result.new_level == 2
    assert result.new_current_xp == 50
    assert result.attribute_points_awarded == 3
    assert result.leveled_up is True
    assert result.new_total_xp == 150


def test_award_across_multiple_levels_grants_points_per_level():
    result = award_xp(ProgressionState("kid", total_xp=950), 250)
    # 950 -> 1200: levels 10 -> 12
    assert result.new_level == 12
    assert result.new_current_xp == 50
    assert result.attribute_points_awarded == 6


def test_award_without_level_up():
    result = award_xp(ProgressionState("kid", total_xp=10), 20)
    assert result.leveled_up is False
    assert result.attribute_points_awarded == 0
    assert result.new_current_xp == 30


def test_award_rejects_negative_or_fractional_delta():
    state = ProgressionState("kid")
    with pytest.raises(InvalidInputError):
        award_xp(state, -5)
    with pytest.raises(InvalidInputError):
        award_xp(state, 1.5)


def test_state_rejects_negative_totals():
    with pytest.raises(InvalidInputError):
        ProgressionState("kid", total_xp=-1)


def test_apply_award_accumulates_points():
    state = ProgressionState("kid", total_xp=0, available_points=2)
    updated = apply_award(state, award_xp(state, 100))
    assert updated.total_xp == 100
    assert updated.available_points == 5
    assert updated.level == 2


def test_ledger_persists_whole_state():
    store = InMemoryProgressionStore()
    ledger = ProgressionLedger(store)

    result = ledger.award("kid", 150)

    assert result.leveled_up
    stored = store.load_progression("kid")
    assert stored.total_xp == 150
    assert stored.available_points == 3


def test_ledger_serializes_concurrent_awards():
    store = InMemoryProgressionStore()
    ledger = ProgressionLedger(store, max_retries=1000)
    threads = [threading.Thread(target=ledger.award, args=("kid", 50)) for _ in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    stored = store.load_progression("kid")
    assert stored.total_xp == 1000
    assert stored.level == 11
    assert stored.available_points == 30


class _AlwaysConflictingStore(InMemoryProgressionStore):
    def compare_and_swap(self, expected, updated):
        return False


def test_ledger_gives_up_after_retries():
    ledger = ProgressionLedger(_AlwaysConflictingStore(), max_retries=3)
    with pytest.raises(ConcurrentAwardError) as excinfo:
        ledger.award("kid", 10)
    assert excinfo.value.attempts == 3


def test_ledger_propagates_store_outage():
    store = InMemoryProgressionStore()
    store.failing_operations.add("swap")
    with pytest.raises(DataSourceUnavailableError):
        ProgressionLedger(store).award("kid", 10)
    assert store.load_progression("kid") is None


def test_saga_applies_both_writes():
    store = InMemoryProgressionStore([ProgressionState("kid", total_xp=90)])
    result = SagaProgressionLedger(store).award("kid", 20)

    assert result.leveled_up
    stored = store.load_progression("kid")
    assert stored.total_xp == 110
    assert stored.available_points == 3


def test_saga_rolls_back_xp_when_point_grant_fails():
    store = InMemoryProgressionStore([ProgressionState("kid", total_xp=90)])
    store.failing_operations.add("grant_attribute_points")

    with pytest.raises(DataSourceUnavailableError):
        SagaProgressionLedger(store).award("kid", 20)

    stored = store.load_progression("kid")
    assert stored.total_xp == 90
    assert stored.available_points == 0


class _TimingOutGrantStore(InMemoryProgressionStore):
    def __init__(self, states, fail_rollback=False):
        super().__init__(states)
        self.fail_rollback = fail_rollback
        self.writes = 0

    def write_experience(self, learner_id, total_xp):
        self.writes += 1
        if self.fail_rollback and self.writes > 1:
            raise ConnectionError("connection reset")
        super().write_experience(learner_id, total_xp)

    def grant_attribute_points(self, learner_id, points):
        raise TimeoutError("grant timed out")


def test_saga_rolls_back_xp_when_grant_times_out():
    store = _TimingOutGrantStore([ProgressionState("kid", total_xp=90)])

    with pytest.raises(TimeoutError):
        SagaProgressionLedger(store).award("kid", 20)

    stored = store.load_progression("kid")
    assert stored.total_xp == 90
    assert stored.available_points == 0


def test_saga_reports_partial_award_when_driver_errors_block_rollback():
    store = _TimingOutGrantStore([ProgressionState("kid", total_xp=90)], fail_rollback=True)

    with pytest.raises(PartialAwardError) as excinfo:
        SagaProgressionLedger(store).award("kid", 20)

    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert excinfo.value.committed_total_xp == 110
    assert excinfo.value.pending_points == 3


class _RollbackFailingStore(InMemoryProgressionStore):
    def __init__(self, states):
        super().__init__(states)
        self.writes = 0

    def write_experience(self, learner_id, total_xp):
        self.writes += 1
        if self.writes > 1:
            raise DataSourceUnavailableError("progression", "rollback failed")
        super().write_experience(learner_id, total_xp)

    def grant_attribute_points(self, learner_id, points):
        raise DataSourceUnavailableError("progression", "grant failed")


def test_saga_reports_partial_award_when_rollback_fails():
    store = _RollbackFailingStore([ProgressionState("kid", total_xp=90)])

    with pytest.raises(PartialAwardError) as excinfo:
        SagaProgressionLedger(store).award("kid", 20)

    assert excinfo.value.committed_total_xp == 110
    assert excinfo.value.pending_points == 3
    assert store.load_progression("kid").total_xp == 110
