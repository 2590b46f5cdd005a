"""
Tests for critical-path scheduling.
"""

import pytest

from factory_ops.errors import ComputationError, NotADagError
from factory_ops.scheduling import compute_schedule

from conftest import order


@pytest.fixture
def diamond():
    # A(4) -> B(2) -> D(3), A(4) -> C(6) -> D(3)
    return [
        order("A", hours=4),
        order("B", "A", hours=2),
        order("C", "A", hours=6),
        order("D", "B", "C", hours=3),
    ]


class TestDiamond:

    def test_earliest_and_latest_starts(self, diamond):
        result = compute_schedule(diamond)
        assert result["D"].earliest_start == 10
        assert result["A"].latest_start == 0
        assert result["B"].earliest_start == 4
        assert result["B"].latest_start == 8
        assert result.project_end == 13

    def test_critical_path_and_slack(self, diamond):
        result = compute_schedule(diamond)
        assert result.critical_path == ["A", "C", "D"]
        for oid in ("A", "C", "D"):
            assert result[oid].slack == pytest.approx(0)
            assert result[oid].is_critical
        assert result["B"].slack == pytest.approx(4)
        assert not result["B"].is_critical

    def test_input_order_does_not_matter(self, diamond):
        result = compute_schedule(list(reversed(diamond)))
        assert result.critical_path == ["A", "C", "D"]
        assert result["D"].earliest_start == 10

    def test_to_dict(self, diamond):
        data = compute_schedule(diamond).to_dict()
        assert data["project_end"] == 13
        assert data["critical_path"] == ["A", "C", "D"]
        assert data["orders"]["B"] == {
            "order_id": "B",
            "duration": 2,
            "earliest_start": 4,
            "latest_start": 8,
            "slack": 4,
            "is_critical": False,
        }


class TestEdgeCases:

    def test_single_order(self):
        result = compute_schedule([order("A", hours=5)])
        entry = result["A"]
        assert entry.earliest_start == 0
        assert entry.latest_start == result.project_end - entry.duration == 0
        assert entry.slack == 0
        assert result.critical_path == ["A"]

    def test_empty_snapshot(self):
        result = compute_schedule([])
        assert result.entries == {}
        assert result.critical_path == []
        assert result.project_end == 0

    @pytest.mark.parametrize("hours", [None, 0])
    def test_missing_estimate_uses_default(self, hours):
        result = compute_schedule([order("A", hours=hours)], default_duration=8)
        assert result["A"].duration == 8
        assert result.project_end == 8

    def test_negative_estimate_fails_the_computation(self):
        with pytest.raises(ComputationError):
            compute_schedule([order("A", hours=-1)])

    def test_independent_chains_share_the_horizon(self):
        result = compute_schedule([order("A", hours=10), order("B", hours=4)])
        assert result.critical_path == ["A"]
        assert result["B"].slack == pytest.approx(6)
        assert result["B"].latest_start == pytest.approx(6)

    def test_fractional_hours_within_tolerance_are_critical(self):
        result = compute_schedule(
            [order("A", hours=1.1), order("B", "A", hours=2.2), order("C", hours=3.3)],
        )
        assert result["A"].is_critical and result["B"].is_critical and result["C"].is_critical

    def test_dangling_dependency_is_ignored(self):
        result = compute_schedule([order("A", "GHOST", hours=3), order("B", "A", hours=2)])
        assert result["A"].earliest_start == 0
        assert result["B"].earliest_start == 3
        assert result.critical_path == ["A", "B"]

    def test_cycle_is_reported_not_computed(self):
        with pytest.raises(NotADagError) as exc:
            compute_schedule([order("A", "B"), order("B", "A")])
        assert set(exc.value.cycle) == {"A", "B"}

    def test_long_chain(self):
        n = 3000
        orders = [order("O0", hours=1)] + [order(f"O{i}", f"O{i - 1}", hours=1) for i in range(1, n)]
        result = compute_schedule(orders)
        assert result.project_end == n
        assert len(result.critical_path) == n
        assert result.critical_path[0] == "O0"
