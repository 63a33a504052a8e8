"""Tests for the partition planner."""

import numpy as np
import pytest

from halolife.distributed.errors import EngineError, InvalidPartition, ProtocolViolation
from halolife.distributed.planner import PartitionSlot, compute_plan


class TestComputePlan:
    """Row assignment."""

    def test_even_split(self):
        """Divisible heights split evenly."""
        plan = compute_plan(12, 4)
        assert [slot.row_count for slot in plan] == [3, 3, 3, 3]
        assert [slot.row_offset for slot in plan] == [0, 3, 6, 9]

    def test_remainder_goes_to_highest_ids(self):
        """The last workers receive the extra rows."""
        plan = compute_plan(10, 4)
        assert [slot.row_count for slot in plan] == [2, 2, 3, 3]
        assert [slot.row_offset for slot in plan] == [0, 2, 4, 7]

    def test_single_worker(self):
        """One worker owns every row."""
        plan = compute_plan(5, 1)
        assert plan.slots == (PartitionSlot(0, 5, 0),)

    def test_one_row_each(self):
        """As many workers as rows."""
        plan = compute_plan(7, 7)
        assert all(slot.row_count == 1 for slot in plan)

    def test_properties_hold_for_all_valid_inputs(self):
        """Counts sum to height, offsets increase, ranges don't overlap."""
        for height in range(1, 40):
            for workers in range(1, height + 1):
                plan = compute_plan(height, workers)

                assert plan.worker_count == workers
                assert sum(slot.row_count for slot in plan) == height
                assert plan[0].row_offset == 0
                for previous, current in zip(plan.slots, plan.slots[1:]):
                    assert current.row_offset == previous.row_end
                    assert current.row_offset > previous.row_offset
                assert all(slot.row_count >= 1 for slot in plan)
                assert plan.slots[-1].row_end == height

    @pytest.mark.parametrize("height,workers", [(10, 0), (10, -1), (3, 4), (0, 1)])
    def test_invalid_partition(self, height, workers):
        """Invalid worker counts fail."""
        with pytest.raises(InvalidPartition):
            compute_plan(height, workers)

    def test_invalid_partition_is_value_error(self):
        """InvalidPartition is both an engine error and a ValueError."""
        with pytest.raises(ValueError):
            compute_plan(2, 3)
        assert issubclass(InvalidPartition, EngineError)

    def test_plan_is_immutable(self):
        """Plans can't be modified after creation."""
        plan = compute_plan(4, 2)
        with pytest.raises(AttributeError):
            plan.slots[0].row_count = 3


class TestScatterGather:
    """Splitting and reassembling grids."""

    def test_round_trip(self):
        """Scatter then gather of unmodified blocks reconstructs the grid."""
        rng = np.random.default_rng(11)
        for height in [1, 5, 9, 16]:
            for workers in range(1, height + 1):
                cells = (rng.random((height, height)) < 0.5).astype(np.int8)
                plan = compute_plan(height, workers)

                out = np.zeros_like(cells)
                plan.gather(plan.scatter(cells), out)

                assert np.array_equal(out, cells)

    def test_scatter_returns_copies(self):
        """Blocks don't alias the grid."""
        cells = np.zeros((4, 4), dtype=np.int8)
        blocks = compute_plan(4, 2).scatter(cells)

        blocks[0][0, 0] = 1

        assert cells[0, 0] == 0

    def test_gather_rejects_wrong_shape(self):
        """A block of the wrong shape is a protocol violation."""
        plan = compute_plan(4, 2)
        out = np.zeros((4, 4), dtype=np.int8)

        with pytest.raises(ProtocolViolation):
            plan.gather([np.zeros((2, 4)), np.zeros((3, 4))], out)

        with pytest.raises(ProtocolViolation):
            plan.gather([np.zeros((2, 4))], out)

    def test_scatter_rejects_wrong_height(self):
        """The grid must have the planned number of rows."""
        with pytest.raises(ValueError):
            compute_plan(4, 2).scatter(np.zeros((5, 4)))
