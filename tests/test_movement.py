"""
Test Suite: Movement Candidates
===============================
Tests:
- Corner lookup table
- Merged radar/memory view
- Free-move rule and its relaxed fallback
- Candidate ranking
"""

import math
import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.grid_map import CellValue, GridMap
from core.movement import (CORNER_TABLE, DIRECTIONS, Decision, build_candidates, corner,
                           corner_index, estimate_target, feasible_directions, find_candidate,
                           opposite, rotate, valid_movements, valid_squares)

E, S, W, N = Decision.EAST, Decision.SOUTH, Decision.WEST, Decision.NORTH


class TestDirections:
    """Tests for direction helpers"""

    def test_wire_codes(self):
        assert [int(d) for d in DIRECTIONS] == [0, 1, 2, 3]
        assert Decision.END_SUCCESS == -1
        assert Decision.END_FAIL == -2

    def test_opposite(self):
        assert opposite(E) == W
        assert opposite(S) == N
        assert opposite(W) == E
        assert opposite(N) == S

    def test_rotate_clockwise(self):
        assert rotate(E, 1) == S
        assert rotate(N, 1) == E
        assert rotate(E, 3) == N

    def test_terminal_flags(self):
        assert Decision.END_FAIL.is_terminal
        assert not Decision.NO_DECISION.is_terminal
        assert not Decision.RETHINK.is_direction
        assert S.is_direction


class TestCornerTable:
    """Tests for the corner lookup"""

    def test_opposite_pairs_map_to_centre(self):
        for d in DIRECTIONS:
            assert corner_index(d, opposite(d)) == 4

    def test_perpendicular_pairs(self):
        assert corner_index(E, S) == 8
        assert corner_index(E, N) == 2
        assert corner_index(W, S) == 6
        assert corner_index(W, N) == 0

    def test_perpendicular_pairs_are_symmetric(self):
        for d1 in DIRECTIONS:
            for d2 in (rotate(d1, 1), rotate(d1, 3)):
                assert CORNER_TABLE[d1][d2] == CORNER_TABLE[d2][d1]

    def test_same_direction(self):
        assert [corner_index(d, d) for d in DIRECTIONS] == [2, 8, 6, 0]

    def test_corner_reads_raw_radar(self):
        radar = [0, 0, 1, 0, 2, 0, 0, 0, 3]
        assert corner(E, N, radar) == CellValue.OBSTACLE
        assert corner(S, E, radar) == CellValue.GOAL
        assert corner(E, W, radar) == CellValue.VISITED


class TestMergedView:
    """Tests for valid_squares / valid_movements"""

    def test_free_radar_cells_take_memory_value(self):
        memory = GridMap(10, 10)
        memory.set(4, 5, CellValue.VISITED)
        radar = [0] * 9
        merged = valid_squares(5, 5, radar, memory)
        assert merged[3] == CellValue.VISITED
        assert merged[5] == CellValue.FREE

    def test_goal_radar_cell_takes_memory_value(self):
        memory = GridMap(10, 10)
        radar = [0, 0, 0, 0, 2, 3, 0, 0, 0]
        assert valid_squares(5, 5, radar, memory)[5] == CellValue.FREE

    def test_non_free_radar_wins(self):
        memory = GridMap(10, 10)
        radar = [0, 1, 0, 0, 2, 2, 0, 0, 0]
        merged = valid_squares(5, 5, radar, memory)
        assert merged[1] == CellValue.OBSTACLE
        assert merged[5] == CellValue.VISITED

    def test_memory_outside_map_reads_obstacle(self):
        memory = GridMap(3, 3)
        radar = [0] * 9
        assert valid_squares(0, 0, radar, memory)[0] == CellValue.OBSTACLE

    def test_valid_movements_order(self):
        memory = GridMap(10, 10)
        radar = [0, 3, 0, 1, 2, 2, 0, 0, 0]
        # E, S, W, N
        assert valid_movements(5, 5, radar, memory) == [2, 0, 1, 0]


class TestFeasibility:
    """Tests for the free-move rule"""

    def test_all_free(self):
        assert feasible_directions([0, 0, 0, 0, 2, 0, 0, 0, 0]) == [True] * 4

    def test_non_free_adjacent_is_infeasible(self):
        squares = [0, 1, 0, 2, 2, 1, 0, 0, 0]
        assert feasible_directions(squares) == [False, True, False, False]

    def test_visited_diagonal_blocks(self):
        squares = [0, 0, 2, 0, 2, 0, 0, 0, 0]
        # NE visited blocks E and N
        assert feasible_directions(squares) == [False, True, True, False]

    def test_obstacle_diagonal_does_not_block(self):
        squares = [1, 0, 1, 0, 2, 0, 1, 0, 1]
        assert feasible_directions(squares) == [True] * 4

    def test_relaxed_fallback(self):
        """Every move has one visited diagonal: relax to 'both visited'"""
        squares = [2, 0, 2, 0, 2, 0, 0, 0, 2]
        # E (2,8) both visited, S (6,8) one, W (0,6) one, N (0,2) both
        assert feasible_directions(squares) == [False, True, True, False]

    def test_relaxed_fallback_only_when_nothing_feasible(self):
        squares = [2, 0, 2, 0, 2, 0, 0, 0, 0]
        assert feasible_directions(squares)[Decision.WEST] is False

    def test_nothing_feasible(self):
        assert feasible_directions([1, 1, 1, 1, 2, 1, 1, 1, 1]) == [False] * 4


class TestCandidates:
    """Tests for build_candidates"""

    def test_estimate_target(self):
        tx, ty = estimate_target(5, 5, math.pi / 2, 3.0)
        assert tx == pytest.approx(5.0)
        assert ty == pytest.approx(8.0)

    def test_four_candidates_sorted_by_distance(self):
        memory = GridMap(10, 10)
        radar = [0, 0, 0, 0, 2, 1, 0, 0, 0]
        candidates = build_candidates(5, 5, 0.0, 3.0, radar, memory)

        assert len(candidates) == 4
        assert [c.direction for c in candidates] == [E, S, N, W]
        assert [c.distance for c in candidates] == pytest.approx(
            [2.0, math.sqrt(10), math.sqrt(10), 4.0])
        distances = [c.distance for c in candidates]
        assert distances == sorted(distances)

    def test_feasibility_attached(self):
        memory = GridMap(10, 10)
        radar = [0, 0, 0, 0, 2, 1, 0, 0, 0]
        candidates = build_candidates(5, 5, 0.0, 3.0, radar, memory)
        assert find_candidate(candidates, E).feasible is False
        assert find_candidate(candidates, S).feasible is True

    def test_find_candidate_missing(self):
        with pytest.raises(KeyError):
            find_candidate([], E)
