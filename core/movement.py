"""
Movement Candidates
Builds the four directional candidates a drone chooses between each cycle.

The drone never sees the ground truth map. It works on a merged view:
the 3x3 radar sent by the satellite, with FREE/GOAL radar cells replaced
by what the drone's own memory knows about them (visited, obstacle).

Radar layout (row-major, y grows southwards):

    0 1 2        NW  N  NE
    3 4 5   ->    W  .  E
    6 7 8        SW  S  SE
"""

import math
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Sequence, Tuple

from core.grid_map import CellValue, GridMap


class Decision(IntEnum):
    """Outcome of one decision cycle. Directions double as wire codes."""
    EAST = 0
    SOUTH = 1
    WEST = 2
    NORTH = 3
    END_SUCCESS = -1
    END_FAIL = -2
    # Internal signals, never sent to the satellite
    NO_DECISION = -3
    RETHINK = -4

    @property
    def is_direction(self) -> bool:
        return self.value >= 0

    @property
    def is_terminal(self) -> bool:
        return self in (Decision.END_SUCCESS, Decision.END_FAIL)


DIRECTIONS: Tuple[Decision, ...] = (Decision.EAST, Decision.SOUTH, Decision.WEST, Decision.NORTH)

# Unit step (dx, dy) per direction
STEPS: Dict[Decision, Tuple[int, int]] = {
    Decision.EAST: (1, 0),
    Decision.SOUTH: (0, 1),
    Decision.WEST: (-1, 0),
    Decision.NORTH: (0, -1),
}

# Radar index of the cell one step away in each direction
ADJACENT_INDEX: Dict[Decision, int] = {
    Decision.EAST: 5,
    Decision.SOUTH: 7,
    Decision.WEST: 3,
    Decision.NORTH: 1,
}

# The two diagonal radar cells sharing an edge with that adjacent cell
DIAGONAL_INDICES: Dict[Decision, Tuple[int, int]] = {
    Decision.EAST: (2, 8),
    Decision.SOUTH: (6, 8),
    Decision.WEST: (0, 6),
    Decision.NORTH: (0, 2),
}

CENTER_INDEX = 4

# Radar index of the corner between two directions, CORNER_TABLE[d1][d2].
# Opposite pairs have no shared corner and map to the centre cell.
CORNER_TABLE: Dict[Decision, Dict[Decision, int]] = {
    Decision.EAST: {Decision.EAST: 2, Decision.SOUTH: 8, Decision.WEST: 4, Decision.NORTH: 2},
    Decision.SOUTH: {Decision.EAST: 8, Decision.SOUTH: 8, Decision.WEST: 6, Decision.NORTH: 4},
    Decision.WEST: {Decision.EAST: 4, Decision.SOUTH: 6, Decision.WEST: 6, Decision.NORTH: 0},
    Decision.NORTH: {Decision.EAST: 2, Decision.SOUTH: 4, Decision.WEST: 0, Decision.NORTH: 0},
}


def opposite(direction: Decision) -> Decision:
    return Decision((int(direction) + 2) % 4)


def rotate(direction: Decision, quarter_turns: int) -> Decision:
    """Direction ``quarter_turns`` clockwise steps away (EAST -> SOUTH -> ...)."""
    return Decision((int(direction) + quarter_turns) % 4)


def corner_index(d1: Decision, d2: Decision) -> int:
    """Radar index of the corner shared by two directions."""
    return CORNER_TABLE[Decision(d1)][Decision(d2)]


def corner(d1: Decision, d2: Decision, surroundings: Sequence[int]) -> int:
    """Raw radar value of the corner shared by two directions."""
    return surroundings[corner_index(d1, d2)]


@dataclass
class MovementCandidate:
    """One of the four moves available this cycle."""
    direction: Decision
    distance: float  # Euclidean distance from the landing cell to the estimated target
    feasible: bool


def valid_squares(x: int, y: int, surroundings: Sequence[int], memory: GridMap) -> List[int]:
    """
    Merged 3x3 view. Radar cells reading FREE or GOAL are replaced by the
    drone's memory of that cell, everything else keeps the radar value.
    """
    merged = [0] * 9
    for row in range(3):
        for col in range(3):
            index = col + row * 3
            sensed = surroundings[index]
            if sensed in (CellValue.FREE, CellValue.GOAL):
                merged[index] = int(memory.get(x + col - 1, y + row - 1))
            else:
                merged[index] = int(sensed)
    return merged


def valid_movements(x: int, y: int, surroundings: Sequence[int], memory: GridMap) -> List[int]:
    """Merged value of the four adjacent cells, indexed by direction (E, S, W, N)."""
    merged = valid_squares(x, y, surroundings, memory)
    return [merged[ADJACENT_INDEX[d]] for d in DIRECTIONS]


def feasible_directions(squares: Sequence[int]) -> List[bool]:
    """
    Free-move condition for E, S, W, N over a merged 3x3 view.

    Primary rule: the adjacent cell is FREE and neither diagonal beside it
    was visited. If that leaves no move at all, relax to rejecting only
    moves with BOTH diagonals visited.
    """
    def check(direction: Decision, relaxed: bool) -> bool:
        if squares[ADJACENT_INDEX[direction]] != CellValue.FREE:
            return False
        a, b = DIAGONAL_INDICES[direction]
        a_visited = squares[a] == CellValue.VISITED
        b_visited = squares[b] == CellValue.VISITED
        if relaxed:
            return not (a_visited and b_visited)
        return not (a_visited or b_visited)

    conditions = [check(d, relaxed=False) for d in DIRECTIONS]
    if not any(conditions):
        conditions = [check(d, relaxed=True) for d in DIRECTIONS]
    return conditions


def estimate_target(x: int, y: int, angle: float, distance: float) -> Tuple[float, float]:
    """Absolute target position from the satellite's bearing and range."""
    return x + math.cos(angle) * distance, y + math.sin(angle) * distance


def build_candidates(x: int, y: int, angle: float, distance: float,
                     surroundings: Sequence[int], memory: GridMap) -> List[MovementCandidate]:
    """
    The four movement candidates sorted by distance to the estimated target.
    Always four entries; ties keep E, S, W, N order.
    """
    target_x, target_y = estimate_target(x, y, angle, distance)
    conditions = feasible_directions(valid_squares(x, y, surroundings, memory))

    candidates = []
    for direction, feasible in zip(DIRECTIONS, conditions):
        dx, dy = STEPS[direction]
        dist = math.hypot(target_x - (x + dx), target_y - (y + dy))
        candidates.append(MovementCandidate(direction, dist, feasible))

    # sorted() is stable, so equal distances keep insertion order
    return sorted(candidates, key=lambda c: c.distance)


def find_candidate(candidates: Sequence[MovementCandidate], direction: Decision) -> MovementCandidate:
    for candidate in candidates:
        if candidate.direction == direction:
            return candidate
    raise KeyError(f"No candidate for {Decision(direction).name}")
