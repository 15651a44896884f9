"""
Obstacle Dodging
Two-state sub-machine (normal / dodging) layered over the ranked candidates.

When the best-ranked move is blocked by an obstacle that continues past
its corner, the drone remembers that move and starts hugging the obstacle
edge. It leaves dodging as soon as the remembered move is feasible again.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional

from core.grid_map import CellValue
from core.movement import Decision, MovementCandidate, find_candidate, rotate

if TYPE_CHECKING:
    from core.drone_state import DroneState


@dataclass
class DodgingContext:
    """Lives for the whole drone lifetime, mutated only by the dodging stage."""
    active: bool = False
    preferred: Optional[Decision] = None  # best move when dodging started

    def enter(self, direction: Decision):
        self.active = True
        self.preferred = Decision(direction)

    def exit(self) -> Decision:
        """Leave dodging and return the move it was protecting."""
        preferred = self.preferred
        self.active = False
        self.preferred = None
        return preferred

    def reset(self):
        self.active = False
        self.preferred = None


def _touches_obstacle(direction: Decision, view_of) -> bool:
    """True when either side of ``direction`` reads OBSTACLE in ``view_of``."""
    return (view_of(direction, rotate(direction, 1)) == CellValue.OBSTACLE
            or view_of(direction, rotate(direction, 3)) == CellValue.OBSTACLE)


def should_enter(state: 'DroneState', candidates: List[MovementCandidate]) -> bool:
    """
    Entry condition: the best move is infeasible because its cell is an
    obstacle, and that obstacle reaches at least one of the corners beside
    it. A lone blocked cell with clear corners is just stepped around.

    The corner condition is stricter than entering on any blocked best
    move, which would also start dodging around single pillars.
    """
    best = candidates[0]
    if best.feasible:
        return False
    if state.valid_movements()[best.direction] != CellValue.OBSTACLE:
        return False
    return _touches_obstacle(best.direction, state.corner)


def dodging_behavior(state: 'DroneState', candidates: List[MovementCandidate]) -> Decision:
    """
    Dodging stage of the behavior chain.

    Normal: possibly enter dodging, never decides.
    Dodging:
      1. preferred move feasible again -> leave dodging, take it
      2. feasible move whose radar corner is an obstacle -> take it
      3. feasible move with an obstacle beside it in the merged view -> take it
      4. otherwise defer
    """
    dodging = state.dodging

    if not dodging.active:
        if should_enter(state, candidates):
            dodging.enter(candidates[0].direction)
            state.log(f"Entering dodging: {dodging.preferred.name}")
        return Decision.NO_DECISION

    if find_candidate(candidates, dodging.preferred).feasible:
        preferred = dodging.exit()
        state.log(f"Leaving dodging: {preferred.name}")
        return preferred

    # Next to an obstacle corner, one move away
    for candidate in candidates:
        if candidate.feasible and _touches_obstacle(candidate.direction, state.corner):
            return candidate.direction

    # Next to an obstacle, two moves away
    movements = state.valid_movements()
    for candidate in candidates:
        if candidate.feasible and _touches_obstacle(
                candidate.direction, lambda _, side: movements[side]):
            return candidate.direction

    return Decision.NO_DECISION
