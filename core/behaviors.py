"""
Behavior Chain
Ordered decision stages turning the ranked candidates into one move.

Each stage is a plain callable ``stage(state, candidates) -> Decision``.
Returning ``Decision.NO_DECISION`` defers to the next stage, returning
``Decision.RETHINK`` restarts the whole refresh + evaluation pass.

Default order:
  termination -> critical -> first -> dodging -> third -> basic

The slots are filled by configuration (see ``build_chain``) rather than by
subclassing the drone.
"""

from typing import TYPE_CHECKING, Callable, List, Optional, Sequence, Tuple

from core.dodging import dodging_behavior
from core.grid_map import CellValue
from core.movement import Decision, MovementCandidate, find_candidate, opposite

if TYPE_CHECKING:
    from core.drone_state import DroneState

Stage = Callable[['DroneState', List[MovementCandidate]], Decision]
TieBreak = Callable[['DroneState', List[MovementCandidate], Decision, Decision], Decision]

STAGE_SLOTS = ("termination", "critical", "first", "dodging", "third", "basic")


def defer(state: 'DroneState', candidates: List[MovementCandidate]) -> Decision:
    """Empty extension point."""
    return Decision.NO_DECISION


def no_tie_break(state: 'DroneState', candidates: List[MovementCandidate],
                 second: Decision, third: Decision) -> Decision:
    return Decision.NO_DECISION


def corner_tie_break(state: 'DroneState', candidates: List[MovementCandidate],
                     second: Decision, third: Decision) -> Decision:
    """
    Settle a tie between two opposite moves by the corners they share with
    the blocked best move: go for third only when its corner is clear and
    second's corner is an obstacle.
    """
    best = candidates[0].direction
    corner_second = state.corner(best, second)
    corner_third = state.corner(best, third)
    if corner_third == CellValue.FREE and corner_second == CellValue.OBSTACLE:
        return third
    return Decision.NO_DECISION


class StallTermination:
    """
    Gives up with END_FAIL once the drone has gone ``state.stall_limit``
    cycles without reaching a new minimum distance to the target.
    Goal success is checked before the chain runs, not here.
    """

    def __call__(self, state: 'DroneState', candidates: List[MovementCandidate]) -> Decision:
        if state.stall_counter >= state.stall_limit:
            state.log(f"No progress in {state.stall_counter} cycles, giving up")
            return Decision.END_FAIL
        return Decision.NO_DECISION


class BasicBehavior:
    """
    Greedy hill-climbing fallback. Always decides.

    Takes the closest move when it is feasible. Otherwise picks the best
    feasible one (second) and, while dodging, lets the tie-break choose
    between it and the next feasible move (third) when they point in
    opposite directions at nearly the same distance.
    """

    def __init__(self, tie_break: TieBreak = corner_tie_break, tie_error: float = 1.0):
        self.tie_break = tie_break
        self.tie_error = tie_error

    @staticmethod
    def ranked_feasible(candidates: Sequence[MovementCandidate]) -> Tuple[Optional[Decision], Optional[Decision]]:
        """Best and next-best feasible directions, scanning worst to best."""
        second = third = None
        for candidate in reversed(candidates):
            if candidate.feasible:
                third = second
                second = candidate.direction
        return second, third

    def __call__(self, state: 'DroneState', candidates: List[MovementCandidate]) -> Decision:
        if candidates[0].feasible:
            return candidates[0].direction

        second, third = self.ranked_feasible(candidates)

        if second is None:
            state.log("No feasible moves")
            return Decision.END_FAIL
        if third is None:
            return second

        dist_second = find_candidate(candidates, second).distance
        dist_third = find_candidate(candidates, third).distance
        if (abs(dist_second - dist_third) < self.tie_error
                and state.dodging.active
                and third == opposite(second)):
            decision = self.tie_break(state, candidates, second, third)
            if decision == Decision.NO_DECISION:
                decision = second
            return decision

        return second


class BehaviorChain:
    """Runs the stages in order until one of them decides."""

    def __init__(self, termination: Stage = None, critical: Stage = defer,
                 first: Stage = defer, dodging: Stage = dodging_behavior,
                 third: Stage = defer, basic: Stage = None):
        self.termination = termination if termination is not None else StallTermination()
        self.critical = critical
        self.first = first
        self.dodging = dodging
        self.third = third
        self.basic = basic if basic is not None else BasicBehavior()

    @property
    def stages(self) -> List[Tuple[str, Stage]]:
        return [(slot, getattr(self, slot)) for slot in STAGE_SLOTS]

    def evaluate(self, state: 'DroneState') -> Decision:
        """One pass over the stages with freshly built candidates."""
        candidates = state.candidates()
        for name, stage in self.stages:
            decision = Decision(stage(state, candidates))
            if decision == Decision.END_SUCCESS and name == "termination":
                raise ValueError("Termination stage may only return END_FAIL or defer")
            if decision != Decision.NO_DECISION:
                return decision
        return Decision.NO_DECISION

    def think(self, state: 'DroneState', before_pass: Callable[[], None] = None) -> Decision:
        """
        Full decision cycle.

        Goal reached -> END_SUCCESS without running the stages. Otherwise
        ``before_pass`` (stand-by wait + state refresh) and a chain pass
        repeat for as long as some stage asks for RETHINK.
        """
        if state.goal:
            state.dodging.reset()
            return Decision.END_SUCCESS

        while True:
            if before_pass is not None:
                before_pass()
            decision = self.evaluate(state)
            if decision == Decision.RETHINK:
                state.log("Rethink")
                continue
            # Exploration is over, nothing left to dodge
            if decision.is_terminal and state.dodging.active:
                state.dodging.reset()
            return decision


def build_chain(algorithm: str = "dodging", tie_error: float = 1.0) -> BehaviorChain:
    """Chain for one of the presets listed in algorithm_config.ALGORITHM_INFO."""
    if algorithm == "dodging":
        return BehaviorChain(basic=BasicBehavior(corner_tie_break, tie_error))
    if algorithm == "dodging_no_tiebreak":
        return BehaviorChain(basic=BasicBehavior(no_tie_break, tie_error))
    if algorithm == "greedy":
        return BehaviorChain(dodging=defer, basic=BasicBehavior(no_tie_break, tie_error))
    raise ValueError(f"Unknown algorithm '{algorithm}'")
