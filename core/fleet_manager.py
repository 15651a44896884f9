"""
Fleet Manager for Multi-Drone Runs
Wires one satellite and several drone agents onto a shared message bus and
runs them until every drone has finished.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from algorithm_config import (ALGORITHM, BATTERY_COST_PER_MOVE, DEBUG, INITIAL_BATTERY,
                              REPLY_TIMEOUT_S, TIE_ERROR)
from core.behaviors import build_chain
from core.drone_agent import DroneAgent
from core.grid_map import GridMap
from core.messages import MessageBus
from core.movement import Decision
from core.satellite import Satellite

SATELLITE_ID = "satellite"


@dataclass
class DroneResult:
    """Outcome of one drone after a run."""
    name: str
    result: Optional[Decision]
    location: Tuple[int, int]
    battery: int
    moves: int
    rejected_moves: int
    trace: List[Dict[str, int]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.result == Decision.END_SUCCESS


class FleetManager:
    """
    Manages the satellite and its drones for one run.
    """

    def __init__(self, grid_map: GridMap, starts: Sequence[Tuple[int, int]],
                 count: Optional[int] = None, algorithm: str = ALGORITHM,
                 tie_error: float = TIE_ERROR, reply_timeout: Optional[float] = REPLY_TIMEOUT_S,
                 initial_battery: int = INITIAL_BATTERY,
                 battery_cost: int = BATTERY_COST_PER_MOVE, debug: bool = DEBUG):
        """
        Initialize the fleet.

        Args:
            grid_map: Ground-truth map (needs at least one goal cell)
            starts: Start cells; drone i uses starts[i % len(starts)]
            count: Number of drones (defaults to one per start cell)
            algorithm: Behavior-chain preset from algorithm_config.ALGORITHM_INFO
        """
        if not starts:
            raise ValueError("At least one start cell is required")
        self.count = max(1, count if count is not None else len(starts))
        self.algorithm = algorithm
        self.debug = debug

        self.bus = MessageBus()
        self.satellite = Satellite(SATELLITE_ID, self.bus, grid_map,
                                   default_start=tuple(starts[0]),
                                   initial_battery=initial_battery,
                                   battery_cost=battery_cost, debug=debug)

        self.drones: List[DroneAgent] = []
        for i in range(self.count):
            agent = DroneAgent(f"drone{i}", SATELLITE_ID, self.bus,
                               grid_map.width, grid_map.height,
                               chain=build_chain(algorithm, tie_error),
                               start=tuple(starts[i % len(starts)]),
                               reply_timeout=reply_timeout, debug=debug)
            self.drones.append(agent)

        print(f"FleetManager: {self.count} drones on a {grid_map.width}x{grid_map.height} map, "
              f"algorithm '{algorithm}'")

    def start(self):
        """Satellite first so the drones' Register requests are answered."""
        self.satellite.start()
        for agent in self.drones:
            agent.start()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until every drone finished. Returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        for agent in self.drones:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            if not agent.join(remaining):
                return False
        return True

    def shutdown(self):
        for agent in self.drones:
            agent.shutdown()
        self.satellite.stop()

    def run(self, timeout: Optional[float] = None) -> List[DroneResult]:
        """Start everything, wait for the drones, shut down, collect results."""
        self.start()
        try:
            if not self.wait(timeout):
                print(f"FleetManager: timed out after {timeout}s")
        finally:
            self.shutdown()
        return self.get_results()

    def get_results(self) -> List[DroneResult]:
        results = []
        for agent in self.drones:
            status = self.satellite.drones.get(agent.name)
            results.append(DroneResult(
                name=agent.name,
                result=agent.result,
                location=status.location if status else (-1, -1),
                battery=status.battery if status else 0,
                moves=status.moves if status else 0,
                rejected_moves=agent.rejected_moves,
                trace=agent.trace.to_list(),
            ))
        return results

    def is_all_missions_complete(self) -> bool:
        return all(agent.finished.is_set() for agent in self.drones)

    def get_combined_debug_info(self) -> dict:
        results = self.get_results()
        return {
            "drone_count": self.count,
            "algorithm": self.algorithm,
            "succeeded": sum(1 for r in results if r.succeeded),
            "moves": sum(r.moves for r in results),
            "messages_handled": self.satellite.messages_handled,
            "bus": self.bus.get_stats(),
        }
