"""
Drone Decision State
Everything the behavior chain reads and writes during one think cycle.

Owned by the think cycle only. The inbound dispatcher never touches it,
which is what keeps the two drone workers from racing on decision data.
"""

from typing import List, Optional

from core.dodging import DodgingContext
from core.grid_map import CellValue, GridMap
from core.movement import (Decision, MovementCandidate, build_candidates, corner,
                           valid_movements)
from core.payloads import StatusReport


class DroneState:
    """
    Kinematic state, sensor snapshot and private memory of one drone.
    Position, bearing and range come from the satellite every cycle.
    """

    def __init__(self, name: str, map_width: int, map_height: int, debug: bool = False):
        self.name = name
        self.x: Optional[int] = None
        self.y: Optional[int] = None
        self.angle = 0.0       # radians, drone -> goal
        self.distance = 0.0    # cells, drone -> goal
        self.goal = False
        self.battery = 0
        self.surroundings: List[int] = [int(CellValue.FREE)] * 9

        # Private exploration memory: visited cells and obstacles seen on radar
        self.memory = GridMap(map_width, map_height)

        self.dodging = DodgingContext()

        # Stall detection: cycles without getting closer than ever before
        self.min_distance = float('inf')
        self.stall_counter = 0
        self.stall_limit = map_width + map_height

        self.debug = debug

    def apply_status(self, report: StatusReport):
        """Adopt a fresh status snapshot from the satellite."""
        # Remember where we were before taking the new position
        if self.has_position and self.memory.in_bounds(self.x, self.y):
            self.memory.set(self.x, self.y, CellValue.VISITED)

        self.x = report.x
        self.y = report.y
        self.angle = report.alpha
        self.distance = report.dist
        self.goal = report.goal
        self.battery = report.battery
        self.surroundings = list(report.radar)

        for index, value in enumerate(self.surroundings):
            if value == CellValue.OBSTACLE:
                cell_x = self.x + index % 3 - 1
                cell_y = self.y + index // 3 - 1
                if self.memory.in_bounds(cell_x, cell_y):
                    self.memory.set(cell_x, cell_y, CellValue.OBSTACLE)

        if self.distance < self.min_distance:
            self.min_distance = self.distance
            self.stall_counter = 0
        else:
            self.stall_counter += 1

        if self.debug:
            s = self.surroundings
            self.log(f"Radar |{s[0]}, {s[1]}, {s[2]}| |{s[3]}, {s[4]}, {s[5]}| |{s[6]}, {s[7]}, {s[8]}|")

    @property
    def has_position(self) -> bool:
        return self.x is not None and self.y is not None

    def candidates(self) -> List[MovementCandidate]:
        return build_candidates(self.x, self.y, self.angle, self.distance,
                                self.surroundings, self.memory)

    def valid_movements(self) -> List[int]:
        return valid_movements(self.x, self.y, self.surroundings, self.memory)

    def corner(self, d1: Decision, d2: Decision) -> int:
        return corner(d1, d2, self.surroundings)

    def log(self, text: str):
        if self.debug:
            print(f"[D-{self.name}] {text}")
