"""
Grid Map for Fleet Exploration
Discrete cell grid shared by the satellite (ground truth + tracking copy)
and by each drone (private exploration memory).

Cell codes match the wire format: 0=free, 1=obstacle, 2=visited, 3=goal.
Anything outside the grid reads as an obstacle, so callers never index
out of range.
"""

import numpy as np
from enum import IntEnum
from typing import List, Optional, Sequence, Tuple


class CellValue(IntEnum):
    """State of a single grid cell."""
    FREE = 0
    OBSTACLE = 1
    VISITED = 2
    GOAL = 3


class GridMap:
    """
    Mutable height x width grid of cell values.
    Stored as a numpy array indexed [y, x] (row, column).
    """

    def __init__(self, width: int, height: int, fill: CellValue = CellValue.FREE):
        """Create a grid filled with ``fill`` (FREE by default)."""
        if width <= 0 or height <= 0:
            raise ValueError(f"Grid dimensions must be positive, got {width}x{height}")
        self.width = int(width)
        self.height = int(height)
        self.grid = np.full((self.height, self.width), int(fill), dtype=np.int8)

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[int]]) -> 'GridMap':
        """Build a map from a list of rows of cell codes."""
        if not rows or not rows[0]:
            raise ValueError("Cannot build a map from empty rows")
        width = len(rows[0])
        for row in rows:
            if len(row) != width:
                raise ValueError("All map rows must have the same width")
        grid_map = cls(width, len(rows))
        grid_map.grid[:, :] = np.array(rows, dtype=np.int8)
        return grid_map

    def copy(self) -> 'GridMap':
        """Independent snapshot (no shared storage)."""
        clone = GridMap(self.width, self.height)
        clone.grid = self.grid.copy()
        return clone

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get(self, x: int, y: int) -> CellValue:
        """Cell value at column x, row y. Out of bounds reads as OBSTACLE."""
        if not self.in_bounds(x, y):
            return CellValue.OBSTACLE
        return CellValue(int(self.grid[y, x]))

    def set(self, x: int, y: int, value: CellValue):
        """Set the cell at column x, row y."""
        if not self.in_bounds(x, y):
            raise IndexError(f"Cell ({x}, {y}) outside {self.width}x{self.height} map")
        self.grid[y, x] = int(value)

    def window(self, x: int, y: int, radius: int = 1) -> List[int]:
        """
        Row-major square window centred on (x, y).
        With radius=1 this is the 3x3 radar, index 4 being the centre cell.
        """
        values = []
        for j in range(-radius, radius + 1):
            for i in range(-radius, radius + 1):
                values.append(int(self.get(x + i, y + j)))
        return values

    def goal_centroid(self) -> Optional[Tuple[float, float]]:
        """Mean (x, y) of every GOAL cell, or None when the map has no goal."""
        coords = np.argwhere(self.grid == int(CellValue.GOAL))
        if len(coords) == 0:
            return None
        mean_y, mean_x = coords.mean(axis=0)
        return float(mean_x), float(mean_y)

    def count(self, value: CellValue) -> int:
        return int(np.count_nonzero(self.grid == int(value)))

    def to_rows(self) -> List[List[int]]:
        """Plain nested lists, used for map payloads."""
        return self.grid.astype(int).tolist()

    def __eq__(self, other) -> bool:
        if not isinstance(other, GridMap):
            return NotImplemented
        return (self.width == other.width and self.height == other.height
                and bool(np.array_equal(self.grid, other.grid)))

    def __repr__(self) -> str:
        return f"GridMap({self.width}x{self.height})"
