"""
Environment representation
Grid worlds the fleet explores, written as text so they are easy to edit.

Legend:
  .  free        #  obstacle      G  goal
  S  start cell (free; drones are placed on S cells in reading order)
Digit maps using the wire codes 0-3 are accepted as well.
"""

from pathlib import Path
from typing import Dict, List, Tuple

from core.grid_map import CellValue, GridMap

SYMBOLS: Dict[str, CellValue] = {
    '.': CellValue.FREE,
    '#': CellValue.OBSTACLE,
    'G': CellValue.GOAL,
    'S': CellValue.FREE,
    '0': CellValue.FREE,
    '1': CellValue.OBSTACLE,
    '2': CellValue.VISITED,
    '3': CellValue.GOAL,
}

LAYOUTS: Dict[str, str] = {
    # Open field, goal in the far corner
    "open": """
S.........
..........
..........
..........
..........
..........
..........
.........G
""",
    # Wall across the straight line to the goal, passable at the bottom
    "wall": """
..........
..........
.....#....
S....#...G
.....#....
.....#....
..........
""",
    # Single blocked cell straight ahead
    "pillar": """
.......
.......
.......
S..#..G
.......
.......
.......
""",
    # U-shaped pocket opening away from the goal
    "pocket": """
..............
..............
...#######....
.........#....
S........#..GG
.........#..GG
...#######....
..............
..............
""",
    # Two drones, rooms joined by a door
    "rooms": """
S.....#.......
......#.......
......#.......
..............
......#.....GG
S.....#.....GG
......#.......
""",
}


def parse_layout(text: str) -> Tuple[GridMap, List[Tuple[int, int]]]:
    """Parse a text layout into a map and its start cells."""
    lines = [line.rstrip() for line in text.strip('\n').splitlines()]
    lines = [line for line in lines if line]
    if not lines:
        raise ValueError("Layout is empty")

    width = len(lines[0])
    rows: List[List[int]] = []
    starts: List[Tuple[int, int]] = []
    for y, line in enumerate(lines):
        if len(line) != width:
            raise ValueError(f"Layout row {y} has width {len(line)}, expected {width}")
        row = []
        for x, symbol in enumerate(line):
            if symbol not in SYMBOLS:
                raise ValueError(f"Unknown map symbol '{symbol}' at ({x}, {y})")
            if symbol == 'S':
                starts.append((x, y))
            row.append(int(SYMBOLS[symbol]))
        rows.append(row)

    return GridMap.from_rows(rows), starts


def load_layout(name: str) -> Tuple[GridMap, List[Tuple[int, int]]]:
    if name not in LAYOUTS:
        raise ValueError(f"Unknown layout '{name}'. Available: {', '.join(sorted(LAYOUTS))}")
    return parse_layout(LAYOUTS[name])


def load_map_file(path) -> Tuple[GridMap, List[Tuple[int, int]]]:
    """Read a text map from disk."""
    return parse_layout(Path(path).read_text())


def render(grid_map: GridMap, drones: Dict[str, Tuple[int, int]] = None) -> str:
    """Text picture of a map; drones drawn with the last character of their id."""
    glyphs = {CellValue.FREE: '.', CellValue.OBSTACLE: '#',
              CellValue.VISITED: 'o', CellValue.GOAL: 'G'}
    canvas = [[glyphs[grid_map.get(x, y)] for x in range(grid_map.width)]
              for y in range(grid_map.height)]
    for name, (x, y) in (drones or {}).items():
        if grid_map.in_bounds(x, y):
            canvas[y][x] = name[-1:].upper() or '@'
    return "\n".join("".join(row) for row in canvas)
