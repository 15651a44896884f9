"""
Test Suite: Fleet Runs
======================
End-to-end runs of satellite + drones on the built-in layouts.

Tests:
- Single drone reaching the goal around obstacles
- Multi-drone runs finishing
- Launcher exit codes
"""

import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.fleet_manager import FleetManager
from core.grid_map import CellValue
from core.movement import Decision
from simulation.environment import load_layout, parse_layout
import simulation_main


def run_layout(name, **kwargs):
    grid, starts = load_layout(name)
    fleet = FleetManager(grid, starts, reply_timeout=5.0, **kwargs)
    return fleet, fleet.run(timeout=30.0)


class TestSingleDrone:
    """Tests with one drone"""

    @pytest.mark.parametrize("layout", ["open", "pillar", "wall"])
    def test_reaches_goal(self, layout):
        fleet, results = run_layout(layout)
        assert len(results) == 1
        result = results[0]
        assert result.result == Decision.END_SUCCESS
        assert fleet.satellite.original_map.get(*result.location) == CellValue.GOAL
        assert result.rejected_moves == 0
        assert result.battery == 100 - result.moves

    def test_trace_follows_moves(self):
        fleet, results = run_layout("pillar")
        trace = results[0].trace
        assert trace[0]['x'] == 0 and trace[0]['y'] == 3
        assert trace[-1]['decision'] == Decision.END_SUCCESS
        assert len(trace) == results[0].moves + 1

    def test_visited_cells_on_tracking_map(self):
        fleet, results = run_layout("open")
        assert fleet.satellite.tracking_map.count(CellValue.VISITED) == results[0].moves + 1

    def test_unreachable_goal_fails(self):
        grid, starts = parse_layout("""
S..#..
...#.G
...#..
""")
        fleet = FleetManager(grid, starts, reply_timeout=5.0)
        results = fleet.run(timeout=30.0)
        assert results[0].result == Decision.END_FAIL


class TestMultiDrone:
    """Tests with several drones"""

    def test_all_drones_finish(self):
        fleet, results = run_layout("rooms")
        assert len(results) == 2
        assert all(r.result is not None and r.result.is_terminal for r in results)
        assert fleet.is_all_missions_complete()
        assert fleet.satellite.all_finished()

    def test_count_cycles_start_cells(self):
        grid, starts = load_layout("open")
        fleet = FleetManager(grid, starts, count=3)
        assert [d.start_cell for d in fleet.drones] == [(0, 0)] * 3
        assert [d.name for d in fleet.drones] == ["drone0", "drone1", "drone2"]
        fleet.shutdown()

    def test_debug_info(self):
        fleet, _ = run_layout("open")
        info = fleet.get_combined_debug_info()
        assert info["drone_count"] == 1
        assert info["succeeded"] == 1
        assert info["bus"]["messages_dropped"] == 0


class TestLauncher:
    """Tests for simulation_main"""

    def test_success_exit_code(self, capsys):
        assert simulation_main.main(["--layout", "open", "--timeout", "30"]) == 0
        assert "END_SUCCESS" in capsys.readouterr().out

    def test_missing_map_file(self):
        assert simulation_main.main(["--map-file", "/nonexistent/map.txt"]) == 2

    def test_map_without_start_cells(self, tmp_path):
        path = tmp_path / "map.txt"
        path.write_text("....\n...G\n")
        assert simulation_main.main(["--map-file", str(path), "--timeout", "30"]) == 0
