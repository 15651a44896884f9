#!/usr/bin/env python3
"""
Drone Fleet Simulation - Main Entry Point

One satellite holds the map; each drone only sees its 3x3 radar plus the
bearing and distance to the goal, and must find its way there.

Usage:
  python simulation_main.py --layout wall
  python simulation_main.py --map-file maps/mine.txt --drones 3 --debug
"""

import argparse
import sys

from algorithm_config import ALGORITHM, ALGORITHM_INFO, DEBUG
from core.fleet_manager import FleetManager
from simulation.environment import LAYOUTS, load_layout, load_map_file, render


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Satellite-coordinated drone fleet on a grid map")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--layout", default="wall", choices=sorted(LAYOUTS),
                        help="Built-in map layout")
    source.add_argument("--map-file", help="Text map (. free, # obstacle, G goal, S start)")
    parser.add_argument("--drones", type=int, default=None,
                        help="Number of drones (default: one per start cell)")
    parser.add_argument("--algorithm", default=ALGORITHM, choices=sorted(ALGORITHM_INFO),
                        help="Behavior-chain preset")
    parser.add_argument("--timeout", type=float, default=60.0,
                        help="Seconds to wait for the fleet to finish")
    parser.add_argument("--debug", action="store_true", default=DEBUG,
                        help="Print per-cycle drone and satellite logs")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    try:
        if args.map_file:
            grid_map, starts = load_map_file(args.map_file)
        else:
            grid_map, starts = load_layout(args.layout)
        if not starts:
            starts = [(0, 0)]

        fleet = FleetManager(grid_map, starts, count=args.drones,
                             algorithm=args.algorithm, debug=args.debug)
        results = fleet.run(timeout=args.timeout)

        print()
        print(render(fleet.satellite.tracking_map,
                     {r.name: r.location for r in results}))
        print()
        for r in results:
            outcome = r.result.name if r.result is not None else "UNFINISHED"
            print(f"{r.name}: {outcome} at {r.location}, {r.moves} moves, "
                  f"battery {r.battery}, {r.rejected_moves} rejected")
        return 0 if all(r.succeeded for r in results) else 1
    except KeyboardInterrupt:
        print("\nSimulation interrupted by user.")
        return 130
    except (OSError, ValueError) as e:
        print(f"Error: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
