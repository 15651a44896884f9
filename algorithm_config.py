#!/usr/bin/env python3
"""
ALGORITHM SELECTION
===================

Each drone decides its next step with a behavior chain:

  termination -> critical -> first -> dodging -> third -> basic

Strategy of the default preset:
1. Rank the four moves by distance to the estimated target
2. Take the closest move when it leads to a free, unvisited cell
3. When the straight line is blocked by an obstacle, dodge: keep a side
   wall under the drone until the preferred direction opens again
4. Otherwise fall back to the best feasible move
5. Give up after width + height cycles without getting closer
"""

ALGORITHM = "dodging"

ALGORITHM_INFO = {
    "dodging": {
        "name": "Dodging + corner tie-break",
        "description": "Obstacle dodging, opposite-direction ties settled by corner cells.",
        "recommended": True
    },
    "dodging_no_tiebreak": {
        "name": "Dodging",
        "description": "Obstacle dodging, ties always go to the best feasible move.",
        "recommended": False
    },
    "greedy": {
        "name": "Greedy",
        "description": "Best feasible move every cycle, no dodging stage.",
        "recommended": False
    }
}

# Two candidates closer than this are a tie
TIE_ERROR = 1.0

# Seconds a drone waits for each satellite reply (None = forever)
REPLY_TIMEOUT_S = 30.0

INITIAL_BATTERY = 100
BATTERY_COST_PER_MOVE = 1

DEBUG = False
