"""
Protocol Payloads

Typed dataclasses for the content of each conversation between drones and
the satellite. In simulation they travel as JSON objects; ``to_dict`` and
``from_dict`` are the only places that know the field names on the wire.

  SendMeMyStatus  sat -> drone   StatusReport
  IMoved          drone -> sat   MoveReport
  Register        drone -> sat   RegisterRequest (optional start cell)
  BatteryQuery    drone -> peer  BatteryReply
  TraceQuery      drone -> peer  TraceReply
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.messages import MalformedMessageError

GOAL_YES = "Si"
GOAL_NO = "No"


def _require_int(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    # bool is an int subclass but never a valid code
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedMessageError(f"Field '{key}' must be an integer, got {value!r}")
    return value


def _require_number(data: Dict[str, Any], key: str) -> float:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedMessageError(f"Field '{key}' must be a number, got {value!r}")
    return float(value)


def _require_dict(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if not isinstance(value, dict):
        raise MalformedMessageError(f"Field '{key}' must be an object, got {value!r}")
    return value


# ── sat -> drone: status snapshot ───────────────────────────────────────

@dataclass
class StatusReport:
    """Reply to SendMeMyStatus.
    Bearing (radians) and range are measured from the drone to the goal
    centroid; radar is the 3x3 window of the tracking map around the drone."""
    x: int
    y: int
    alpha: float
    dist: float
    goal: bool
    battery: int
    radar: List[int] = field(default_factory=lambda: [0] * 9)
    connected: str = "Yes"
    ready: str = "Yes"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'connected': self.connected,
            'ready': self.ready,
            'gps': {'x': self.x, 'y': self.y},
            'goal': GOAL_YES if self.goal else GOAL_NO,
            'gonio': {'alpha': self.alpha, 'dist': self.dist},
            'battery': self.battery,
            'radar': list(self.radar),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'StatusReport':
        gps = _require_dict(data, 'gps')
        gonio = _require_dict(data, 'gonio')

        goal = data.get('goal')
        if goal not in (GOAL_YES, GOAL_NO):
            raise MalformedMessageError(f"Field 'goal' must be '{GOAL_YES}' or '{GOAL_NO}', got {goal!r}")

        radar = data.get('radar')
        if not isinstance(radar, list) or len(radar) != 9:
            raise MalformedMessageError(f"Field 'radar' must be a list of 9 cells, got {radar!r}")
        if any(isinstance(v, bool) or not isinstance(v, int) for v in radar):
            raise MalformedMessageError("Radar cells must be integers")

        return StatusReport(
            x=_require_int(gps, 'x'),
            y=_require_int(gps, 'y'),
            alpha=_require_number(gonio, 'alpha'),
            dist=_require_number(gonio, 'dist'),
            goal=goal == GOAL_YES,
            battery=int(_require_number(data, 'battery')),
            radar=list(radar),
            connected=str(data.get('connected', "Yes")),
            ready=str(data.get('ready', "Yes")),
        )


# ── drone -> sat: move report ───────────────────────────────────────────

@dataclass
class MoveReport:
    """IMoved request. decision is 0-3 (E, S, W, N), -1 success or -2 fail."""
    decision: int

    def to_dict(self) -> Dict[str, Any]:
        return {'decision': int(self.decision)}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'MoveReport':
        return MoveReport(decision=_require_int(data, 'decision'))


# ── drone -> sat: registration ──────────────────────────────────────────

@dataclass
class RegisterRequest:
    """Register request. Without a start cell the satellite uses its default."""
    x: Optional[int] = None
    y: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.x is None or self.y is None:
            return {}
        return {'x': self.x, 'y': self.y}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'RegisterRequest':
        if not data:
            return RegisterRequest()
        return RegisterRequest(x=_require_int(data, 'x'), y=_require_int(data, 'y'))


# ── peer queries ────────────────────────────────────────────────────────

@dataclass
class BatteryReply:
    battery: int

    def to_dict(self) -> Dict[str, Any]:
        return {'battery': int(self.battery)}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'BatteryReply':
        return BatteryReply(battery=_require_int(data, 'battery'))


@dataclass
class TraceReply:
    """Serialized trace: list of {step, x, y, decision} objects."""
    entries: List[Dict[str, int]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'trace': list(self.entries)}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'TraceReply':
        entries = data.get('trace')
        if not isinstance(entries, list):
            raise MalformedMessageError(f"Field 'trace' must be a list, got {entries!r}")
        return TraceReply(entries=entries)


@dataclass
class DroneNotice:
    """Inform about another drone (reached goal, recharged, moved)."""
    drone: str
    x: Optional[int] = None
    y: Optional[int] = None
    battery: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {'drone': self.drone}
        if self.x is not None and self.y is not None:
            data['x'] = self.x
            data['y'] = self.y
        if self.battery is not None:
            data['battery'] = self.battery
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'DroneNotice':
        drone = data.get('drone')
        if not isinstance(drone, str) or not drone:
            raise MalformedMessageError(f"Field 'drone' must be a non-empty string, got {drone!r}")
        notice = DroneNotice(drone=drone)
        if 'x' in data or 'y' in data:
            notice.x = _require_int(data, 'x')
            notice.y = _require_int(data, 'y')
        if 'battery' in data:
            notice.battery = _require_int(data, 'battery')
        return notice
