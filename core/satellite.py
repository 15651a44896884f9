"""
Satellite Coordinator
Holds the ground-truth map and the authoritative status of every drone.

A single worker drains one inbound queue and handles messages strictly one
at a time, so "read status -> validate move -> update map" is atomic per
drone and all map updates are totally ordered.

Two maps are kept:
  original_map  ground truth, never modified (obstacles, goal cells)
  tracking_map  copy updated with VISITED as drones move; radar source
"""

import math
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from core.grid_map import CellValue, GridMap
from core.messages import (AgentMessage, MalformedMessageError, MessageBus, Performative,
                           ProcessingError, Protocol)
from core.movement import STEPS, Decision
from core.payloads import DroneNotice, MoveReport, RegisterRequest, StatusReport

_STOP = object()


@dataclass
class DroneStatus:
    """Satellite-side record of one registered drone."""
    agent_id: str
    x: int
    y: int
    battery: int
    goal_reached: bool = False
    finished: Optional[int] = None  # terminal decision code once reported
    moves: int = 0

    @property
    def location(self) -> Tuple[int, int]:
        return (self.x, self.y)


def calculate_angle(dx: float, dy: float) -> float:
    """
    Bearing of (dx, dy) from the x axis in [0, 2*pi), y growing southwards.
    Quadrant split on atan(dy/dx); a zero vector gives 0.
    """
    if dx > 0 and dy >= 0:
        return math.atan(dy / dx)
    if dx > 0 and dy < 0:
        return math.atan(dy / dx) + 2.0 * math.pi
    if dx == 0 and dy > 0:
        return math.pi / 2.0
    if dx == 0 and dy < 0:
        return 3.0 * math.pi / 2.0
    if dx < 0:
        return math.atan(dy / dx) + math.pi
    return 0.0


class Satellite:
    """
    Coordinator agent. ``start()`` runs the message loop in a worker thread;
    ``process_pending()`` handles queued messages on the calling thread.
    """

    def __init__(self, satellite_id: str, bus: MessageBus, grid_map: GridMap,
                 default_start: Tuple[int, int] = (0, 0),
                 initial_battery: int = 100, battery_cost: int = 1,
                 max_drones: Optional[int] = None, debug: bool = False):
        self.satellite_id = satellite_id
        self.bus = bus
        self.original_map = grid_map.copy()
        self.tracking_map = grid_map.copy()
        self.default_start = default_start
        self.initial_battery = initial_battery
        self.battery_cost = battery_cost
        self.max_drones = max_drones
        self.debug = debug

        centroid = self.original_map.goal_centroid()
        if centroid is None:
            raise ValueError("Map has no goal cells")
        self.goal_x, self.goal_y = centroid

        # Keyed by agent id, kept in registration order
        self.drones: Dict[str, DroneStatus] = {}
        self.goal_subscribers: List[str] = []
        self.move_subscribers: List[str] = []

        self.message_queue: "queue.Queue[Any]" = queue.Queue()
        self.messages_handled = 0
        self._thread: Optional[threading.Thread] = None

        # Dispatch table: tag -> handler returning the INFORM payload
        self.handlers: Dict[str, Callable[[AgentMessage], Optional[Dict[str, Any]]]] = {
            Protocol.REGISTER.value: self.on_register,
            Protocol.STATUS.value: self.on_status_queried,
            Protocol.MOVED.value: self.on_drone_moved,
            Protocol.GOAL_SUBSCRIPTION.value: self.on_subscribe,
            Protocol.MOVE_SUBSCRIPTION.value: self.on_subscribe,
            Protocol.ORIGINAL_MAP.value: self.on_map_queried,
            Protocol.SHARED_MAP.value: self.on_map_queried,
            Protocol.DRONE_IDS.value: self.on_drone_ids_queried,
            Protocol.DRONE_POSITION.value: self.on_drone_position_queried,
            Protocol.DRONE_DISTANCE.value: self.on_drone_distance_queried,
            Protocol.DRONE_BATTERY.value: self.on_drone_battery_queried,
        }

        self.bus.register(self.satellite_id, self.on_message)

    # ── Message loop ─────────────────────────────────────────────────

    def on_message(self, msg: AgentMessage):
        """Bus callback. Only enqueues."""
        self.message_queue.put(msg)

    def start(self):
        self._thread = threading.Thread(target=self.run, name=f"{self.satellite_id}-loop", daemon=True)
        self._thread.start()
        print(f"[SAT] {self.satellite_id} running, goal at ({self.goal_x:.1f}, {self.goal_y:.1f})")

    def run(self):
        while True:
            item = self.message_queue.get()
            if item is _STOP:
                return
            self.handle(item)

    def stop(self, timeout: float = 2.0):
        self.message_queue.put(_STOP)
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def process_pending(self) -> int:
        """Handle everything queued right now. Returns how many were handled."""
        handled = 0
        while True:
            try:
                item = self.message_queue.get_nowait()
            except queue.Empty:
                return handled
            if item is _STOP:
                return handled
            self.handle(item)
            handled += 1

    def handle(self, msg: AgentMessage):
        """Dispatch one message by protocol tag and send the reply."""
        self.messages_handled += 1
        if self.debug:
            print(f"[SAT] Processing {msg}")

        if msg.is_reply:
            # Drones' answers to our informs; nothing to send back
            if msg.performative is not Performative.INFORM:
                print(f"[SAT] {msg.performative.value} from {msg.sender} on {msg.protocol}")
            return

        handler = self.handlers.get(msg.protocol)
        if handler is None or msg.performative is not Performative.REQUEST:
            self.bus.send(msg.reply(Performative.NOT_UNDERSTOOD))
            return

        try:
            payload = handler(msg)
        except MalformedMessageError as e:
            print(f"[SAT] Not understood {msg.protocol} from {msg.sender}: {e}")
            self.bus.send(msg.reply(Performative.NOT_UNDERSTOOD))
            return
        except ProcessingError as e:
            print(f"[SAT] {msg.protocol} from {msg.sender} failed: {e}")
            self.bus.send(msg.reply(Performative.FAILURE, {'fail': str(e)}))
            return

        self.bus.send(msg.reply(Performative.INFORM, payload))

    # ── Drone status ─────────────────────────────────────────────────

    def register_drone(self, agent_id: str, x: Optional[int] = None,
                       y: Optional[int] = None) -> DroneStatus:
        """Create the status record for a new drone."""
        if agent_id in self.drones:
            raise ProcessingError(f"Drone '{agent_id}' already registered")
        if self.max_drones is not None and len(self.drones) >= self.max_drones:
            raise ProcessingError(f"Satellite full ({self.max_drones} drones)")
        if x is None or y is None:
            x, y = self.default_start
        if self.original_map.get(x, y) == CellValue.OBSTACLE:
            raise ProcessingError(f"Start cell ({x}, {y}) is not free")

        status = DroneStatus(agent_id, x, y, self.initial_battery)
        status.goal_reached = self.original_map.get(x, y) == CellValue.GOAL
        self.drones[agent_id] = status
        self.tracking_map.set(x, y, CellValue.VISITED)
        print(f"[SAT] Registered {agent_id} at ({x}, {y})")
        return status

    def find_status(self, agent_id: str) -> DroneStatus:
        status = self.drones.get(agent_id)
        if status is None:
            raise ProcessingError(f"Drone '{agent_id}' not registered")
        return status

    def surroundings(self, status: DroneStatus) -> List[int]:
        """3x3 window of the tracking map centred on the drone."""
        return self.tracking_map.window(status.x, status.y)

    def create_status(self, status: DroneStatus) -> StatusReport:
        dx = self.goal_x - status.x
        dy = self.goal_y - status.y
        return StatusReport(
            x=status.x,
            y=status.y,
            alpha=calculate_angle(dx, dy),
            dist=math.hypot(dx, dy),
            goal=self.original_map.get(status.x, status.y) == CellValue.GOAL,
            battery=status.battery,
            radar=self.surroundings(status),
        )

    def evaluate_decision(self, status: DroneStatus, decision: int):
        """Apply a move report to the drone's status and the tracking map."""
        if status.finished is not None:
            raise ProcessingError(f"Drone '{status.agent_id}' already finished")

        if decision in (Decision.END_SUCCESS, Decision.END_FAIL):
            status.finished = decision
            if decision == Decision.END_SUCCESS:
                if self.original_map.get(status.x, status.y) == CellValue.GOAL:
                    status.goal_reached = True
                    self._notify(self.goal_subscribers, Protocol.DRONE_REACHED_GOAL,
                                 DroneNotice(status.agent_id, status.x, status.y), skip=status.agent_id)
                else:
                    # Finished, but the map does not back the claim
                    print(f"[SAT] {status.agent_id} claims the goal at {status.location}, not a goal cell")
            print(f"[SAT] {status.agent_id} finished: {Decision(decision).name} at {status.location}")
            return

        step = STEPS.get(decision) if decision in (0, 1, 2, 3) else None
        if step is None:
            raise ProcessingError(f"Invalid decision {decision}")

        x, y = status.x + step[0], status.y + step[1]
        if self.original_map.get(x, y) == CellValue.OBSTACLE:
            raise ProcessingError(f"Cannot move {Decision(decision).name} into obstacle at ({x}, {y})")

        status.x, status.y = x, y
        status.moves += 1
        status.battery = max(0, status.battery - self.battery_cost)
        if self.original_map.get(x, y) == CellValue.GOAL:
            status.goal_reached = True
        self.tracking_map.set(x, y, CellValue.VISITED)

        self._notify(self.move_subscribers, Protocol.DRONE_MOVED,
                     DroneNotice(status.agent_id, x, y), skip=status.agent_id)

    def _notify(self, subscribers: List[str], protocol: Protocol, notice: DroneNotice, skip: str = None):
        for subscriber in subscribers:
            if subscriber != skip:
                self.bus.send(AgentMessage.create(Performative.INFORM, protocol, self.satellite_id,
                                                  subscriber, notice.to_dict()))

    def all_finished(self) -> bool:
        return bool(self.drones) and all(s.finished is not None for s in self.drones.values())

    # ── Handlers ─────────────────────────────────────────────────────

    def on_register(self, msg: AgentMessage):
        request = RegisterRequest.from_dict(msg.payload())
        self.register_drone(msg.sender, request.x, request.y)

    def on_status_queried(self, msg: AgentMessage) -> Dict[str, Any]:
        status = self.find_status(msg.sender)
        return self.create_status(status).to_dict()

    def on_drone_moved(self, msg: AgentMessage):
        status = self.find_status(msg.sender)
        report = MoveReport.from_dict(msg.payload())
        self.evaluate_decision(status, report.decision)

    def on_subscribe(self, msg: AgentMessage):
        self.find_status(msg.sender)
        subscribers = self.goal_subscribers if msg.protocol == Protocol.GOAL_SUBSCRIPTION \
            else self.move_subscribers
        if msg.sender not in subscribers:
            subscribers.append(msg.sender)

    def on_map_queried(self, msg: AgentMessage) -> Dict[str, Any]:
        grid_map = self.original_map if msg.protocol == Protocol.ORIGINAL_MAP else self.tracking_map
        return {'width': grid_map.width, 'height': grid_map.height, 'cells': grid_map.to_rows()}

    def on_drone_ids_queried(self, msg: AgentMessage) -> Dict[str, Any]:
        return {'drones': list(self.drones)}

    def _queried_status(self, msg: AgentMessage) -> DroneStatus:
        drone = msg.payload().get('drone')
        if not isinstance(drone, str):
            raise MalformedMessageError(f"Field 'drone' must be a string, got {drone!r}")
        return self.find_status(drone)

    def on_drone_position_queried(self, msg: AgentMessage) -> Dict[str, Any]:
        status = self._queried_status(msg)
        return {'drone': status.agent_id, 'x': status.x, 'y': status.y}

    def on_drone_distance_queried(self, msg: AgentMessage) -> Dict[str, Any]:
        status = self._queried_status(msg)
        return {'drone': status.agent_id,
                'dist': math.hypot(self.goal_x - status.x, self.goal_y - status.y)}

    def on_drone_battery_queried(self, msg: AgentMessage) -> Dict[str, Any]:
        status = self._queried_status(msg)
        return {'drone': status.agent_id, 'battery': status.battery}
