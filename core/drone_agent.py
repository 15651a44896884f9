"""
Drone Agent
One exploring drone talking to the satellite over the message bus.

Two workers run per drone:

  think cycle   request status -> run behavior chain -> report move,
                blocking on the reply queue after every request
  dispatcher    blocks on the request queue and routes messages pushed by
                other agents (queries, informs) to the drone's hooks

Incoming messages are split between the two queues on arrival: replies from
the satellite on the think cycle's own protocols go to the reply queue,
everything else to the request queue. Decision state (DroneState) belongs
to the think cycle only; hooks see battery and trace through a lock.

Hooks to override for a different drone:
  on_battery_queried, on_trace_queried,
  on_drone_reached_goal, on_drone_recharged, on_drone_moved
Raise MalformedMessageError for a bad message, ProcessingError when the
drone refuses a valid one.
"""

import queue
import threading
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from core.behaviors import BehaviorChain, build_chain
from core.drone_state import DroneState
from core.messages import (AgentMessage, MalformedMessageError, MessageBus, Performative,
                           ProcessingError, Protocol, ReplyTimeoutError)
from core.movement import Decision
from core.payloads import (BatteryReply, DroneNotice, MoveReport, RegisterRequest,
                           StatusReport, TraceReply)
from core.standby import StandByGate
from core.trace import Trace

_STOP = object()  # queue sentinel, interrupts a blocked worker


class AgentStopped(Exception):
    """Raised inside a worker when stop() interrupted its wait."""


class MoveOutcome(Enum):
    """How the satellite answered an IMoved report."""
    ACCEPTED = "accepted"            # INFORM
    REJECTED = "rejected"            # FAILURE
    NOT_UNDERSTOOD = "not_understood"


# Satellite replies consumed by the think cycle
REPLY_PROTOCOLS = (
    Protocol.REGISTER,
    Protocol.STATUS,
    Protocol.MOVED,
    Protocol.GOAL_SUBSCRIPTION,
    Protocol.MOVE_SUBSCRIPTION,
)


class DroneAgent:
    """
    Exploring drone. ``start()`` launches both workers; ``result`` holds the
    final decision (END_SUCCESS / END_FAIL) once ``finished`` is set.
    """

    def __init__(self, name: str, satellite_id: str, bus: MessageBus,
                 map_width: int, map_height: int,
                 chain: Optional[BehaviorChain] = None,
                 start: Optional[tuple] = None,
                 subscriptions: tuple = (Protocol.GOAL_SUBSCRIPTION,),
                 reply_timeout: Optional[float] = 30.0,
                 debug: bool = False):
        """
        Args:
            name: Agent id on the bus
            satellite_id: Bus id of the coordinator
            map_width, map_height: Size of the map (for private memory)
            chain: Behavior chain, defaults to the dodging preset
            start: Optional (x, y) start cell sent with Register
            subscriptions: Satellite subscriptions requested after registering
            reply_timeout: Seconds to wait for each satellite reply (None = forever)
        """
        self.name = name
        self.satellite_id = satellite_id
        self.bus = bus
        self.chain = chain if chain is not None else build_chain()
        self.start_cell = start
        self.subscriptions = tuple(subscriptions)
        self.reply_timeout = reply_timeout
        self.debug = debug

        self.state = DroneState(name, map_width, map_height, debug=debug)
        self.standby = StandByGate()

        # Unbounded FIFO queues, one consumer each
        self.answer_queue: "queue.Queue[Any]" = queue.Queue()
        self.request_queue: "queue.Queue[Any]" = queue.Queue()

        # Hook-visible state
        self._state_lock = threading.Lock()
        self.trace = Trace()
        self._battery = 0
        self.goal_reached_by: Set[str] = set()
        self.recharged: List[DroneNotice] = []
        self.peer_positions: Dict[str, Tuple[int, int]] = {}
        self.peer_replies: List[AgentMessage] = []

        # Continue-or-stop per protocol tag after each error kind
        self.message_error_policy: Dict[str, bool] = {}
        self.processing_error_policy: Dict[str, bool] = {}

        self.result: Optional[Decision] = None
        self.rejected_moves = 0
        self.cycles = 0
        self.finished = threading.Event()

        self._think_thread: Optional[threading.Thread] = None
        self._dispatcher_thread: Optional[threading.Thread] = None

        self.bus.register(self.name, self.on_message)

    # ── Lifecycle ────────────────────────────────────────────────────

    def start(self):
        """Launch the dispatcher, then the think cycle."""
        self._dispatcher_thread = threading.Thread(
            target=self.run_dispatcher, name=f"{self.name}-dispatcher", daemon=True)
        self._dispatcher_thread.start()
        self._think_thread = threading.Thread(
            target=self.run_think_cycle, name=f"{self.name}-think", daemon=True)
        self._think_thread.start()

    def stop(self):
        """Interrupt both workers wherever they are blocked."""
        self.standby.close()
        self.answer_queue.put(_STOP)
        self.request_queue.put(_STOP)

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the think cycle to end. Returns True if it did."""
        return self.finished.wait(timeout)

    def shutdown(self, timeout: float = 2.0):
        self.stop()
        for thread in (self._think_thread, self._dispatcher_thread):
            if thread is not None:
                thread.join(timeout=timeout)
        self.bus.unregister(self.name)

    @property
    def battery(self) -> int:
        with self._state_lock:
            return self._battery

    # ── Transport ────────────────────────────────────────────────────

    def on_message(self, msg: AgentMessage):
        """Bus callback: sort the message into the right queue. Never blocks."""
        if (msg.sender == self.satellite_id and msg.is_reply
                and msg.protocol in REPLY_PROTOCOLS):
            self.answer_queue.put(msg)
        else:
            self.request_queue.put(msg)

    def send(self, performative: Performative, protocol: str, receiver: str,
             payload: Optional[Dict[str, Any]] = None) -> AgentMessage:
        msg = AgentMessage.create(performative, protocol, self.name, receiver, payload)
        self.bus.send(msg)
        return msg

    def _take_reply(self) -> AgentMessage:
        try:
            item = self.answer_queue.get(timeout=self.reply_timeout)
        except queue.Empty:
            raise ReplyTimeoutError(f"No reply from {self.satellite_id} within {self.reply_timeout}s")
        if item is _STOP:
            raise AgentStopped()
        return item

    def _request(self, protocol: Protocol, payload: Optional[Dict[str, Any]] = None) -> AgentMessage:
        """Send a REQUEST to the satellite and block for its reply."""
        self.send(Performative.REQUEST, protocol, self.satellite_id, payload)
        return self._take_reply()

    # ── Think cycle ──────────────────────────────────────────────────

    def run_think_cycle(self):
        """Register, subscribe, then status -> think -> report until the end."""
        try:
            self.register()
            self.subscribe()
            while True:
                self.get_status()
                decision = self.think()
                self.cycles += 1

                if decision != Decision.NO_DECISION:
                    outcome = self.send_decision(decision)
                    if outcome is MoveOutcome.ACCEPTED:
                        self.update_trace(decision)
                        self.post_update_trace()
                    else:
                        self.rejected_moves += 1
                        print(f"[D-{self.name}] Move {decision.name} {outcome.value}")

                if decision.is_terminal:
                    self.result = decision
                    break
        except AgentStopped:
            pass
        except (ReplyTimeoutError, ProcessingError, MalformedMessageError) as e:
            print(f"[D-{self.name}] Think cycle aborted: {e}")
            self.result = Decision.END_FAIL
        finally:
            self.finished.set()

        if self.result is not None:
            print(f"[D-{self.name}] Finished: {self.result.name} after {self.cycles} cycles")

    def register(self):
        payload = RegisterRequest(*self.start_cell).to_dict() if self.start_cell else None
        reply = self._request(Protocol.REGISTER, payload)
        if reply.performative is not Performative.INFORM:
            raise ProcessingError(f"Registration refused: {reply.payload().get('fail', reply.performative.value)}")

    def subscribe(self):
        for protocol in self.subscriptions:
            reply = self._request(Protocol(protocol))
            if reply.performative is not Performative.INFORM:
                print(f"[D-{self.name}] Subscription {Protocol(protocol).value} refused")

    def get_status(self):
        """Ask the satellite for a fresh status and adopt it."""
        reply = self._request(Protocol.STATUS)
        if reply.performative is not Performative.INFORM:
            reason = reply.payload().get('fail', reply.performative.value) if reply.content else reply.performative.value
            raise ProcessingError(f"Status refused: {reason}")
        report = StatusReport.from_dict(reply.payload())
        self.state.apply_status(report)
        with self._state_lock:
            self._battery = report.battery

    def think(self) -> Decision:
        """Run the behavior chain, honouring stand-by and RETHINK."""
        return self.chain.think(self.state, before_pass=self._before_pass)

    def _before_pass(self):
        if not self.standby.wait_if_standby():
            raise AgentStopped()
        self.pre_behaviours_setup()

    def pre_behaviours_setup(self):
        """Refresh hook run before every chain pass (again after a RETHINK)."""

    def send_decision(self, decision: Decision) -> MoveOutcome:
        """Report the move and wait for the satellite's acknowledgement."""
        reply = self._request(Protocol.MOVED, MoveReport(int(decision)).to_dict())
        if reply.performative is Performative.INFORM:
            return MoveOutcome.ACCEPTED
        if reply.performative is Performative.FAILURE:
            return MoveOutcome.REJECTED
        return MoveOutcome.NOT_UNDERSTOOD

    def update_trace(self, decision: Decision):
        with self._state_lock:
            self.trace.append(self.state.x, self.state.y, int(decision))

    def post_update_trace(self):
        """Hook run after each trace update."""

    # ── Dispatcher ───────────────────────────────────────────────────

    def run_dispatcher(self):
        """Route request-queue messages until told to stop."""
        while True:
            item = self.request_queue.get()
            if item is _STOP:
                return
            if not self.dispatch(item):
                print(f"[D-{self.name}] Dispatcher stopped after {item}")
                return

    def dispatch(self, msg: AgentMessage) -> bool:
        """
        Handle one inbound message. Returns True to keep the dispatcher
        running, False to stop it.
        """
        if self.debug:
            print(f"[D-{self.name}] Dispatching {msg}")

        if msg.performative in (Performative.FAILURE, Performative.NOT_UNDERSTOOD):
            # Never answer an error with another error
            print(f"[D-{self.name}] {msg.performative.value} from {msg.sender} on {msg.protocol}")
            return True

        if msg.performative is Performative.INFORM and msg.protocol in (
                Protocol.BATTERY_QUERY, Protocol.TRACE_QUERY):
            with self._state_lock:
                self.peer_replies.append(msg)
            return True

        try:
            if msg.protocol == Protocol.BATTERY_QUERY:
                self._expect(msg, Performative.REQUEST)
                battery = self.on_battery_queried(msg)
                self.bus.send(msg.reply(Performative.INFORM, BatteryReply(battery).to_dict()))
            elif msg.protocol == Protocol.TRACE_QUERY:
                self._expect(msg, Performative.REQUEST)
                trace = self.on_trace_queried(msg)
                self.bus.send(msg.reply(Performative.INFORM, TraceReply(trace.to_list()).to_dict()))
            elif msg.protocol == Protocol.DRONE_REACHED_GOAL:
                self._expect(msg, Performative.INFORM)
                self.on_drone_reached_goal(msg)
            elif msg.protocol == Protocol.DRONE_RECHARGED:
                self._expect(msg, Performative.INFORM)
                self.on_drone_recharged(msg)
            elif msg.protocol == Protocol.DRONE_MOVED:
                self._expect(msg, Performative.INFORM)
                self.on_drone_moved(msg)
            else:
                self.bus.send(msg.reply(Performative.NOT_UNDERSTOOD))
        except MalformedMessageError as e:
            self.bus.send(msg.reply(Performative.NOT_UNDERSTOOD))
            return self.treat_message_error(msg, e)
        except Exception as e:
            self.bus.send(msg.reply(Performative.FAILURE, {'fail': str(e)}))
            return self.treat_processing_error(msg, e)
        return True

    @staticmethod
    def _expect(msg: AgentMessage, performative: Performative):
        if msg.performative is not performative:
            raise MalformedMessageError(
                f"{msg.protocol} expects {performative.value}, got {msg.performative.value}")

    def treat_message_error(self, msg: AgentMessage, error: MalformedMessageError) -> bool:
        """Malformed inbound message. Returns whether the dispatcher continues."""
        print(f"[D-{self.name}] Malformed {msg.protocol} from {msg.sender}: {error}")
        return self.message_error_policy.get(msg.protocol, True)

    def treat_processing_error(self, msg: AgentMessage, error: Exception) -> bool:
        """Hook refused a valid message. Returns whether the dispatcher continues."""
        print(f"[D-{self.name}] Could not process {msg.protocol} from {msg.sender}: {error}")
        return self.processing_error_policy.get(msg.protocol, True)

    # ── Hooks ────────────────────────────────────────────────────────

    def on_battery_queried(self, msg: AgentMessage) -> int:
        msg.payload()
        return self.battery

    def on_trace_queried(self, msg: AgentMessage) -> Trace:
        """Whole trace, or the window given by optional 'start'/'end' fields."""
        data = msg.payload()
        with self._state_lock:
            if 'start' not in data and 'end' not in data:
                return Trace(list(self.trace))
            start, end = data.get('start', 0), data.get('end', len(self.trace) - 1)
            if isinstance(start, bool) or isinstance(end, bool) \
                    or not isinstance(start, int) or not isinstance(end, int):
                raise MalformedMessageError(f"Trace window must be integers, got {start!r}, {end!r}")
            try:
                return self.trace.sub_trace(start, end)
            except (ValueError, IndexError) as e:
                raise ProcessingError(str(e)) from e

    def on_drone_reached_goal(self, msg: AgentMessage):
        notice = DroneNotice.from_dict(msg.payload())
        with self._state_lock:
            self.goal_reached_by.add(notice.drone)

    def on_drone_recharged(self, msg: AgentMessage):
        notice = DroneNotice.from_dict(msg.payload())
        with self._state_lock:
            self.recharged.append(notice)

    def on_drone_moved(self, msg: AgentMessage):
        """Last known cell of every drone reported by the move subscription."""
        notice = DroneNotice.from_dict(msg.payload())
        if notice.x is None or notice.y is None:
            raise MalformedMessageError(f"DroneMoved notice for '{notice.drone}' has no position")
        with self._state_lock:
            self.peer_positions[notice.drone] = (notice.x, notice.y)

    # ── Peer queries ─────────────────────────────────────────────────

    def query_battery(self, peer: str):
        """Ask another agent for its battery. The answer lands in peer_replies."""
        self.send(Performative.REQUEST, Protocol.BATTERY_QUERY, peer)

    def query_trace(self, peer: str, start: Optional[int] = None, end: Optional[int] = None):
        payload = None
        if start is not None and end is not None:
            payload = {'start': start, 'end': end}
        self.send(Performative.REQUEST, Protocol.TRACE_QUERY, peer, payload)
