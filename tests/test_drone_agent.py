"""
Test Suite: Drone Agent
=======================
Tests:
- Reply / request queue routing
- Dispatcher hooks and error replies
- Peer battery and trace queries
- Think cycle against a live satellite, timeouts and stop
"""

import threading
import time
import pytest
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.drone_agent import DroneAgent
from core.grid_map import CellValue, GridMap
from core.messages import AgentMessage, MessageBus, Performative, Protocol
from core.movement import Decision
from core.payloads import StatusReport
from core.satellite import Satellite


class RecordingBus(MessageBus):
    """Bus keeping a copy of everything sent"""

    def __init__(self):
        super().__init__()
        self.sent = []

    def send(self, message):
        self.sent.append(message)
        return super().send(message)


def make_agent(**kwargs):
    bus = MessageBus()
    agent = DroneAgent("d1", "sat", bus, 10, 10, **kwargs)
    peer_inbox = []
    bus.register("peer", peer_inbox.append)
    return agent, bus, peer_inbox


def from_peer(performative, protocol, payload=None, content=None):
    msg = AgentMessage.create(performative, protocol, "peer", "d1", payload)
    if content is not None:
        msg.content = content
    return msg


class TestRouting:
    """Tests for on_message queue selection"""

    def test_satellite_reply_goes_to_answer_queue(self):
        agent, _, _ = make_agent()
        agent.on_message(AgentMessage.create(Performative.INFORM, Protocol.MOVED, "sat", "d1"))
        assert agent.answer_queue.qsize() == 1
        assert agent.request_queue.qsize() == 0

    def test_peer_request_goes_to_request_queue(self):
        agent, _, _ = make_agent()
        agent.on_message(from_peer(Performative.REQUEST, Protocol.BATTERY_QUERY))
        assert agent.request_queue.qsize() == 1

    def test_satellite_notice_goes_to_request_queue(self):
        agent, _, _ = make_agent()
        agent.on_message(AgentMessage.create(Performative.INFORM, Protocol.DRONE_REACHED_GOAL,
                                             "sat", "d1", {'drone': "d2"}))
        assert agent.request_queue.qsize() == 1
        assert agent.answer_queue.qsize() == 0


class TestDispatcher:
    """Tests for dispatch()"""

    def test_battery_query(self):
        agent, _, inbox = make_agent()
        agent._battery = 42
        assert agent.dispatch(from_peer(Performative.REQUEST, Protocol.BATTERY_QUERY)) is True
        assert inbox[-1].performative is Performative.INFORM
        assert inbox[-1].payload() == {'battery': 42}

    def test_trace_query_whole(self):
        agent, _, inbox = make_agent()
        for i in range(3):
            agent.trace.append(i, 0, 0)
        agent.dispatch(from_peer(Performative.REQUEST, Protocol.TRACE_QUERY))
        assert len(inbox[-1].payload()['trace']) == 3

    def test_trace_query_window(self):
        agent, _, inbox = make_agent()
        for i in range(3):
            agent.trace.append(i, 0, 0)
        agent.dispatch(from_peer(Performative.REQUEST, Protocol.TRACE_QUERY, {'start': 1, 'end': 2}))
        entries = inbox[-1].payload()['trace']
        assert [(e['x'], e['y']) for e in entries] == [(1, 0), (2, 0)]

    def test_trace_query_bad_window_fails(self):
        agent, _, inbox = make_agent()
        agent.trace.append(0, 0, 0)
        assert agent.dispatch(from_peer(Performative.REQUEST, Protocol.TRACE_QUERY,
                                        {'start': 1, 'end': 0})) is True
        assert inbox[-1].performative is Performative.FAILURE
        assert 'fail' in inbox[-1].payload()

    def test_trace_query_malformed(self):
        agent, _, inbox = make_agent()
        agent.dispatch(from_peer(Performative.REQUEST, Protocol.TRACE_QUERY, {'start': "a", 'end': 0}))
        assert inbox[-1].performative is Performative.NOT_UNDERSTOOD

    def test_unparseable_content(self):
        agent, _, inbox = make_agent()
        agent.dispatch(from_peer(Performative.REQUEST, Protocol.BATTERY_QUERY, content="{{"))
        assert inbox[-1].performative is Performative.NOT_UNDERSTOOD

    def test_unknown_tag(self):
        agent, _, inbox = make_agent()
        assert agent.dispatch(from_peer(Performative.REQUEST, "Dance")) is True
        assert inbox[-1].performative is Performative.NOT_UNDERSTOOD

    def test_goal_notice(self):
        agent, _, inbox = make_agent()
        agent.dispatch(from_peer(Performative.INFORM, Protocol.DRONE_REACHED_GOAL, {'drone': "d2"}))
        assert agent.goal_reached_by == {"d2"}
        assert inbox == []

    def test_recharged_notice(self):
        agent, _, _ = make_agent()
        agent.dispatch(from_peer(Performative.INFORM, Protocol.DRONE_RECHARGED,
                                 {'drone': "d2", 'battery': 100}))
        assert agent.recharged[0].battery == 100

    def test_move_notice(self):
        agent, _, inbox = make_agent()
        assert agent.dispatch(AgentMessage.create(Performative.INFORM, Protocol.DRONE_MOVED, "sat", "d1",
                                                  {'drone': "d2", 'x': 3, 'y': 4})) is True
        assert agent.peer_positions == {"d2": (3, 4)}
        assert inbox == []

    def test_move_notice_without_position(self):
        agent, _, inbox = make_agent()
        agent.dispatch(from_peer(Performative.INFORM, Protocol.DRONE_MOVED, {'drone': "d2"}))
        assert inbox[-1].performative is Performative.NOT_UNDERSTOOD
        assert agent.peer_positions == {}

    def test_notice_with_wrong_performative(self):
        agent, _, inbox = make_agent()
        agent.dispatch(from_peer(Performative.REQUEST, Protocol.DRONE_REACHED_GOAL, {'drone': "d2"}))
        assert inbox[-1].performative is Performative.NOT_UNDERSTOOD
        assert agent.goal_reached_by == set()

    def test_errors_are_not_answered(self):
        agent, _, inbox = make_agent()
        assert agent.dispatch(from_peer(Performative.FAILURE, Protocol.BATTERY_QUERY)) is True
        assert agent.dispatch(from_peer(Performative.NOT_UNDERSTOOD, "Dance")) is True
        assert inbox == []

    def test_policy_can_stop_dispatcher(self):
        agent, _, _ = make_agent()
        agent.processing_error_policy[Protocol.TRACE_QUERY.value] = False
        agent.message_error_policy[Protocol.BATTERY_QUERY.value] = False
        assert agent.dispatch(from_peer(Performative.REQUEST, Protocol.TRACE_QUERY,
                                        {'start': 3, 'end': 4})) is False
        assert agent.dispatch(from_peer(Performative.REQUEST, Protocol.BATTERY_QUERY,
                                        content="[]")) is False

    def test_peer_queries(self):
        """One drone asks another for its battery and trace"""
        bus = MessageBus()
        a = DroneAgent("a", "sat", bus, 10, 10)
        b = DroneAgent("b", "sat", bus, 10, 10)
        b._battery = 77
        b.trace.append(1, 1, 0)

        a.query_battery("b")
        a.query_trace("b")
        b.dispatch(b.request_queue.get(timeout=1))
        b.dispatch(b.request_queue.get(timeout=1))
        a.dispatch(a.request_queue.get(timeout=1))
        a.dispatch(a.request_queue.get(timeout=1))

        assert [m.protocol for m in a.peer_replies] == ["BatteryQuery", "TraceQuery"]
        assert a.peer_replies[0].payload() == {'battery': 77}
        assert a.peer_replies[1].payload()['trace'][0]['x'] == 1


class TestThinkCycle:
    """Tests running the agent's workers"""

    def test_reaches_goal_against_satellite(self):
        grid = GridMap(6, 3)
        grid.set(5, 1, CellValue.GOAL)
        bus = MessageBus()
        sat = Satellite("sat", bus, grid)
        agent = DroneAgent("d1", "sat", bus, 6, 3, start=(0, 1), reply_timeout=5.0)
        sat.start()
        agent.start()
        try:
            assert agent.join(timeout=10.0)
        finally:
            agent.shutdown()
            sat.stop()

        assert agent.result == Decision.END_SUCCESS
        assert sat.drones["d1"].location == (5, 1)
        assert agent.trace.decisions() == [0, 0, 0, 0, 0, -1]
        assert agent.battery == 95
        assert agent.rejected_moves == 0

    def test_reply_timeout_fails(self):
        agent, bus, _ = make_agent(reply_timeout=0.1)
        bus.register("sat", lambda m: None)
        agent.start()
        assert agent.join(timeout=5.0)
        agent.shutdown()
        assert agent.result == Decision.END_FAIL

    def test_stop_interrupts_wait(self):
        agent, bus, _ = make_agent(reply_timeout=None)
        bus.register("sat", lambda m: None)
        agent.start()
        agent.stop()
        assert agent.join(timeout=5.0)
        assert agent.result is None

    def test_refused_registration_fails(self):
        grid = GridMap(4, 4)
        grid.set(3, 3, CellValue.GOAL)
        grid.set(0, 0, CellValue.OBSTACLE)
        bus = MessageBus()
        sat = Satellite("sat", bus, grid)
        agent = DroneAgent("d1", "sat", bus, 4, 4, start=(0, 0), reply_timeout=5.0)
        sat.start()
        agent.start()
        try:
            assert agent.join(timeout=5.0)
        finally:
            agent.shutdown()
            sat.stop()
        assert agent.result == Decision.END_FAIL

    def test_standby_pauses_think(self):
        agent, _, _ = make_agent()
        agent.state.apply_status(StatusReport(5, 5, 0.0, 3.0, False, 100, [0] * 9))
        agent.standby.enter()
        results = []
        thinker = threading.Thread(target=lambda: results.append(agent.think()))
        thinker.start()

        time.sleep(0.05)
        assert results == []

        agent.standby.leave()
        thinker.join(timeout=5.0)
        assert results == [Decision.EAST]

    def test_move_subscriber_follows_other_drone(self):
        """A drone on the move subscription tracks a peer walking to the goal"""
        grid = GridMap(6, 3)
        grid.set(5, 1, CellValue.GOAL)
        bus = RecordingBus()
        sat = Satellite("sat", bus, grid)

        watcher = DroneAgent("watcher", "sat", bus, 6, 3)
        sat.register_drone("watcher", 0, 0)
        sat.move_subscribers.append("watcher")
        dispatcher = threading.Thread(target=watcher.run_dispatcher, daemon=True)
        dispatcher.start()

        agent = DroneAgent("d1", "sat", bus, 6, 3, start=(0, 1), reply_timeout=5.0)
        sat.start()
        agent.start()
        try:
            assert agent.join(timeout=10.0)
        finally:
            agent.shutdown()
            sat.stop()
            watcher.stop()
            dispatcher.join(timeout=5.0)

        assert agent.result == Decision.END_SUCCESS
        assert watcher.peer_positions == {"d1": (5, 1)}
        assert [m for m in bus.sent if m.sender == "watcher"] == []
