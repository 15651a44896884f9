"""
Agent Messaging
Point-to-point, tag-routed request/response messages between drones and
the satellite.

Every message carries a performative (REQUEST, INFORM, FAILURE,
NOT_UNDERSTOOD), a protocol tag naming the conversation, the sender and
receiver ids, and a JSON content string (empty string = no payload).

In simulation the transport is an in-process bus that hands each message
to the receiver's ``on_message`` callback. Agents only ever enqueue in that
callback, so senders never block.
"""

import json
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional


class MalformedMessageError(ValueError):
    """Message content does not parse or has the wrong shape."""


class ProcessingError(RuntimeError):
    """A well-formed message was rejected by the handler's own logic."""


class ReplyTimeoutError(TimeoutError):
    """No reply arrived within the configured wait."""


class Performative(Enum):
    """Speech act of a message."""
    REQUEST = "REQUEST"
    INFORM = "INFORM"
    FAILURE = "FAILURE"
    NOT_UNDERSTOOD = "NOT_UNDERSTOOD"


REPLY_PERFORMATIVES = (Performative.INFORM, Performative.FAILURE, Performative.NOT_UNDERSTOOD)


class Protocol(str, Enum):
    """Conversation tags. Values are the strings used on the wire."""
    # drone -> satellite
    REGISTER = "Register"
    STATUS = "SendMeMyStatus"
    MOVED = "IMoved"
    # drone -> satellite subscriptions
    GOAL_SUBSCRIPTION = "DroneReachedGoalSubscription"
    MOVE_SUBSCRIPTION = "LetMeKnowWhenSomeoneMoves"
    # queries answered by the satellite
    ORIGINAL_MAP = "SendOriginalMap"
    SHARED_MAP = "SendSharedMap"
    DRONE_IDS = "SendAllDroneIDs"
    DRONE_POSITION = "SendPositionOfDrone"
    DRONE_DISTANCE = "SendDistanceOfDrone"
    DRONE_BATTERY = "SendBatteryOfDrone"
    # peer/satellite -> drone
    BATTERY_QUERY = "BatteryQuery"
    TRACE_QUERY = "TraceQuery"
    DRONE_REACHED_GOAL = "DroneReachedGoal"
    DRONE_RECHARGED = "DroneRecharged"
    DRONE_MOVED = "DroneMoved"


def encode_payload(payload: Optional[Dict[str, Any]]) -> str:
    """Serialize a payload to message content ('' for none)."""
    if payload is None:
        return ""
    return json.dumps(payload)


def decode_payload(content: str) -> Dict[str, Any]:
    """Parse message content. Empty content decodes to an empty dict."""
    if content is None or content == "":
        return {}
    try:
        data = json.loads(content)
    except (TypeError, ValueError) as e:
        raise MalformedMessageError(f"Content is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedMessageError(f"Content must be a JSON object, got {type(data).__name__}")
    return data


@dataclass
class AgentMessage:
    """A single message on the bus."""
    performative: Performative
    protocol: str
    sender: str
    receiver: str
    content: str = ""
    msg_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: float = field(default_factory=time.time)

    @staticmethod
    def create(performative: Performative, protocol: str, sender: str, receiver: str,
               payload: Optional[Dict[str, Any]] = None) -> 'AgentMessage':
        """Factory method building the content from a payload dict."""
        return AgentMessage(
            performative=performative,
            protocol=str(protocol.value if isinstance(protocol, Protocol) else protocol),
            sender=sender,
            receiver=receiver,
            content=encode_payload(payload),
        )

    def payload(self) -> Dict[str, Any]:
        """Decoded content. Raises MalformedMessageError."""
        return decode_payload(self.content)

    def reply(self, performative: Performative,
              payload: Optional[Dict[str, Any]] = None) -> 'AgentMessage':
        """Answer on the same protocol, addressed back to the sender."""
        return AgentMessage.create(performative, self.protocol, self.receiver, self.sender, payload)

    @property
    def is_reply(self) -> bool:
        return self.performative in REPLY_PERFORMATIVES

    def __str__(self) -> str:
        return f"{self.performative.value}:{self.protocol} {self.sender}->{self.receiver}"


class MessageBus:
    """
    In-process transport. Each agent registers a delivery callback under its
    id; ``send`` looks up the receiver and hands the message over.
    """

    def __init__(self):
        self._endpoints: Dict[str, Callable[[AgentMessage], None]] = {}
        self._lock = threading.Lock()
        self.messages_sent = 0
        self.messages_dropped = 0

    def register(self, agent_id: str, deliver: Callable[[AgentMessage], None]):
        with self._lock:
            if agent_id in self._endpoints:
                raise ValueError(f"Agent id '{agent_id}' already registered on the bus")
            self._endpoints[agent_id] = deliver

    def unregister(self, agent_id: str):
        with self._lock:
            self._endpoints.pop(agent_id, None)

    def is_registered(self, agent_id: str) -> bool:
        with self._lock:
            return agent_id in self._endpoints

    def send(self, message: AgentMessage) -> bool:
        """Deliver to the receiver. Returns False if nobody listens under that id."""
        with self._lock:
            deliver = self._endpoints.get(message.receiver)
            if deliver is None:
                self.messages_dropped += 1
            else:
                self.messages_sent += 1
        if deliver is None:
            print(f"[BUS] Dropped {message}: unknown receiver")
            return False
        deliver(message)
        return True

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'agents': sorted(self._endpoints),
                'messages_sent': self.messages_sent,
                'messages_dropped': self.messages_dropped,
            }
