"""Background orchestrator: timers, message routing and event broadcasting."""

from motorscope.orchestrator.alarms import Alarm, AlarmScheduler
from motorscope.orchestrator.broadcaster import EventBroadcaster
from motorscope.orchestrator.messages import AlarmName, BroadcastEvent, MessageType
from motorscope.orchestrator.router import Orchestrator
from motorscope.orchestrator.service import OrchestratorService
from motorscope.orchestrator.state import OrchestratorState

__all__ = [
    "Alarm",
    "AlarmName",
    "AlarmScheduler",
    "BroadcastEvent",
    "EventBroadcaster",
    "MessageType",
    "Orchestrator",
    "OrchestratorService",
    "OrchestratorState",
]
