"""
Agent worker: the long-running monitor, its admission queue and event bus.
"""

from forkoor_sentinel.agent_worker.admission_queue import AdmissionQueue
from forkoor_sentinel.agent_worker.events import EventBus, ForkOpportunity, MonitorEvent
from forkoor_sentinel.agent_worker.monitor import TokenMonitor

__all__ = [
    "AdmissionQueue",
    "EventBus",
    "ForkOpportunity",
    "MonitorEvent",
    "TokenMonitor",
]
