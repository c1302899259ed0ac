"""Real-time coordination: sessions, room broadcast, delivery receipts and presence fan-out."""

from .broadcast import BroadcastRouter
from .delivery import MessageDeliveryCoordinator
from .hub import RealtimeHub
from .session import ConnectionSession

__all__ = [
    "BroadcastRouter",
    "ConnectionSession",
    "MessageDeliveryCoordinator",
    "RealtimeHub",
]
