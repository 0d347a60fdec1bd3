"""
bus: in-memory intent messaging
================================

Provides a lightweight, thread-safe pub/sub transport used to hand user
intents to the single tick owner of the traffic engine.

Modules
-------
message
    :class:`BusMessage` dataclass.
intent_bus
    :class:`IntentBus` publish / poll / clear transport.
metrics
    :class:`BusMetrics` counter snapshot.
utils
    ID generation and payload copying.
"""

from .message import BusMessage
from .intent_bus import IntentBus
from .metrics import BusMetrics
from .utils import new_msg_id, freeze_payload

__all__ = [
    "BusMessage",
    "IntentBus",
    "BusMetrics",
    "new_msg_id",
    "freeze_payload",
]
