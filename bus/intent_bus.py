"""
IntentBus: In-memory, thread-safe pub/sub queue between engine callers
and the tick owner.

Supports:
    - Topic-based messaging
    - FIFO delivery per topic, drained in one call by poll()
    - Logging of events

Intended usage:
    - Callers publish user intents to 'engine.intent'
    - The engine polls 'engine.intent' at every tick boundary and
      applies the intents in publication order
"""

import logging
import threading
import time
from typing import Dict, List, Optional

from .message import BusMessage
from .metrics import BusMetrics
from .utils import freeze_payload, new_msg_id

log = logging.getLogger(__name__)


class IntentBus:
    """
    Transport layer for engine intents.

    Any number of threads may publish; a single consumer polls.
    """

    def __init__(self):
        """Initialize an empty IntentBus."""
        self._topics: Dict[str, List[BusMessage]] = {}
        self._lock = threading.Lock()
        self.metrics = BusMetrics()

    def publish(self, topic: str, sender: str, payload: dict) -> str:
        """
        Publish a message to a specific topic.

        Args:
            topic (str): The topic name (e.g., 'engine.intent').
            sender (str): ID of the sender (e.g., 'ui', 'bridge').
            payload (dict): Data dictionary representing the message contents.

        Returns:
            str: The unique message ID.
        """
        msg = BusMessage(
            id=new_msg_id(),
            topic=topic,
            sender=sender,
            payload=freeze_payload(payload),
            ts=time.time(),
        )
        with self._lock:
            self._topics.setdefault(topic, []).append(msg)
            self.metrics.published += 1

        log.debug("publish topic=%s sender=%s id=%s", topic, sender, msg.id)
        return msg.id

    def poll(self, topic: str) -> List[BusMessage]:
        """
        Retrieve and clear all messages from a given topic.

        Args:
            topic (str): The topic name to poll messages from.

        Returns:
            List[BusMessage]: Messages published to the topic since the last poll, oldest first.
        """
        with self._lock:
            msgs = self._topics.get(topic, [])
            self._topics[topic] = []
            self.metrics.delivered += len(msgs)
        return msgs

    def peek(self, topic: str) -> int:
        """
        Count messages waiting on a topic without consuming them.

        Args:
            topic (str): The topic name.

        Returns:
            int: Number of queued messages.
        """
        with self._lock:
            return len(self._topics.get(topic, []))

    def clear(self, topic: Optional[str] = None) -> int:
        """
        Discard queued messages.

        Args:
            topic (Optional[str]): Topic to clear, or every topic when None.

        Returns:
            int: Number of messages discarded.
        """
        with self._lock:
            topics = [topic] if topic is not None else list(self._topics)
            dropped = 0
            for name in topics:
                dropped += len(self._topics.get(name, []))
                self._topics[name] = []
            self.metrics.discarded += dropped
        if dropped:
            log.warning("discarded %d queued message(s)", dropped)
        return dropped
