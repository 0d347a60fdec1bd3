"""
BusMessage: Immutable envelope for one intent carried by the IntentBus.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class BusMessage:
    """
    A queued intent.

    Attributes:
        id (str): Unique identifier assigned at publish time.
        topic (str): Queue the message was published to (e.g., 'engine.intent').
        sender (str): Who published it (e.g., 'engine', 'bridge', 'main').
        payload (dict): Private copy of the publisher's data; carries an 'action' key for intents.
        ts (float): Wall-clock publish time in seconds.
    """
    id: str
    topic: str
    sender: str
    payload: dict
    ts: float

    @property
    def action(self) -> str:
        """The intent name, or '' when the payload carries none."""
        return str(self.payload.get("action", ""))
