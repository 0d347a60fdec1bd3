"""
Utility functions for IntentBus:
    - ID generation
    - payload copying
"""

import copy
import uuid


# ---------- ID Helpers ----------
def new_msg_id() -> str:
    """
    Generate a globally unique message ID.

    Returns:
        str: UUID string for a new message.
    """
    return str(uuid.uuid4())


# ---------- Payload Helpers ----------
def freeze_payload(payload: dict) -> dict:
    """
    Deep-copy a payload so later changes by the publisher cannot leak
    into a queued message.

    Args:
        payload (dict): Original message payload.

    Returns:
        dict: Independent copy of the payload.
    """
    return copy.deepcopy(payload)
