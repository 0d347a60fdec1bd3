"""
BusMetrics: Tracks simple statistics for IntentBus message flow.
"""


class BusMetrics:
    """
    Tracks metrics for published and delivered messages.

    Attributes:
        published (int): Total number of messages published.
        delivered (int): Number of messages handed out by poll().
        discarded (int): Number of messages dropped by clear().
    """

    def __init__(self):
        """Initialize all counters to zero."""
        self.published = 0
        self.delivered = 0
        self.discarded = 0

    def pending(self) -> int:
        """Messages published but not yet delivered or discarded."""
        return self.published - self.delivered - self.discarded

    def report(self) -> dict:
        """
        Return a snapshot of current metrics.

        Returns:
            dict: Dictionary containing 'published', 'delivered', 'discarded' and 'pending' counters.
        """
        return {
            "published": self.published,
            "delivered": self.delivered,
            "discarded": self.discarded,
            "pending": self.pending(),
        }
