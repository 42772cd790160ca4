import threading
from typing import Callable, List

from .models import MutationEvent
from ..utils.logger import setup_logger

logger = setup_logger('chatregistry.hub')

Observer = Callable[[MutationEvent], None]


class Hub:
    """Mutation notification hub.

    Keeps an append-only list of observers and hands every MutationEvent
    to each of them, synchronously, in registration order. A failing
    observer is logged and skipped; it never reaches the publisher.
    """

    def __init__(self):
        """Initialize an empty hub.

        Attributes:
            observers (List[Observer]): Registered callbacks
            _lock (threading.Lock): Guards the observer list
        """
        self.observers: List[Observer] = []
        self._lock = threading.Lock()
        logger.info("Notification hub initialized")

    def register(self, observer: Observer):
        """Register a callback for all future events.

        Args:
            observer (Observer): Callable taking one MutationEvent
        """
        if not callable(observer):
            raise TypeError("Observer must be callable")
        with self._lock:
            self.observers.append(observer)
            logger.debug(f"Registered observer #{len(self.observers)}")

    def publish(self, event: MutationEvent) -> int:
        """Deliver an event to every observer.

        Must be called outside the registry lock so an observer can call
        back into ChatService.

        Args:
            event (MutationEvent): Event to deliver

        Returns:
            int: Number of observers that accepted the event without raising
        """
        with self._lock:
            observers = list(self.observers)

        delivered = 0
        for observer in observers:
            try:
                observer(event)
                delivered += 1
            except Exception:
                logger.exception(f"Observer failed while handling '{event.kind}'")
        logger.debug(f"Event '{event.kind}' delivered to {delivered}/{len(observers)} observers")
        return delivered
