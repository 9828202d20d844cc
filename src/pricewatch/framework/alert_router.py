"""
Alert routing from detectors to the Notifier.

AlertRouter logs every alert and hands it to the Notifier. Delivery is
asynchronous: route() never blocks the evaluation path, and a rejected send
(queue full, notifier closed) is logged and counted, not raised.
"""

import logging
from typing import Optional

from pricewatch.models import AlertEvent
from pricewatch.notifier import Notifier, NotifierError

logger = logging.getLogger(__name__)


class AlertRouter:
    """
    Routes detector output to the webhook dispatcher.

    With no notifier (notifier.enabled: false) alerts are only logged.
    """

    def __init__(self, notifier: Optional[Notifier]) -> None:
        self.notifier = notifier
        self.routed = 0
        self.dropped = 0

    def route(self, event: AlertEvent) -> bool:
        """
        Log the alert and enqueue it for delivery.

        Returns:
            True if the alert was accepted by the notifier.
        """
        logger.info("ALERT: %s", event)
        self.routed += 1

        if self.notifier is None:
            return False

        try:
            self.notifier.send(event)
        except NotifierError as exc:
            self.dropped += 1
            logger.warning("Failed to send alert %s: %s", event.alert_id, exc)
            return False
        return True
