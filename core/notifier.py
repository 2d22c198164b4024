# =============================================================================
# core/notifier.py - Owner notification dispatch
# =============================================================================

import logging
from typing import Optional

from core.models import NotificationMessage


class Notifier:
    """
    Sends owner notifications through the mail transport.

    When an override recipient is configured every message is delivered there
    instead; callers still record the real owner. Delivery failures propagate.
    """

    def __init__(self, mailer, sender: str, override_recipient: Optional[str] = None):
        self.mailer = mailer
        self.sender = sender
        self.override_recipient = override_recipient
        self.logger = logging.getLogger(self.__class__.__name__)

    def delivery_address(self, recipient: str) -> str:
        return self.override_recipient or recipient

    def send(self, recipient: str, message: NotificationMessage) -> None:
        address = self.delivery_address(recipient)
        if address != recipient:
            self.logger.info(f"Redirecting notification for {recipient} to override {address}")
        self.mailer.send_mail(self.sender, address, message.subject, message.body)
        self.logger.info(f"Notification sent to {address}: {message.subject}")
