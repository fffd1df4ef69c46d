"""Notifier port: hands activity records to the notification service."""

from abc import ABC, abstractmethod


class Notifier(ABC):
    @abstractmethod
    def notify(self, activity_type: str, payload: dict) -> str:
        """Deliver one activity. Returns the downstream message id; raises on failure."""
        ...
