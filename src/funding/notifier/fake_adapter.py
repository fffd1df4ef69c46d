"""Fake notifier that records delivered activities in memory."""

from uuid import uuid4

from funding.notifier.port import Notifier


class FakeNotifier(Notifier):
    def __init__(self) -> None:
        self.should_fail: bool = False
        self.sent: list[dict] = []

    def notify(self, activity_type: str, payload: dict) -> str:
        if self.should_fail:
            raise ConnectionError("Notification service unavailable")
        message_id = f"fake_msg_{uuid4().hex[:12]}"
        self.sent.append({"message_id": message_id, "type": activity_type, "payload": payload})
        return message_id

    def sent_of_type(self, activity_type: str) -> list[dict]:
        return [message for message in self.sent if message["type"] == activity_type]
