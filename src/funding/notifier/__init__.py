"""Notifier registry.

Uses FakeNotifier by default; deployments install the notification
service client with set_notifier() at startup.
"""

from funding.notifier.port import Notifier

_notifier_instance: Notifier | None = None


def get_notifier() -> Notifier:
    global _notifier_instance
    if _notifier_instance is None:
        from funding.notifier.fake_adapter import FakeNotifier

        _notifier_instance = FakeNotifier()
    return _notifier_instance


def set_notifier(notifier: Notifier) -> None:
    global _notifier_instance
    _notifier_instance = notifier


def reset_notifier() -> None:
    """Reset the notifier singleton (useful for testing)."""
    global _notifier_instance
    _notifier_instance = None
