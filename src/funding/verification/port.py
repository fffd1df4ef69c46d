"""Verification ports: external checks consulted while validating an order."""

from abc import ABC, abstractmethod


class PopularityVerifier(ABC):
    """Popularity of a code-hosting handle, used to qualify pledge targets."""

    @abstractmethod
    def stars(self, handle: str) -> int:
        """Stars of ``owner/repo``, or of the most starred repository of an ``org``.

        Raises ``LookupError`` when the handle does not exist.
        """
        ...


class ChallengeVerifier(ABC):
    """Anti-abuse challenge (reCAPTCHA-style) verification."""

    @abstractmethod
    def verify(self, token: str, remote_ip: str | None) -> dict:
        """Return the verifier's response; ``response["success"]`` tells the outcome."""
        ...
