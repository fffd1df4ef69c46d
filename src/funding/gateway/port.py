"""Payment gateway port (abstract interface).

Defines the contract the payment provider adapter must implement. Charges
carry an idempotency key (the order id, or the subscription cycle for
renewals) so a retried request cannot move money twice at the provider.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ChargeResult:
    """Result of a payment charge attempt."""

    success: bool
    provider_charge_id: str | None = None
    processor_fee: int = 0
    failure_reason: str | None = None


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    provider_refund_id: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_charge(
        self,
        amount: int,
        currency: str,
        token: str | None,
        idempotency_key: str,
        description: str | None = None,
    ) -> ChargeResult:
        """Charge ``amount`` minor units. Raises ``TimeoutError`` when the provider does not answer."""
        ...

    @abstractmethod
    def create_refund(
        self,
        provider_charge_id: str,
        amount: int,
    ) -> RefundResult:
        """Refund a previous charge."""
        ...
