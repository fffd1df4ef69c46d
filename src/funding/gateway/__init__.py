"""Payment gateway factory.

Provides get_gateway() / set_gateway() / reset_gateway() to swap the payment
provider adapter. FakeGateway is the default for development and testing;
production deployments install their provider adapter with set_gateway() at
startup.
"""

from funding.gateway.fake_adapter import FakeGateway
from funding.gateway.port import PaymentGateway

_current_gateway: PaymentGateway | None = None


def get_gateway() -> PaymentGateway:
    """Return the current payment gateway. Defaults to FakeGateway."""
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = FakeGateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    """Override the active payment gateway (useful for tests)."""
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    """Reset to default gateway."""
    global _current_gateway
    _current_gateway = None
