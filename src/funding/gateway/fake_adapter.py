"""Configurable fake payment gateway for development and testing.

Simulates the provider without any external calls. It can be configured at
runtime to succeed, decline or time out, and it honours idempotency keys the
way real providers do: replaying a key returns the first result.
"""

from uuid import uuid4

from funding.gateway.port import ChargeResult, PaymentGateway, RefundResult


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.timeout: bool = False
        self.processor_fee_percent: int = 0
        self.calls: list[dict] = []
        self._charges_by_key: dict[str, ChargeResult] = {}

    def configure(
        self,
        should_succeed: bool,
        failure_reason: str = "Card declined",
        timeout: bool = False,
        processor_fee_percent: int = 0,
    ) -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.timeout = timeout
        self.processor_fee_percent = processor_fee_percent

    @property
    def charges(self) -> list[dict]:
        return [call for call in self.calls if call["method"] == "create_charge"]

    def create_charge(
        self,
        amount: int,
        currency: str,
        token: str | None,
        idempotency_key: str,
        description: str | None = None,
    ) -> ChargeResult:
        self.calls.append(
            {
                "method": "create_charge",
                "amount": amount,
                "currency": currency,
                "token": token,
                "idempotency_key": idempotency_key,
                "description": description,
            }
        )

        if self.timeout:
            raise TimeoutError("Payment provider did not respond in time")

        if idempotency_key in self._charges_by_key:
            return self._charges_by_key[idempotency_key]

        if self.should_succeed:
            result = ChargeResult(
                success=True,
                provider_charge_id=f"fake_ch_{uuid4().hex[:12]}",
                processor_fee=round(amount * self.processor_fee_percent / 100),
            )
            self._charges_by_key[idempotency_key] = result
            return result
        return ChargeResult(success=False, failure_reason=self.failure_reason)

    def create_refund(self, provider_charge_id: str, amount: int) -> RefundResult:
        self.calls.append(
            {
                "method": "create_refund",
                "provider_charge_id": provider_charge_id,
                "amount": amount,
            }
        )

        if self.timeout:
            raise TimeoutError("Payment provider did not respond in time")

        if self.should_succeed:
            return RefundResult(success=True, provider_refund_id=f"fake_re_{uuid4().hex[:12]}")
        return RefundResult(success=False, failure_reason=self.failure_reason)
