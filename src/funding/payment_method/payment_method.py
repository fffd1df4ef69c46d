"""PaymentMethod aggregate: a reusable instrument owned by one account.

Credit cards are charged through the payment provider. Prepaid methods
(fund grants, matching funds) carry their own balance and are debited
locally; the balance can never go negative. Manual payments never get a
PaymentMethod row at all: orders carry a ``manual_payment`` flag instead.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum

from protean.fields import DateTime, Dict, Identifier, Integer, List, String

from funding.domain import funding
from funding.errors import ValidationFailed


class PaymentService(Enum):
    STRIPE = "stripe"
    OPENCOLLECTIVE = "opencollective"


class PaymentMethodType(Enum):
    CREDITCARD = "creditcard"
    PREPAID = "prepaid"
    MANUAL = "manual"


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@funding.aggregate
class PaymentMethod:
    account_id = Identifier(required=True)
    name = String(max_length=255)
    service = String(choices=PaymentService, default=PaymentService.STRIPE.value)
    method_type = String(choices=PaymentMethodType, default=PaymentMethodType.CREDITCARD.value)
    token = String(max_length=255)
    customer_id = String(max_length=255)
    currency = String(max_length=3, default="USD")
    initial_balance = Integer(min_value=0)
    balance = Integer(min_value=0)
    expiry_date = DateTime()
    matching = Integer(min_value=0)
    limited_to_account_ids = List(content_type=String)
    details = Dict()
    created_at = DateTime()

    @classmethod
    def from_token(cls, account_id: str, token: str, name: str | None = None, currency: str = "USD"):
        return cls(
            account_id=account_id,
            name=name,
            service=PaymentService.STRIPE.value,
            method_type=PaymentMethodType.CREDITCARD.value,
            token=token,
            currency=currency,
            created_at=datetime.now(UTC),
        )

    @classmethod
    def prepaid(
        cls,
        account_id: str,
        amount: int,
        currency: str,
        name: str,
        customer_id: str | None = None,
        matching: int | None = None,
        details: dict | None = None,
        valid_for: timedelta = timedelta(days=365),
    ):
        now = datetime.now(UTC)
        return cls(
            account_id=account_id,
            name=name,
            service=PaymentService.OPENCOLLECTIVE.value,
            method_type=PaymentMethodType.PREPAID.value,
            currency=currency,
            initial_balance=amount,
            balance=amount,
            customer_id=customer_id,
            matching=matching,
            expiry_date=now + valid_for,
            details=details or {},
            created_at=now,
        )

    @property
    def is_prepaid(self) -> bool:
        return self.method_type == PaymentMethodType.PREPAID.value

    def is_expired(self, now: datetime | None = None) -> bool:
        expiry = _aware(self.expiry_date)
        return expiry is not None and expiry <= (now or datetime.now(UTC))

    def debit(self, amount: int) -> None:
        """Take ``amount`` off a prepaid balance."""
        if not self.is_prepaid:
            raise ValidationFailed("Only prepaid payment methods carry a balance", field="payment_method")
        if self.is_expired():
            raise ValidationFailed("This payment method has expired", field="payment_method")
        if amount > (self.balance or 0):
            raise ValidationFailed(
                f"Not enough funds on this payment method (balance: {self.balance or 0} {self.currency})",
                field="payment_method",
            )
        self.balance = (self.balance or 0) - amount

    def credit(self, amount: int) -> None:
        """Give ``amount`` back to a prepaid balance, e.g. on refund."""
        if not self.is_prepaid:
            raise ValidationFailed("Only prepaid payment methods carry a balance", field="payment_method")
        self.balance = (self.balance or 0) + amount

    def can_match(self, amount: int, currency: str, account_id: str) -> bool:
        """Whether this fund can co-fund an order of ``amount`` to ``account_id``."""
        if not self.matching or not self.is_prepaid or self.is_expired():
            return False
        if currency != self.currency:
            return False
        if self.limited_to_account_ids and str(account_id) not in self.limited_to_account_ids:
            return False
        return amount * self.matching <= (self.balance or 0)


@funding.repository(part_of=PaymentMethod)
class PaymentMethodRepository:
    def find_matching_fund(self, reference: str) -> PaymentMethod | None:
        """Find a matching fund by its id or by the first characters of it."""
        candidates = (
            self._dao.query.filter(
                service=PaymentService.OPENCOLLECTIVE.value,
                method_type=PaymentMethodType.PREPAID.value,
            )
            .all()
            .items
        )
        for candidate in candidates:
            if candidate.matching and str(candidate.id).startswith(reference):
                return candidate
        return None
