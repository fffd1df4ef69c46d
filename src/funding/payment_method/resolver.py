"""Payment method resolution: turn a request's payment reference into an instrument.

A reference is one of:
- ``manual``: offline reconciliation, no instrument and no provider call
- ``id``: a stored instrument (a well-formed UUID), which must exist and be
  usable by the requester
- ``token``: a fresh provider token, stored as a new instrument owned by the
  paying account
"""

from dataclasses import dataclass
from uuid import UUID

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from funding.account.requester import Requester
from funding.domain import funding
from funding.errors import NotFound, PaymentMethodRequired, Unauthorized
from funding.payment_method.payment_method import PaymentMethod


@dataclass(frozen=True)
class PaymentMethodReference:
    id: str | None = None
    token: str | None = None
    name: str | None = None
    manual: bool = False

    @property
    def is_present(self) -> bool:
        return bool(self.manual or self.id or self.token)

    @property
    def is_stored(self) -> bool:
        return is_uuid(self.id)


def is_uuid(value: str | None) -> bool:
    if not value:
        return False
    try:
        UUID(str(value))
    except ValueError:
        return False
    return len(str(value)) == 36


@funding.command(part_of="PaymentMethod")
class RegisterPaymentMethod:
    """Store a provider token as a reusable instrument."""

    account_id = Identifier(required=True)
    token = String(required=True, max_length=255)
    name = String(max_length=255)
    currency = String(max_length=3, default="USD")


@funding.command_handler(part_of=PaymentMethod)
class PaymentMethodHandler:
    @handle(RegisterPaymentMethod)
    def register_payment_method(self, command):
        payment_method = PaymentMethod.from_token(
            account_id=command.account_id,
            token=command.token,
            name=command.name,
            currency=command.currency or "USD",
        )
        current_domain.repository_for(PaymentMethod).add(payment_method)
        return str(payment_method.id)


def resolve_payment_method(
    reference: PaymentMethodReference,
    owner_account_id: str,
    requester: Requester,
    currency: str = "USD",
) -> PaymentMethod | None:
    """Return the instrument to charge, or ``None`` for a manual payment."""
    if reference.manual:
        return None

    repo = current_domain.repository_for(PaymentMethod)
    if reference.is_stored:
        if not requester.is_authenticated:
            raise Unauthorized("You need to be logged in to be able to use a payment method on file")
        payment_method = repo.get_or_none(reference.id)
        if payment_method is None:
            raise NotFound(f"Payment method {reference.id} not found")
        if not requester.is_admin(str(payment_method.account_id)):
            raise Unauthorized("You don't have sufficient permissions to use this payment method")
        return payment_method

    if not reference.token:
        raise PaymentMethodRequired()

    payment_method_id = current_domain.process(
        RegisterPaymentMethod(
            account_id=owner_account_id,
            token=reference.token,
            name=reference.name,
            currency=currency,
        ),
        asynchronous=False,
    )
    return repo.get(payment_method_id)
