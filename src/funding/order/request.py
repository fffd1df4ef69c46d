"""Inputs accepted by the order operations, already parsed from the transport."""

from dataclasses import dataclass, field

from funding.payment_method.resolver import PaymentMethodReference


@dataclass(frozen=True)
class RequestContext:
    ip: str | None = None


@dataclass(frozen=True)
class OrderRequest:
    # Destination: an account id, or a website / GitHub handle for pledges
    account_id: str | None = None
    website: str | None = None
    github_handle: str | None = None
    name: str | None = None

    tier_id: str | None = None
    quantity: int = 1
    total_amount: int = 0
    currency: str | None = None
    interval: str | None = None
    description: str | None = None
    payment_method: PaymentMethodReference = field(default_factory=PaymentMethodReference)

    # Source: an existing account, or the name of an organization to create
    from_account_id: str | None = None
    from_account_name: str | None = None
    from_account_website: str | None = None

    # Anonymous donors
    user_email: str | None = None
    user_name: str | None = None

    matching_fund: str | None = None
    referral_account_id: str | None = None
    host_fee_percent: int | None = None
    platform_fee_percent: int | None = None
    recaptcha_token: str | None = None

    @property
    def destination_key(self) -> str | None:
        return self.account_id or self.website or self.github_handle


@dataclass(frozen=True)
class OrderUpdate:
    interval: str | None = None
    payment_method: PaymentMethodReference = field(default_factory=PaymentMethodReference)
    host_fee_percent: int | None = None
    platform_fee_percent: int | None = None
