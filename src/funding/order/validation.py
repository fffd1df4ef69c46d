"""Order validation: turns a raw order request into a fully resolved ValidatedOrder.

Checks run in a fixed order and the first failure wins:

1. destination account (by id, or found/created from a website or GitHub
   handle; GitHub pledges must be popular enough)
2. no self-funding
3. fee overrides need root (platform fee) or host admin (host fee)
4. tier exists on the destination, per-person cap, remaining capacity
5. payment required => a payment reference is present
6. acting user (requester, or a newly registered donor)
7. source account and the requester's right to spend from it
8. matching fund
9. currency
10. final amount and description

Registering a donor, an organization or a pledge target in steps 1, 6 and
7 is not undone when a later step rejects the order.
"""

from dataclasses import dataclass, field

import structlog
from protean.utils.globals import current_domain

from funding.account.account import Account, AccountType
from funding.account.membership import MembershipRole
from funding.account.registration import CreateOrganization, CreatePledgeTarget, RegisterDonor
from funding.account.requester import Requester
from funding.account.user import User
from funding.errors import (
    AccountExists,
    NotFound,
    PaymentMethodRequired,
    Unauthorized,
    ValidationFailed,
)
from funding.order.order import Interval
from funding.order.request import OrderRequest, RequestContext
from funding.payment_method.payment_method import PaymentMethod
from funding.payment_method.resolver import PaymentMethodReference
from funding.tier.tier import Tier
from funding.verification.checks import verify_pledge_target

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ValidatedOrder:
    destination: Account
    source: Account
    user: User
    tier: Tier | None
    matching_fund: PaymentMethod | None
    quantity: int
    total_amount: int
    currency: str
    interval: str | None
    description: str
    payment_required: bool
    payment_method: PaymentMethodReference
    referral_account_id: str | None = None
    host_fee_percent: int | None = None
    platform_fee_percent: int | None = None
    details: dict = field(default_factory=dict)


def describe(destination: Account, tier: Tier | None, interval: str | None, total_amount: int) -> str:
    tier_info = f" ({tier.name})" if tier else ""
    if interval:
        return f"{interval.capitalize()}ly donation to {destination.name}{tier_info}"
    if total_amount == 0 or destination.account_type == AccountType.EVENT.value:
        label = "Registration"
    else:
        label = "Donation"
    return f"{label} to {destination.name}{tier_info}"


class OrderValidator:
    def __init__(self, requester: Requester, context: RequestContext, challenge_response: dict | None = None):
        self.requester = requester
        self.context = context
        self.challenge_response = challenge_response
        self.accounts = current_domain.repository_for(Account)

    def validate(self, request: OrderRequest) -> ValidatedOrder:
        if request.payment_method.is_stored and not self.requester.is_authenticated:
            raise Unauthorized("You need to be logged in to be able to use a payment method on file")
        if request.interval and request.interval not in {interval.value for interval in Interval}:
            raise ValidationFailed("Interval must be month or year", field="interval")
        quantity = request.quantity or 1
        if quantity < 1:
            raise ValidationFailed("Quantity must be at least 1", field="quantity")

        destination = self._resolve_destination(request)
        self._reject_self_funding(request.from_account_id, destination)
        self._authorize_fee_overrides(request, destination)
        tier = self._resolve_tier(request.tier_id, destination, quantity)
        payment_required = self._payment_required(request, destination, tier)
        user = self._resolve_user(request)
        source = self._resolve_source(request, destination, user)
        self._reject_self_funding(str(source.id), destination)

        total_amount = tier.amount * quantity if tier and tier.has_fixed_amount else request.total_amount
        matching_fund = self._find_matching_fund(request.matching_fund)
        currency = self._check_currency(request, destination, tier)
        matching_fund = self._usable_matching_fund(matching_fund, destination, total_amount, currency)

        # A matching fund takes the referral credit
        referral = str(matching_fund.account_id) if matching_fund else request.referral_account_id
        if referral and referral == str(source.id):
            referral = None

        return ValidatedOrder(
            destination=destination,
            source=source,
            user=user,
            tier=tier,
            matching_fund=matching_fund,
            quantity=quantity,
            total_amount=total_amount,
            currency=currency,
            interval=request.interval,
            description=request.description or describe(destination, tier, request.interval, total_amount),
            payment_required=payment_required,
            payment_method=request.payment_method,
            referral_account_id=referral,
            host_fee_percent=request.host_fee_percent,
            platform_fee_percent=request.platform_fee_percent,
            details={
                "req_ip": self.context.ip,
                "recaptcha_response": self.challenge_response,
            },
        )

    def _resolve_destination(self, request: OrderRequest) -> Account:
        if request.account_id:
            destination = self.accounts.get_or_none(request.account_id)
            if destination is None:
                raise NotFound(f"Account {request.account_id} not found")
            return destination

        if not (request.website or request.github_handle):
            raise ValidationFailed(
                "An order needs a destination account id, website or GitHub handle",
                field="account",
            )

        if request.github_handle:
            min_stars = current_domain.config["custom"].get("pledge_min_stars", 100)
            verify_pledge_target(request.github_handle, min_stars)

        account_id = current_domain.process(
            CreatePledgeTarget(
                name=request.name or request.github_handle or request.website,
                website=request.website,
                github_handle=request.github_handle,
                currency=request.currency or "USD",
            ),
            asynchronous=False,
        )
        return self.accounts.get(account_id)

    def _reject_self_funding(self, from_account_id: str | None, destination: Account) -> None:
        if from_account_id and str(from_account_id) == str(destination.id):
            raise ValidationFailed(
                "Orders cannot be created for an account by that same account",
                field="from_account",
            )

    def _authorize_fee_overrides(self, request: OrderRequest, destination: Account) -> None:
        if request.platform_fee_percent is not None and not self.requester.is_root:
            raise Unauthorized("Only a root can change the platform fee")
        if request.host_fee_percent is not None and not self.requester.is_admin(destination.host_account_id):
            raise Unauthorized("Only an admin of the host can change the host fee")

    def _resolve_tier(self, tier_id: str | None, destination: Account, quantity: int) -> Tier | None:
        if not tier_id:
            return None
        tier = current_domain.repository_for(Tier).get_or_none(tier_id)
        if tier is None or str(tier.account_id) != str(destination.id):
            raise NotFound(f"No tier found with id {tier_id} for account {destination.slug}")
        tier.check_quantity(quantity)
        return tier

    def _payment_required(self, request: OrderRequest, destination: Account, tier: Tier | None) -> bool:
        has_price = (request.total_amount or 0) > 0 or bool(tier and (tier.amount or 0) > 0)
        payment_required = has_price and destination.is_active
        if payment_required and not request.payment_method.is_present:
            raise PaymentMethodRequired()
        return payment_required

    def _resolve_user(self, request: OrderRequest) -> User:
        if self.requester.is_authenticated:
            return self.requester.user

        if not request.user_email:
            raise ValidationFailed("You need to provide an email address", field="email")
        users = current_domain.repository_for(User)
        if users.find_by_email(request.user_email):
            raise AccountExists()

        user_id = current_domain.process(
            RegisterDonor(email=request.user_email, name=request.user_name),
            asynchronous=False,
        )
        logger.info("Registered donor from order", user_id=user_id)
        return users.get(user_id)

    def _resolve_source(self, request: OrderRequest, destination: Account, user: User) -> Account:
        if request.from_account_id:
            if not self.requester.is_authenticated:
                raise Unauthorized("You need to be logged in to create an order for an existing account")
            source = self.accounts.get_or_none(request.from_account_id)
            if source is None:
                raise NotFound(f"From account {request.from_account_id} not found")

            roles = [MembershipRole.ADMIN, MembershipRole.HOST]
            if source.account_type == AccountType.ORGANIZATION.value:
                roles.append(MembershipRole.MEMBER)
            if not (
                self.requester.has_role(str(source.id), roles)
                or self.requester.is_admin(destination.host_account_id)
            ):
                raise Unauthorized(
                    f"You don't have sufficient permissions to create an order on behalf of the "
                    f"{source.name} {source.account_type.lower()}"
                )
            return source

        if request.from_account_name:
            organization_id = current_domain.process(
                CreateOrganization(
                    name=request.from_account_name,
                    website=request.from_account_website,
                    currency=destination.currency,
                    created_by_user_id=str(user.id),
                ),
                asynchronous=False,
            )
            return self.accounts.get(organization_id)

        return self.accounts.get(str(user.account_id))

    def _check_currency(self, request: OrderRequest, destination: Account, tier: Tier | None) -> str:
        expected = (tier.currency if tier and tier.currency else None) or destination.currency
        if request.currency and request.currency != expected:
            raise ValidationFailed(f"Invalid currency. Expected {expected}.", field="currency")
        return expected

    def _find_matching_fund(self, reference: str | None) -> PaymentMethod | None:
        if not reference:
            return None
        fund = current_domain.repository_for(PaymentMethod).find_matching_fund(reference)
        if fund is None:
            raise NotFound(f"Matching fund {reference} not found")
        return fund

    def _usable_matching_fund(
        self,
        fund: PaymentMethod | None,
        destination: Account,
        total_amount: int,
        currency: str,
    ) -> PaymentMethod | None:
        if fund is None:
            return None
        if not fund.can_match(total_amount, currency, str(destination.id)):
            logger.info(
                "Matching fund cannot be used for this order",
                matching_fund_id=str(fund.id),
                account_id=str(destination.id),
                total_amount=total_amount,
            )
            return None
        return fund
