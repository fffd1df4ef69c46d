"""Application tests for create_order: one-off, recurring, pledges and registrations."""

import pytest
from protean import current_domain

from funding.account.account import Account
from funding.account.membership import Membership, MembershipRole
from funding.account.requester import Requester
from funding.account.user import User
from funding.activity.activity import Activity, ActivityType, DispatchStatus
from funding.errors import (
    AccountExists,
    ChargeFailed,
    NotFound,
    PaymentMethodRequired,
    Unauthorized,
    ValidationFailed,
)
from funding.order.creation import create_order
from funding.order.order import Order, OrderStatus
from funding.order.request import OrderRequest, RequestContext
from funding.payment_method.payment_method import PaymentMethod
from funding.payment_method.resolver import PaymentMethodReference
from funding.subscription.subscription import Subscription
from funding.tier.tier import Tier
from funding.transaction.transaction import Transaction, TransactionKind

CARD = PaymentMethodReference(token="tok_visa", name="4242")


def _donation(collective, **overrides):
    defaults = {"account_id": str(collective.id), "total_amount": 1000, "payment_method": CARD}
    defaults.update(overrides)
    return OrderRequest(**defaults)


def _roles(member_account_id, account_id):
    return {
        membership.role
        for membership in current_domain.repository_for(Membership).roles_of(str(member_account_id))
        if str(membership.account_id) == str(account_id)
    }


def _all_orders():
    return current_domain.repository_for(Order)._dao.query.all().items


class TestOneOffDonation:
    def test_order_is_paid(self, collective, as_donor):
        order = create_order(_donation(collective), as_donor)
        assert order.status == OrderStatus.PAID.value
        assert order.processed_at is not None
        assert order.description == "Donation to Webpack"
        assert str(order.from_account_id) == as_donor.account_id

    def test_card_is_stored_for_the_source_account(self, collective, as_donor):
        order = create_order(_donation(collective), as_donor)
        payment_method = current_domain.repository_for(PaymentMethod).get(str(order.payment_method_id))
        assert payment_method.token == "tok_visa"
        assert str(payment_method.account_id) == as_donor.account_id

    def test_gateway_is_charged_once_keyed_by_order(self, collective, as_donor, gateway):
        order = create_order(_donation(collective), as_donor)
        assert len(gateway.charges) == 1
        assert gateway.charges[0]["idempotency_key"] == str(order.id)
        assert gateway.charges[0]["amount"] == 1000

    def test_transaction_pair_is_recorded(self, collective, as_donor):
        order = create_order(_donation(collective), as_donor)
        transactions = current_domain.repository_for(Transaction).for_order(str(order.id))
        assert len(transactions) == 2
        credit = next(t for t in transactions if t.kind == TransactionKind.CREDIT.value)
        assert credit.amount == 1000
        assert credit.platform_fee == 50
        assert credit.provider_charge_id.startswith("fake_ch_")

    def test_source_becomes_backer(self, collective, as_donor):
        create_order(_donation(collective), as_donor)
        assert MembershipRole.BACKER.value in _roles(as_donor.account_id, collective.id)

    def test_activity_is_recorded_and_dispatched(self, collective, as_donor, notifier):
        order = create_order(_donation(collective), as_donor)
        activities = current_domain.repository_for(Activity).for_order(str(order.id), ActivityType.ORDER_PROCESSED)
        assert len(activities) == 1
        assert activities[0].dispatch_status == DispatchStatus.SENT.value
        sent = notifier.sent_of_type(ActivityType.ORDER_PROCESSED.value)
        assert sent[0]["payload"]["order_id"] == str(order.id)

    def test_notifier_failure_does_not_fail_the_order(self, collective, as_donor, notifier):
        notifier.should_fail = True
        order = create_order(_donation(collective), as_donor)
        assert order.status == OrderStatus.PAID.value
        activity = current_domain.repository_for(Activity).for_order(str(order.id))[0]
        assert activity.dispatch_status == DispatchStatus.FAILED.value
        assert "unavailable" in activity.failure_reason

    def test_request_ip_is_kept(self, collective, as_donor):
        order = create_order(_donation(collective), as_donor, RequestContext(ip="203.0.113.7"))
        assert order.details["req_ip"] == "203.0.113.7"

    def test_stored_card_is_reused(self, seed, collective, donor, as_donor, gateway):
        card = seed.card(current_domain.repository_for(Account).get(str(donor.account_id)), token="tok_saved")
        order = create_order(_donation(collective, payment_method=PaymentMethodReference(id=str(card.id))), as_donor)
        assert str(order.payment_method_id) == str(card.id)
        assert gateway.charges[0]["token"] == "tok_saved"

    def test_someone_elses_card_is_refused(self, seed, collective, host, as_donor):
        card = seed.card(host)
        with pytest.raises(Unauthorized):
            create_order(_donation(collective, payment_method=PaymentMethodReference(id=str(card.id))), as_donor)

    def test_unknown_stored_card(self, collective, as_donor):
        reference = PaymentMethodReference(id="6f1c2a8e-3b4d-4e5f-8a9b-0c1d2e3f4a5b")
        with pytest.raises(NotFound):
            create_order(_donation(collective, payment_method=reference), as_donor)


class TestManualAndPrepaid:
    def test_manual_payment_waits_for_the_host(self, collective, as_donor, gateway):
        order = create_order(_donation(collective, payment_method=PaymentMethodReference(manual=True)), as_donor)
        assert order.status == OrderStatus.PENDING.value
        assert order.manual_payment is True
        assert order.payment_method_id is None
        assert order.processed_at is None
        assert gateway.calls == []
        assert current_domain.repository_for(Transaction).for_order(str(order.id)) == []
        assert MembershipRole.BACKER.value not in _roles(as_donor.account_id, collective.id)

    def test_manual_recurring_order_starts_no_subscription(self, collective, as_donor, gateway):
        order = create_order(
            _donation(collective, interval="month", payment_method=PaymentMethodReference(manual=True)),
            as_donor,
        )
        assert order.status == OrderStatus.PENDING.value
        assert order.subscription_id is None
        assert gateway.calls == []

    def test_prepaid_balance_is_debited(self, seed, collective, donor, as_donor, gateway):
        source = current_domain.repository_for(Account).get(str(donor.account_id))
        prepaid = seed.prepaid(source, 5000)
        order = create_order(_donation(collective, payment_method=PaymentMethodReference(id=str(prepaid.id))), as_donor)
        assert order.status == OrderStatus.PAID.value
        assert current_domain.repository_for(PaymentMethod).get(str(prepaid.id)).balance == 4000
        assert gateway.calls == []

    def test_prepaid_overdraft_errors_the_order(self, seed, collective, donor, as_donor):
        source = current_domain.repository_for(Account).get(str(donor.account_id))
        prepaid = seed.prepaid(source, 500)
        with pytest.raises(ValidationFailed):
            create_order(_donation(collective, payment_method=PaymentMethodReference(id=str(prepaid.id))), as_donor)
        assert current_domain.repository_for(PaymentMethod).get(str(prepaid.id)).balance == 500
        assert _all_orders()[0].status == OrderStatus.ERROR.value


class TestRecurring:
    def test_recurring_order_is_active_with_subscription(self, collective, as_donor):
        order = create_order(_donation(collective, interval="month"), as_donor)
        assert order.status == OrderStatus.ACTIVE.value
        assert order.description == "Monthly donation to Webpack"
        subscription = current_domain.repository_for(Subscription).get(str(order.subscription_id))
        assert subscription.is_active
        assert subscription.amount == 1000
        assert subscription.interval == "month"
        assert subscription.next_charge_date is not None

    def test_yearly_description(self, collective, as_donor):
        order = create_order(_donation(collective, interval="year"), as_donor)
        assert order.description == "Yearly donation to Webpack"

    def test_unknown_interval(self, collective, as_donor):
        with pytest.raises(ValidationFailed):
            create_order(_donation(collective, interval="week"), as_donor)


class TestChargeFailure:
    def test_declined_charge_errors_the_order(self, collective, as_donor, gateway):
        gateway.configure(should_succeed=False, failure_reason="Your card was declined")
        with pytest.raises(ChargeFailed) as exc:
            create_order(_donation(collective), as_donor)
        assert exc.value.reason == "Your card was declined"

        order = _all_orders()[0]
        assert order.status == OrderStatus.ERROR.value
        assert order.processed_at is None
        assert order.details["error"] == "Your card was declined"
        assert current_domain.repository_for(Transaction).for_order(str(order.id)) == []

    def test_timeout_is_a_failure_not_a_success(self, collective, as_donor, gateway):
        gateway.configure(should_succeed=True, timeout=True)
        with pytest.raises(ChargeFailed):
            create_order(_donation(collective, interval="month"), as_donor)
        order = _all_orders()[0]
        assert order.status == OrderStatus.ERROR.value
        assert current_domain.repository_for(Subscription)._dao.query.all().items == []

    def test_no_backer_role_on_failure(self, collective, as_donor, gateway):
        gateway.configure(should_succeed=False)
        with pytest.raises(ChargeFailed):
            create_order(_donation(collective), as_donor)
        assert _roles(as_donor.account_id, collective.id) == set()


class TestAnonymousDonor:
    def _anonymous(self, collective, **overrides):
        defaults = {"user_email": "new.donor@example.com", "user_name": "New Donor", "recaptcha_token": "token"}
        defaults.update(overrides)
        return _donation(collective, **defaults)

    def test_donor_is_registered(self, collective):
        order = create_order(self._anonymous(collective), Requester.anonymous(), RequestContext(ip="198.51.100.1"))
        user = current_domain.repository_for(User).find_by_email("new.donor@example.com")
        assert user is not None
        assert str(order.from_account_id) == str(user.account_id)
        assert str(order.created_by_user_id) == str(user.id)
        assert order.details["recaptcha_response"]["success"] is True

    def test_challenge_is_required(self, collective):
        with pytest.raises(ValidationFailed) as exc:
            create_order(self._anonymous(collective, recaptcha_token=None), Requester.anonymous())
        assert exc.value.message == "Recaptcha token missing"

    def test_failed_challenge(self, collective, challenge):
        challenge.should_succeed = False
        with pytest.raises(ValidationFailed):
            create_order(self._anonymous(collective), Requester.anonymous())
        assert _all_orders() == []

    def test_existing_email_must_login(self, collective, donor):
        with pytest.raises(AccountExists):
            create_order(self._anonymous(collective, user_email="DONOR@example.com"), Requester.anonymous())

    def test_email_is_required(self, collective):
        with pytest.raises(ValidationFailed):
            create_order(self._anonymous(collective, user_email=None), Requester.anonymous())

    def test_stored_card_needs_login(self, collective):
        reference = PaymentMethodReference(id="6f1c2a8e-3b4d-4e5f-8a9b-0c1d2e3f4a5b")
        with pytest.raises(Unauthorized):
            create_order(self._anonymous(collective, payment_method=reference), Requester.anonymous())

    def test_new_organization_as_source(self, collective):
        order = create_order(
            self._anonymous(collective, from_account_name="Acme Inc", from_account_website="https://acme.test"),
            Requester.anonymous(),
        )
        source = current_domain.repository_for(Account).get(str(order.from_account_id))
        assert source.name == "Acme Inc"
        assert source.account_type == "ORGANIZATION"
        user = current_domain.repository_for(User).find_by_email("new.donor@example.com")
        assert MembershipRole.ADMIN.value in _roles(user.account_id, source.id)


class TestSourceAccount:
    def test_admin_can_give_on_behalf_of_organization(self, seed, collective, donor, as_donor):
        organization = seed.account("Acme", account_type="ORGANIZATION")
        seed.grant(donor.account_id, organization.id, "ADMIN")
        order = create_order(_donation(collective, from_account_id=str(organization.id)), Requester.load(str(donor.id)))
        assert str(order.from_account_id) == str(organization.id)

    def test_member_can_give_on_behalf_of_organization(self, seed, collective, donor):
        organization = seed.account("Acme", account_type="ORGANIZATION")
        seed.grant(donor.account_id, organization.id, "MEMBER")
        order = create_order(_donation(collective, from_account_id=str(organization.id)), Requester.load(str(donor.id)))
        assert str(order.from_account_id) == str(organization.id)

    def test_stranger_cannot_spend_from_account(self, seed, collective, as_donor):
        organization = seed.account("Acme", account_type="ORGANIZATION")
        with pytest.raises(Unauthorized):
            create_order(_donation(collective, from_account_id=str(organization.id)), as_donor)

    def test_self_funding_is_rejected(self, collective, as_host_admin):
        with pytest.raises(ValidationFailed) as exc:
            create_order(_donation(collective, from_account_id=str(collective.id)), as_host_admin)
        assert exc.value.message == "Orders cannot be created for an account by that same account"


class TestValidation:
    def test_unknown_destination(self, as_donor):
        with pytest.raises(NotFound):
            create_order(
                OrderRequest(account_id="6f1c2a8e-3b4d-4e5f-8a9b-0c1d2e3f4a5b", total_amount=1000, payment_method=CARD),
                as_donor,
            )

    def test_destination_is_required(self, as_donor):
        with pytest.raises(ValidationFailed):
            create_order(OrderRequest(total_amount=1000, payment_method=CARD), as_donor)

    def test_payment_method_required(self, collective, as_donor):
        with pytest.raises(PaymentMethodRequired):
            create_order(_donation(collective, payment_method=PaymentMethodReference()), as_donor)
        assert _all_orders() == []

    def test_currency_mismatch(self, collective, as_donor):
        with pytest.raises(ValidationFailed) as exc:
            create_order(_donation(collective, currency="EUR"), as_donor)
        assert exc.value.message == "Invalid currency. Expected USD."

    def test_platform_fee_needs_root(self, collective, as_donor):
        with pytest.raises(Unauthorized):
            create_order(_donation(collective, platform_fee_percent=0), as_donor)

    def test_host_fee_needs_host_admin(self, collective, as_donor):
        with pytest.raises(Unauthorized):
            create_order(_donation(collective, host_fee_percent=0), as_donor)

    def test_host_admin_sets_host_fee(self, collective, as_host_admin):
        order = create_order(_donation(collective, host_fee_percent=10), as_host_admin)
        credit = next(
            t
            for t in current_domain.repository_for(Transaction).for_order(str(order.id))
            if t.kind == TransactionKind.CREDIT.value
        )
        assert credit.host_fee == 100

    def test_root_waives_platform_fee(self, collective, as_root):
        order = create_order(_donation(collective, platform_fee_percent=0), as_root)
        credit = next(
            t
            for t in current_domain.repository_for(Transaction).for_order(str(order.id))
            if t.kind == TransactionKind.CREDIT.value
        )
        assert credit.platform_fee == 0


class TestTiers:
    def test_fixed_amount_tier_sets_total(self, seed, collective, as_donor, gateway):
        tier = seed.tier(collective, name="Gold", amount=5000)
        order = create_order(_donation(collective, tier_id=str(tier.id), total_amount=1), as_donor)
        assert order.total_amount == 5000
        assert order.description == "Donation to Webpack (Gold)"
        assert gateway.charges[0]["amount"] == 5000

    def test_tier_of_another_account(self, seed, host, collective, as_donor):
        tier = seed.tier(host, name="Other")
        with pytest.raises(NotFound):
            create_order(_donation(collective, tier_id=str(tier.id)), as_donor)

    def test_paid_tickets(self, seed, event, as_donor):
        tier = seed.tier(event, name="Ticket", amount=1500, tier_type="TICKET", max_quantity=10)
        order = create_order(
            OrderRequest(account_id=str(event.id), tier_id=str(tier.id), quantity=2, payment_method=CARD),
            as_donor,
        )
        assert order.total_amount == 3000
        assert order.status == OrderStatus.PAID.value
        assert current_domain.repository_for(Tier).get(str(tier.id)).quantity_sold == 2

    def test_sold_out(self, seed, event, as_donor):
        tier = seed.tier(event, name="Ticket", amount=1500, max_quantity=2, quantity_sold=2)
        with pytest.raises(ValidationFailed) as exc:
            create_order(OrderRequest(account_id=str(event.id), tier_id=str(tier.id), payment_method=CARD), as_donor)
        assert exc.value.message == "No more tickets left for Ticket"

    def test_per_person_cap(self, seed, event, as_donor):
        tier = seed.tier(event, name="Ticket", amount=1500, max_quantity_per_user=1)
        with pytest.raises(ValidationFailed):
            create_order(
                OrderRequest(account_id=str(event.id), tier_id=str(tier.id), quantity=2, payment_method=CARD),
                as_donor,
            )


class TestFreeRegistration:
    def test_free_ticket_is_confirmed(self, seed, event, as_donor, notifier, gateway):
        tier = seed.tier(event, name="Free entry", amount=0, tier_type="TICKET", max_quantity=50)
        order = create_order(OrderRequest(account_id=str(event.id), tier_id=str(tier.id), quantity=2), as_donor)

        assert order.status == OrderStatus.PAID.value
        assert order.description == "Registration to Webpack Meetup (Free entry)"
        assert gateway.calls == []
        assert current_domain.repository_for(Tier).get(str(tier.id)).quantity_sold == 2
        assert MembershipRole.ATTENDEE.value in _roles(as_donor.account_id, event.id)
        confirmations = notifier.sent_of_type(ActivityType.TICKET_CONFIRMED.value)
        assert confirmations[0]["payload"]["quantity"] == 2


class TestPledge:
    def test_pledge_to_popular_repository(self, popularity, as_donor, gateway):
        popularity.add("webpack/webpack", 60000)
        order = create_order(
            OrderRequest(github_handle="webpack/webpack", name="Webpack", total_amount=1000, interval="month"),
            as_donor,
        )

        assert order.status == OrderStatus.PENDING.value
        assert gateway.calls == []
        destination = current_domain.repository_for(Account).get(str(order.account_id))
        assert not destination.is_active
        assert destination.github_handle == "webpack/webpack"
        subscription = current_domain.repository_for(Subscription).get(str(order.subscription_id))
        assert not subscription.is_active
        assert subscription.amount == 1000

    def test_second_pledge_reuses_target(self, popularity, as_donor, seed):
        popularity.add("webpack/webpack", 60000)
        request = OrderRequest(github_handle="webpack/webpack", total_amount=1000, interval="month")
        first = create_order(request, as_donor)
        second = create_order(request, Requester.load(str(seed.user("other@example.com").id)))
        assert str(first.account_id) == str(second.account_id)

    def test_unpopular_repository(self, popularity, as_donor):
        popularity.add("someone/tiny", 5)
        with pytest.raises(ValidationFailed):
            create_order(OrderRequest(github_handle="someone/tiny", total_amount=1000, interval="month"), as_donor)

    def test_pledge_by_website(self, as_donor):
        order = create_order(
            OrderRequest(website="https://example.org", name="Example", total_amount=1000, interval="month"),
            as_donor,
        )
        assert order.status == OrderStatus.PENDING.value


class TestMatchingFund:
    def test_matching_fund_doubles_the_donation(self, seed, collective, as_donor):
        sponsor = seed.account("Sponsor", account_type="ORGANIZATION")
        fund = seed.prepaid(sponsor, 10000, matching=2)

        order = create_order(_donation(collective, matching_fund=str(fund.id)[:8]), as_donor)

        transactions = current_domain.repository_for(Transaction).for_order(str(order.id))
        credits = sorted(t.amount for t in transactions if t.kind == TransactionKind.CREDIT.value)
        assert credits == [1000, 2000]
        assert current_domain.repository_for(PaymentMethod).get(str(fund.id)).balance == 8000
        assert str(order.referral_account_id) == str(sponsor.id)
        assert MembershipRole.FUNDRAISER.value in _roles(sponsor.id, collective.id)

    def test_unknown_matching_fund(self, collective, as_donor):
        with pytest.raises(NotFound):
            create_order(_donation(collective, matching_fund="deadbeef"), as_donor)

    def test_unknown_matching_fund_is_reported_before_currency(self, collective, as_donor):
        with pytest.raises(NotFound) as exc:
            create_order(_donation(collective, currency="EUR", matching_fund="deadbeef"), as_donor)
        assert "Matching fund deadbeef not found" in str(exc.value)

    def test_insufficient_matching_fund_is_skipped(self, seed, collective, as_donor):
        sponsor = seed.account("Sponsor", account_type="ORGANIZATION")
        fund = seed.prepaid(sponsor, 1000, matching=2)
        order = create_order(_donation(collective, matching_fund=str(fund.id)), as_donor)
        assert order.status == OrderStatus.PAID.value
        assert order.matching_payment_method_id is None
        assert current_domain.repository_for(PaymentMethod).get(str(fund.id)).balance == 1000


class TestReferral:
    def test_referrer_becomes_fundraiser(self, seed, collective, as_donor):
        referrer = seed.account("Referrer", account_type="USER")
        create_order(_donation(collective, referral_account_id=str(referrer.id)), as_donor)
        assert MembershipRole.FUNDRAISER.value in _roles(referrer.id, collective.id)

    def test_self_referral_is_ignored(self, collective, as_donor):
        order = create_order(_donation(collective, referral_account_id=as_donor.account_id), as_donor)
        assert order.referral_account_id is None
        assert MembershipRole.FUNDRAISER.value not in _roles(as_donor.account_id, collective.id)


class TestOrderLimits:
    def test_limit_blocks_before_anything_is_recorded(self, custom_config, collective, as_donor):
        custom_config["order_limits"] = {**custom_config["order_limits"], "per_account": 1}
        create_order(_donation(collective), as_donor)

        from funding.errors import LimitExceeded

        with pytest.raises(LimitExceeded):
            create_order(_donation(collective), as_donor)
        assert len(_all_orders()) == 1
