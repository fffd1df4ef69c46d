import copy

import pytest
from protean.integrations.pytest import DomainFixture


@pytest.fixture(scope="session")
def funding_bed():
    from funding.domain import funding

    bed = DomainFixture(funding)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(funding_bed):
    with funding_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def _reset_adapters():
    """Fresh fakes for every test: gateway, counters, verifiers and notifier."""
    from funding.gateway import reset_gateway
    from funding.limits import reset_counter_store
    from funding.notifier import reset_notifier
    from funding.verification import reset_verifiers

    reset_gateway()
    reset_counter_store()
    reset_verifiers()
    reset_notifier()
    yield
    reset_gateway()
    reset_counter_store()
    reset_verifiers()
    reset_notifier()


@pytest.fixture()
def custom_config(funding_bed):
    """The domain's [custom] config, restored after the test."""
    custom = funding_bed.domain.config["custom"]
    saved = copy.deepcopy(custom)
    yield custom
    custom.clear()
    custom.update(saved)


@pytest.fixture()
def gateway():
    from funding.gateway import get_gateway

    return get_gateway()


@pytest.fixture()
def notifier():
    from funding.notifier import get_notifier

    return get_notifier()


@pytest.fixture()
def popularity():
    from funding.verification import get_popularity_verifier

    return get_popularity_verifier()


@pytest.fixture()
def challenge():
    from funding.verification import get_challenge_verifier

    return get_challenge_verifier()


class Seeder:
    """Writes fixtures straight through the repositories."""

    def account(self, name, account_type="COLLECTIVE", currency="USD", host=None, is_active=True, **kwargs):
        from protean import current_domain

        from funding.account.account import Account, AccountType

        account = Account.open(
            name=name,
            account_type=AccountType(account_type),
            currency=currency,
            host_account_id=str(host.id) if host else None,
            is_active=is_active,
            **kwargs,
        )
        current_domain.repository_for(Account).add(account)
        return account

    def user(self, email, name=None, is_root=False):
        from protean import current_domain

        from funding.account.user import User

        account = self.account(name or email.split("@")[0], account_type="USER")
        user = User.register(email=email, account_id=str(account.id), name=name, is_root=is_root)
        current_domain.repository_for(User).add(user)
        return user

    def grant(self, member_account_id, account_id, role):
        from protean import current_domain

        from funding.account.membership import Membership, MembershipRole

        return current_domain.repository_for(Membership).grant(
            member_account_id=str(member_account_id),
            account_id=str(account_id),
            role=MembershipRole(role),
        )

    def tier(self, account, name="Backer", amount=None, **kwargs):
        from protean import current_domain

        from funding.tier.tier import Tier

        tier = Tier(account_id=str(account.id), name=name, amount=amount, currency=account.currency, **kwargs)
        current_domain.repository_for(Tier).add(tier)
        return tier

    def prepaid(self, account, amount, currency="USD", matching=None, **kwargs):
        from protean import current_domain

        from funding.payment_method.payment_method import PaymentMethod

        payment_method = PaymentMethod.prepaid(
            account_id=str(account.id),
            amount=amount,
            currency=currency,
            name="Gift card",
            matching=matching,
            **kwargs,
        )
        current_domain.repository_for(PaymentMethod).add(payment_method)
        return payment_method

    def card(self, account, token="tok_visa"):
        from protean import current_domain

        from funding.payment_method.payment_method import PaymentMethod

        payment_method = PaymentMethod.from_token(account_id=str(account.id), token=token, name="4242")
        current_domain.repository_for(PaymentMethod).add(payment_method)
        return payment_method


@pytest.fixture()
def seed():
    return Seeder()


@pytest.fixture()
def host(seed):
    return seed.account("Open Source Collective", account_type="ORGANIZATION")


@pytest.fixture()
def host_admin(seed, host):
    user = seed.user("host-admin@example.com", name="Host Admin")
    seed.grant(user.account_id, host.id, "ADMIN")
    return user


@pytest.fixture()
def collective(seed, host):
    return seed.account("Webpack", host=host)


@pytest.fixture()
def event(seed, host):
    return seed.account("Webpack Meetup", account_type="EVENT", host=host)


@pytest.fixture()
def donor(seed):
    return seed.user("donor@example.com", name="Dana Donor")


@pytest.fixture()
def root_user(seed):
    return seed.user("root@example.com", name="Site Admin", is_root=True)


@pytest.fixture()
def as_donor(donor):
    from funding.account.requester import Requester

    return Requester.load(str(donor.id))


@pytest.fixture()
def as_root(root_user):
    from funding.account.requester import Requester

    return Requester.load(str(root_user.id))


@pytest.fixture()
def as_host_admin(host_admin):
    from funding.account.requester import Requester

    return Requester.load(str(host_admin.id))
