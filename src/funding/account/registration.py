"""Account registration: commands and handler.

Orders can register parties on the fly: an anonymous donor gets a user and
a personal account, a donor giving on behalf of a new organization gets that
organization, and a pledge to a project that is not on the platform yet gets
an inactive collective keyed by its website or GitHub handle.
"""

from protean import handle
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from funding.account.account import Account, AccountType
from funding.account.membership import Membership, MembershipRole
from funding.account.user import User
from funding.domain import funding
from funding.errors import AccountExists


@funding.command(part_of="Account")
class RegisterDonor:
    """Register a user together with its personal account."""

    email = String(required=True, max_length=254)
    name = String(max_length=255)


@funding.command(part_of="Account")
class CreateOrganization:
    name = String(required=True, max_length=255)
    website = String(max_length=255)
    currency = String(max_length=3, default="USD")
    created_by_user_id = Identifier(required=True)


@funding.command(part_of="Account")
class CreatePledgeTarget:
    """Create an inactive collective that pledges can point at."""

    name = String(required=True, max_length=255)
    website = String(max_length=255)
    github_handle = String(max_length=255)
    currency = String(max_length=3, default="USD")


@funding.command_handler(part_of=Account)
class AccountRegistrationHandler:
    @handle(RegisterDonor)
    def register_donor(self, command):
        users = current_domain.repository_for(User)
        if users.find_by_email(command.email):
            raise AccountExists()

        name = command.name or command.email.split("@")[0]
        account = Account.open(name=name, account_type=AccountType.USER)
        user = User.register(email=command.email, name=command.name, account_id=str(account.id))
        account.created_by_user_id = str(user.id)

        current_domain.repository_for(Account).add(account)
        users.add(user)
        return str(user.id)

    @handle(CreateOrganization)
    def create_organization(self, command):
        user = current_domain.repository_for(User).get(command.created_by_user_id)
        organization = Account.open(
            name=command.name,
            account_type=AccountType.ORGANIZATION,
            currency=command.currency or "USD",
            created_by_user_id=str(user.id),
            website=command.website,
        )
        current_domain.repository_for(Account).add(organization)
        current_domain.repository_for(Membership).grant(
            member_account_id=str(user.account_id),
            account_id=str(organization.id),
            role=MembershipRole.ADMIN,
            created_by_user_id=str(user.id),
        )
        return str(organization.id)

    @handle(CreatePledgeTarget)
    def create_pledge_target(self, command):
        repo = current_domain.repository_for(Account)
        existing = repo.find_by_reference(website=command.website, github_handle=command.github_handle)
        if existing:
            return str(existing.id)

        account = Account.open(
            name=command.name,
            account_type=AccountType.COLLECTIVE,
            currency=command.currency or "USD",
            is_active=False,
            website=command.website,
            github_handle=command.github_handle,
        )
        repo.add(account)
        return str(account.id)
