"""Membership aggregate: a role held by one account over another.

Roles drive authorization (ADMIN, HOST, MEMBER) and record the outcome of
orders (BACKER for contributors, ATTENDEE for event registrations,
FUNDRAISER for referrals).
"""

from datetime import UTC, datetime
from enum import Enum

from protean import handle
from protean.fields import DateTime, Identifier, String
from protean.utils.globals import current_domain

from funding.domain import funding


class MembershipRole(Enum):
    ADMIN = "ADMIN"
    HOST = "HOST"
    MEMBER = "MEMBER"
    BACKER = "BACKER"
    ATTENDEE = "ATTENDEE"
    FUNDRAISER = "FUNDRAISER"


@funding.aggregate
class Membership:
    member_account_id = Identifier(required=True)
    account_id = Identifier(required=True)
    role = String(required=True, choices=MembershipRole)
    tier_id = Identifier()
    created_by_user_id = Identifier()
    created_at = DateTime()


@funding.repository(part_of=Membership)
class MembershipRepository:
    def roles_of(self, member_account_id: str) -> list[Membership]:
        return self._dao.query.filter(member_account_id=member_account_id).all().items

    def grant(
        self,
        member_account_id: str,
        account_id: str,
        role: MembershipRole,
        created_by_user_id: str | None = None,
        tier_id: str | None = None,
    ) -> Membership:
        """Add the role unless the member already holds it on that account."""
        existing = (
            self._dao.query.filter(
                member_account_id=member_account_id,
                account_id=account_id,
                role=role.value,
            )
            .all()
            .items
        )
        if existing:
            return existing[0]

        membership = Membership(
            member_account_id=member_account_id,
            account_id=account_id,
            role=role.value,
            tier_id=tier_id,
            created_by_user_id=created_by_user_id,
            created_at=datetime.now(UTC),
        )
        self.add(membership)
        return membership


@funding.command(part_of="Membership")
class GrantRole:
    member_account_id = Identifier(required=True)
    account_id = Identifier(required=True)
    role = String(required=True, choices=MembershipRole)
    created_by_user_id = Identifier()


@funding.command_handler(part_of=Membership)
class MembershipHandler:
    @handle(GrantRole)
    def grant_role(self, command):
        membership = current_domain.repository_for(Membership).grant(
            member_account_id=command.member_account_id,
            account_id=command.account_id,
            role=MembershipRole(command.role),
            created_by_user_id=command.created_by_user_id,
        )
        return str(membership.id)
