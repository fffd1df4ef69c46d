"""The acting identity of one operation, with its roles per account.

Authentication happens upstream; operations receive a user id (or nothing)
and load a Requester to answer authorization questions.
"""

from collections import defaultdict
from dataclasses import dataclass, field

from protean.utils.globals import current_domain

from funding.account.membership import Membership, MembershipRole
from funding.account.user import User
from funding.errors import NotFound, Unauthorized


@dataclass(frozen=True)
class Requester:
    user: User | None = None
    roles: dict[str, frozenset[str]] = field(default_factory=dict)

    @classmethod
    def anonymous(cls) -> "Requester":
        return cls()

    @classmethod
    def load(cls, user_id: str | None) -> "Requester":
        if not user_id:
            return cls.anonymous()

        user = current_domain.repository_for(User).get_or_none(user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")

        roles = defaultdict(set)
        for membership in current_domain.repository_for(Membership).roles_of(str(user.account_id)):
            roles[str(membership.account_id)].add(membership.role)
        return cls(user=user, roles={account_id: frozenset(names) for account_id, names in roles.items()})

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def user_id(self) -> str | None:
        return str(self.user.id) if self.user else None

    @property
    def account_id(self) -> str | None:
        return str(self.user.account_id) if self.user else None

    @property
    def is_root(self) -> bool:
        return bool(self.user and self.user.is_root)

    def has_role(self, account_id: str | None, roles: list[MembershipRole]) -> bool:
        if not self.user or not account_id:
            return False
        account_id = str(account_id)
        # A user administers its own account
        if account_id == self.account_id and MembershipRole.ADMIN in roles:
            return True
        held = self.roles.get(account_id, frozenset())
        return any(role.value in held for role in roles)

    def is_admin(self, account_id: str | None) -> bool:
        return self.has_role(account_id, [MembershipRole.ADMIN])

    def require_login(self, message: str = "You need to be logged in") -> None:
        if not self.is_authenticated:
            raise Unauthorized(message)
