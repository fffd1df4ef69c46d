"""Account aggregate: users' own profiles, organizations, collectives and events.

Every party in a funding order is an Account: the source paying for the
order, the destination receiving funds, and the host holding money on behalf
of a collective. Pledge targets (not yet onboarded projects known only by
their website or GitHub handle) are created inactive.
"""

import re
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean.fields import Boolean, DateTime, Identifier, String

from funding.domain import funding


class AccountType(Enum):
    USER = "USER"
    ORGANIZATION = "ORGANIZATION"
    COLLECTIVE = "COLLECTIVE"
    EVENT = "EVENT"


def slugify(name: str) -> str:
    base = re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-") or "account"
    return f"{base[:40]}-{uuid4().hex[:6]}"


@funding.aggregate
class Account:
    name = String(required=True, max_length=255)
    slug = String(required=True, max_length=64, unique=True)
    account_type = String(choices=AccountType, default=AccountType.USER.value)
    currency = String(max_length=3, default="USD")
    is_active = Boolean(default=True)
    host_account_id = Identifier()
    website = String(max_length=255)
    github_handle = String(max_length=255)
    created_by_user_id = Identifier()
    created_at = DateTime()

    @classmethod
    def open(
        cls,
        name: str,
        account_type: AccountType = AccountType.USER,
        currency: str = "USD",
        host_account_id: str | None = None,
        created_by_user_id: str | None = None,
        is_active: bool = True,
        website: str | None = None,
        github_handle: str | None = None,
    ):
        return cls(
            name=name,
            slug=slugify(name),
            account_type=account_type.value,
            currency=currency,
            host_account_id=host_account_id,
            created_by_user_id=created_by_user_id,
            is_active=is_active,
            website=website,
            github_handle=github_handle,
            created_at=datetime.now(UTC),
        )


@funding.repository(part_of=Account)
class AccountRepository:
    def find_by_reference(self, website: str | None = None, github_handle: str | None = None) -> Account | None:
        """Find a pledge target by its website or GitHub handle."""
        if website:
            found = self._dao.query.filter(website=website).all().items
            if found:
                return found[0]
        if github_handle:
            found = self._dao.query.filter(github_handle=github_handle).all().items
            if found:
                return found[0]
        return None
