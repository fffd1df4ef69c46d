"""User aggregate: a person who can log in and act on behalf of accounts."""

from datetime import UTC, datetime

from protean.fields import Boolean, DateTime, Identifier, String

from funding.domain import funding


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


@funding.aggregate
class User:
    email = String(required=True, max_length=254, unique=True)
    name = String(max_length=255)
    account_id = Identifier(required=True)
    is_root = Boolean(default=False)
    created_at = DateTime()

    @classmethod
    def register(cls, email: str, account_id: str, name: str | None = None, is_root: bool = False):
        return cls(
            email=normalize_email(email),
            name=name,
            account_id=account_id,
            is_root=is_root,
            created_at=datetime.now(UTC),
        )


@funding.repository(part_of=User)
class UserRepository:
    def find_by_email(self, email: str) -> User | None:
        found = self._dao.query.filter(email=normalize_email(email)).all().items
        return found[0] if found else None
