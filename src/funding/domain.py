"""Funding bounded context: Orders, Subscriptions and Payments.

Handles funding orders (one-off and recurring), the subscriptions that back
recurring orders, payment instruments, the transaction ledger and refunds.
Accounts, users, memberships and tiers live here too since every order rule
depends on them.
"""

import structlog
from protean.domain import Domain

from funding.utils.logging import configure_logging

configure_logging()

logger = structlog.get_logger(__name__)

# Domain Composition Root
funding = Domain(name="funding")
