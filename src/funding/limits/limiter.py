"""Order rate limits: caps order attempts per account, email and IP per hour.

Every attempt is counted against each of the requester's keys, even when
it is rejected and even when it later fails validation, and every attempt
pushes the key's one-hour expiry forward. An attempt is rejected when a key's
count had already reached its threshold before this attempt: with a
threshold of N, attempts 1..N pass and every later attempt within the window
is rejected.
"""

import hashlib

import structlog
from protean.utils.globals import current_domain

from funding.account.requester import Requester
from funding.account.user import normalize_email
from funding.errors import LimitExceeded
from funding.limits import get_counter_store
from funding.order.request import OrderRequest, RequestContext

logger = structlog.get_logger(__name__)

ONE_HOUR = 60 * 60


def _digest(value: str) -> str:
    return hashlib.md5(value.encode("utf-8"), usedforsecurity=False).hexdigest()


def order_limit_keys(request: OrderRequest, requester: Requester, context: RequestContext) -> list[tuple[str, int]]:
    """The (key, threshold) pairs that apply to this attempt."""
    limits = current_domain.config["custom"].get("order_limits", {})
    target = request.destination_key
    keys = []

    if requester.is_authenticated:
        account_key = f"order_limit_on_account_{requester.account_id}"
        keys.append((account_key, limits.get("per_account")))
        if target:
            keys.append((f"{account_key}_and_collective_{target}", limits.get("per_account_for_collective")))
    else:
        if request.user_email:
            email_key = f"order_limit_on_email_{_digest(normalize_email(request.user_email))}"
            keys.append((email_key, limits.get("per_email")))
            if target:
                keys.append((f"{email_key}_and_collective_{target}", limits.get("per_email_for_collective")))
        if context.ip:
            keys.append((f"order_limit_on_ip_{_digest(context.ip)}", limits.get("per_ip")))

    return [(key, threshold) for key, threshold in keys if threshold]


def check_order_limits(request: OrderRequest, requester: Requester, context: RequestContext) -> None:
    if not current_domain.config["custom"].get("enforce_order_limits", True):
        return

    store = get_counter_store()
    reached = []
    for key, threshold in order_limit_keys(request, requester, context):
        count = store.increment(key, ONE_HOUR)
        if count - 1 >= threshold:
            reached.append(key)

    if reached:
        logger.warning(
            "Order limit reached",
            keys=reached,
            user_id=requester.user_id,
            ip=context.ip,
        )
        raise LimitExceeded(reached)
