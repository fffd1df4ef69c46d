"""Prepaid funds granted to an account by its host, on behalf of site admins."""

import structlog
from protean import handle
from protean.fields import Identifier, Integer, String
from protean.utils.globals import current_domain

from funding.account.account import Account
from funding.account.requester import Requester
from funding.domain import funding
from funding.errors import NotFound, Unauthorized
from funding.payment_method.payment_method import PaymentMethod

logger = structlog.get_logger(__name__)


@funding.command(part_of="PaymentMethod")
class AddFundsToAccount:
    account_id = Identifier(required=True)
    host_account_id = Identifier(required=True)
    total_amount = Integer(required=True, min_value=1)
    description = String(max_length=255)
    requested_by = Identifier()


@funding.command_handler(part_of=PaymentMethod)
class FundsHandler:
    @handle(AddFundsToAccount)
    def add_funds(self, command):
        requester = Requester.load(command.requested_by)
        if not requester.is_root:
            raise Unauthorized("Only site admins can perform this operation")

        accounts = current_domain.repository_for(Account)
        account = accounts.get_or_none(command.account_id)
        if account is None:
            raise NotFound(f"Account {command.account_id} not found")
        host = accounts.get_or_none(command.host_account_id)
        if host is None:
            raise NotFound(f"Host account {command.host_account_id} not found")

        payment_method = PaymentMethod.prepaid(
            account_id=str(account.id),
            amount=command.total_amount,
            currency=host.currency,
            name=command.description or "Host funds",
            customer_id=account.slug,
            details={"host_account_id": str(host.id)},
        )
        current_domain.repository_for(PaymentMethod).add(payment_method)

        logger.info(
            "Funds added to account",
            account_id=str(account.id),
            host_account_id=str(host.id),
            amount=command.total_amount,
            currency=host.currency,
            payment_method_id=str(payment_method.id),
        )
        return str(payment_method.id)
