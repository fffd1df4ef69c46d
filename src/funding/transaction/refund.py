"""Transaction refunds, restricted to site admins.

The provider refunds the original charge unless the money never went
through it (manual payments, prepaid balances). A prepaid balance gets the
amount back. The ledger side is always a compensating pair; nothing already
recorded is changed apart from the refunded-by back-reference.
"""

import structlog
from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from funding.account.requester import Requester
from funding.domain import funding
from funding.errors import ChargeFailed, NotFound, Unauthorized
from funding.gateway import get_gateway
from funding.payment_method.payment_method import PaymentMethod
from funding.transaction.transaction import Transaction, TransactionKind

logger = structlog.get_logger(__name__)


@funding.command(part_of="Transaction")
class RefundTransaction:
    transaction_id = Identifier(required=True)
    requested_by = Identifier()


@funding.command_handler(part_of=Transaction)
class RefundHandler:
    @handle(RefundTransaction)
    def refund_transaction(self, command):
        transactions = current_domain.repository_for(Transaction)
        transaction = transactions.get_or_none(command.transaction_id)
        if transaction is None:
            raise NotFound("Transaction not found")

        requester = Requester.load(command.requested_by)
        if not requester.is_root:
            raise Unauthorized("Not a site admin")

        # Either side of a charge refunds the pair through its CREDIT
        if transaction.kind == TransactionKind.DEBIT.value and not transaction.refund_of_transaction_id:
            transaction = transactions.credit_of_group(str(transaction.group_id)) or transaction

        payment_method = None
        if transaction.payment_method_id:
            payment_method = current_domain.repository_for(PaymentMethod).get_or_none(
                str(transaction.payment_method_id)
            )

        provider_refund_id = None
        if payment_method is not None and payment_method.is_prepaid:
            payment_method.credit(transaction.amount)
            current_domain.repository_for(PaymentMethod).add(payment_method)
        elif transaction.provider_charge_id and not transaction.refunded_by_transaction_id:
            provider_refund_id = self._refund_with_provider(transaction)

        refund_credit, refund_debit = transaction.compensate(provider_refund_id)
        transactions.add(transaction)
        transactions.add(refund_credit)
        transactions.add(refund_debit)

        logger.info(
            "Transaction refunded",
            transaction_id=str(transaction.id),
            refund_transaction_id=str(refund_credit.id),
            order_id=str(transaction.order_id),
            amount=transaction.amount,
            user_id=requester.user_id,
        )
        return str(refund_credit.id)

    def _refund_with_provider(self, transaction: Transaction) -> str | None:
        try:
            result = get_gateway().create_refund(transaction.provider_charge_id, transaction.amount)
        except TimeoutError as exc:
            logger.error("Payment provider timed out on refund", transaction_id=str(transaction.id))
            raise ChargeFailed("Payment provider did not respond in time") from exc

        if not result.success:
            logger.warning(
                "Payment provider refused refund",
                transaction_id=str(transaction.id),
                reason=result.failure_reason,
            )
            raise ChargeFailed(result.failure_reason or "Refund failed")
        return result.provider_refund_id
