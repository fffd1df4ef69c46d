"""Transaction aggregate: append-only records of money movement.

Every charge produces a pair sharing one ``group_id``: a CREDIT on the
receiving account and a DEBIT on the paying account. A refund never edits
either row; it appends a compensating pair pointing back through
``refund_of_transaction_id``. The original CREDIT only gains the
``refunded_by_transaction_id`` back-reference, which makes a second refund
of the same transaction impossible.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from protean.fields import DateTime, Identifier, Integer, String

from funding.domain import funding
from funding.errors import ValidationFailed


class TransactionKind(Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


@dataclass(frozen=True)
class Fees:
    host_fee_percent: int = 0
    platform_fee_percent: int = 0
    payment_processor_fee: int = 0

    def split(self, amount: int) -> tuple[int, int, int]:
        """Host fee, platform fee and processor fee for ``amount``, in minor units."""
        host_fee = round(amount * (self.host_fee_percent or 0) / 100)
        platform_fee = round(amount * (self.platform_fee_percent or 0) / 100)
        return host_fee, platform_fee, self.payment_processor_fee or 0


@funding.aggregate
class Transaction:
    kind = String(required=True, choices=TransactionKind)
    account_id = Identifier(required=True)
    from_account_id = Identifier(required=True)
    order_id = Identifier(required=True)
    payment_method_id = Identifier()
    amount = Integer(required=True)
    currency = String(max_length=3, default="USD")
    host_fee = Integer(default=0)
    platform_fee = Integer(default=0)
    payment_processor_fee = Integer(default=0)
    net_amount = Integer(required=True)
    group_id = Identifier(required=True)
    provider_charge_id = String(max_length=255)
    refund_of_transaction_id = Identifier()
    refunded_by_transaction_id = Identifier()
    description = String(max_length=500)
    created_at = DateTime()

    @classmethod
    def record_charge(
        cls,
        order,
        amount: int,
        fees: Fees,
        payment_method_id: str | None = None,
        provider_charge_id: str | None = None,
        from_account_id: str | None = None,
        description: str | None = None,
    ) -> tuple["Transaction", "Transaction"]:
        """Build the CREDIT/DEBIT pair for a successful charge of ``order``."""
        now = datetime.now(UTC)
        group_id = str(uuid4())
        payer = from_account_id or str(order.from_account_id)
        host_fee, platform_fee, processor_fee = fees.split(amount)
        net_amount = amount - host_fee - platform_fee - processor_fee
        common = {
            "order_id": str(order.id),
            "payment_method_id": payment_method_id,
            "currency": order.currency,
            "host_fee": host_fee,
            "platform_fee": platform_fee,
            "payment_processor_fee": processor_fee,
            "group_id": group_id,
            "provider_charge_id": provider_charge_id,
            "description": description or order.description,
            "created_at": now,
        }
        credit = cls(
            kind=TransactionKind.CREDIT.value,
            account_id=str(order.account_id),
            from_account_id=payer,
            amount=amount,
            net_amount=net_amount,
            **common,
        )
        debit = cls(
            kind=TransactionKind.DEBIT.value,
            account_id=payer,
            from_account_id=str(order.account_id),
            amount=-net_amount,
            net_amount=-amount,
            **common,
        )
        return credit, debit

    def compensate(self, provider_refund_id: str | None = None) -> tuple["Transaction", "Transaction"]:
        """Build the refund pair reversing this CREDIT, and mark it refunded."""
        if self.kind != TransactionKind.CREDIT.value:
            raise ValidationFailed("Only credit transactions can be refunded", field="transaction")
        if self.refund_of_transaction_id:
            raise ValidationFailed("A refund cannot be refunded", field="transaction")
        if self.refunded_by_transaction_id:
            raise ValidationFailed("Transaction has already been refunded", field="transaction")

        now = datetime.now(UTC)
        group_id = str(uuid4())
        common = {
            "order_id": str(self.order_id),
            "payment_method_id": self.payment_method_id,
            "currency": self.currency,
            "host_fee": -(self.host_fee or 0),
            "platform_fee": -(self.platform_fee or 0),
            "payment_processor_fee": -(self.payment_processor_fee or 0),
            "group_id": group_id,
            "provider_charge_id": provider_refund_id,
            "refund_of_transaction_id": str(self.id),
            "description": f"Refund of \"{self.description or ''}\"",
            "created_at": now,
        }
        # The receiving account gives the net back; the payer gets the gross back
        refund_debit = Transaction(
            kind=TransactionKind.DEBIT.value,
            account_id=str(self.account_id),
            from_account_id=str(self.from_account_id),
            amount=-self.net_amount,
            net_amount=-self.amount,
            **common,
        )
        refund_credit = Transaction(
            kind=TransactionKind.CREDIT.value,
            account_id=str(self.from_account_id),
            from_account_id=str(self.account_id),
            amount=self.amount,
            net_amount=self.net_amount,
            **common,
        )
        self.refunded_by_transaction_id = str(refund_credit.id)
        return refund_credit, refund_debit


@funding.repository(part_of=Transaction)
class TransactionRepository:
    def for_order(self, order_id: str) -> list[Transaction]:
        return self._dao.query.filter(order_id=order_id).all().items

    def credit_of_group(self, group_id: str) -> Transaction | None:
        found = self._dao.query.filter(group_id=group_id, kind=TransactionKind.CREDIT.value).all().items
        return found[0] if found else None
