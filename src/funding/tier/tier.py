"""Tier aggregate: a priced way of contributing to an account.

A tier may fix its amount (tickets, memberships) or offer presets, and may cap
both total capacity and how many units one person can buy. ``quantity_sold``
is checked again inside the charge unit of work, so two concurrent buyers of
the last ticket cannot both commit.
"""

from enum import Enum

from protean.fields import Identifier, Integer, List, String

from funding.domain import funding
from funding.errors import ValidationFailed


class TierType(Enum):
    TIER = "TIER"
    TICKET = "TICKET"
    DONATION = "DONATION"


@funding.aggregate
class Tier:
    account_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    tier_type = String(choices=TierType, default=TierType.TIER.value)
    amount = Integer(min_value=0)
    presets = List(content_type=Integer)
    currency = String(max_length=3, default="USD")
    interval = String(max_length=10)
    max_quantity = Integer(min_value=0)
    max_quantity_per_user = Integer(min_value=0)
    quantity_sold = Integer(default=0, min_value=0)

    @property
    def has_fixed_amount(self) -> bool:
        return bool(self.amount) and not self.presets

    @property
    def available_quantity(self) -> int | None:
        if self.max_quantity is None:
            return None
        return max(self.max_quantity - (self.quantity_sold or 0), 0)

    def _unit_label(self, quantity: int) -> str:
        return "ticket" if quantity == 1 else "tickets"

    def check_quantity(self, quantity: int) -> None:
        """Reject a purchase over the per-person cap or the remaining capacity."""
        if self.max_quantity_per_user and quantity > self.max_quantity_per_user:
            raise ValidationFailed(
                f"You can buy up to {self.max_quantity_per_user} "
                f"{self._unit_label(self.max_quantity_per_user)} per person",
                field="quantity",
            )
        available = self.available_quantity
        if available is not None and quantity > available:
            raise ValidationFailed(f"No more tickets left for {self.name}", field="quantity")

    def record_sale(self, quantity: int) -> None:
        self.check_quantity(quantity)
        self.quantity_sold = (self.quantity_sold or 0) + quantity
