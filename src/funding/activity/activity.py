"""Activity aggregate: typed records of notable things that happened.

Activities are written in the same unit of work as the change they
describe, so a rolled-back operation leaves no activity behind. Delivery to
the notifier happens afterwards (see ``dispatch.py``) and its outcome is
recorded on the activity without ever failing the original operation.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import DateTime, Dict, Identifier, String

from funding.activity.events import ActivityRecorded
from funding.domain import funding


class ActivityType(Enum):
    TICKET_CONFIRMED = "TICKET_CONFIRMED"
    SUBSCRIPTION_CANCELED = "SUBSCRIPTION_CANCELED"
    ORDER_PROCESSED = "ORDER_PROCESSED"


class DispatchStatus(Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


@funding.aggregate
class Activity:
    activity_type = String(required=True, choices=ActivityType)
    account_id = Identifier()
    user_id = Identifier()
    order_id = Identifier()
    payload = Dict()
    dispatch_status = String(choices=DispatchStatus, default=DispatchStatus.PENDING.value)
    message_id = String(max_length=255)
    failure_reason = String(max_length=1000)
    created_at = DateTime()
    dispatched_at = DateTime()

    @classmethod
    def record(
        cls,
        activity_type: ActivityType,
        account_id: str | None = None,
        user_id: str | None = None,
        order_id: str | None = None,
        payload: dict | None = None,
    ):
        now = datetime.now(UTC)
        activity = cls(
            activity_type=activity_type.value,
            account_id=account_id,
            user_id=user_id,
            order_id=order_id,
            payload=payload or {},
            created_at=now,
        )
        activity.raise_(
            ActivityRecorded(
                activity_id=str(activity.id),
                activity_type=activity_type.value,
                account_id=account_id,
                order_id=order_id,
                recorded_at=now,
            )
        )
        return activity

    def mark_sent(self, message_id: str) -> None:
        self.dispatch_status = DispatchStatus.SENT.value
        self.message_id = message_id
        self.dispatched_at = datetime.now(UTC)

    def mark_failed(self, reason: str) -> None:
        self.dispatch_status = DispatchStatus.FAILED.value
        self.failure_reason = reason
        self.dispatched_at = datetime.now(UTC)


@funding.repository(part_of=Activity)
class ActivityRepository:
    def for_order(self, order_id: str, activity_type: ActivityType | None = None) -> list[Activity]:
        filters = {"order_id": order_id}
        if activity_type:
            filters["activity_type"] = activity_type.value
        return self._dao.query.filter(**filters).all().items
