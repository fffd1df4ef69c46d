"""Activity dispatch: hands recorded activities to the notifier.

Reacts to ActivityRecorded events. Delivery failures are logged and
recorded on the activity; they never propagate to the operation that
recorded it.
"""

import structlog
from protean import handle
from protean.utils.globals import current_domain

from funding.activity.activity import Activity
from funding.activity.events import ActivityRecorded
from funding.domain import funding
from funding.notifier import get_notifier

logger = structlog.get_logger(__name__)


@funding.event_handler(part_of=Activity)
class ActivityDispatcher:
    @handle(ActivityRecorded)
    def on_activity_recorded(self, event: ActivityRecorded) -> None:
        repo = current_domain.repository_for(Activity)
        try:
            activity = repo.get(event.activity_id)
        except Exception:
            logger.error("Failed to load activity for dispatch", activity_id=str(event.activity_id))
            return

        try:
            message_id = get_notifier().notify(
                activity.activity_type,
                {
                    "activity_id": str(activity.id),
                    "account_id": activity.account_id,
                    "user_id": activity.user_id,
                    "order_id": activity.order_id,
                    **(activity.payload or {}),
                },
            )
            activity.mark_sent(message_id)
        except Exception as e:
            activity.mark_failed(str(e))
            logger.error(
                "Activity dispatch failed",
                activity_id=str(activity.id),
                activity_type=activity.activity_type,
                error=str(e),
            )

        repo.add(activity)
