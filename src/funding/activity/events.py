"""Domain events for the Activity aggregate."""

from protean.fields import DateTime, Identifier, String

from funding.domain import funding


@funding.event(part_of="Activity")
class ActivityRecorded:
    """An activity was recorded and awaits dispatch to the notifier."""

    __version__ = 1

    activity_id = Identifier(required=True)
    activity_type = String(required=True)
    account_id = Identifier()
    order_id = Identifier()
    recorded_at = DateTime(required=True)
