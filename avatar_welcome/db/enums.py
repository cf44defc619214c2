from enum import Enum


class VideoStatusEnum(str, Enum):
    pending = "pending"
    generating = "generating"
    completed = "completed"
    sending = "sending"
    sent = "sent"
    delivered = "delivered"
    viewed = "viewed"
    failed = "failed"


# Forward-only lifecycle; delivered/viewed are set by read receipts outside this service.
VIDEO_TRANSITIONS: dict[VideoStatusEnum, frozenset[VideoStatusEnum]] = {
    VideoStatusEnum.pending: frozenset({VideoStatusEnum.generating, VideoStatusEnum.failed}),
    VideoStatusEnum.generating: frozenset({VideoStatusEnum.completed, VideoStatusEnum.failed}),
    VideoStatusEnum.completed: frozenset({VideoStatusEnum.sending, VideoStatusEnum.failed}),
    VideoStatusEnum.sending: frozenset({VideoStatusEnum.sent, VideoStatusEnum.failed}),
    VideoStatusEnum.sent: frozenset({VideoStatusEnum.delivered}),
    VideoStatusEnum.delivered: frozenset({VideoStatusEnum.viewed}),
    VideoStatusEnum.viewed: frozenset(),
    VideoStatusEnum.failed: frozenset(),
}

IN_FLIGHT_STATUSES = frozenset({VideoStatusEnum.pending, VideoStatusEnum.generating})
AWAITING_DELIVERY_STATUSES = frozenset({VideoStatusEnum.completed, VideoStatusEnum.sending})
DELIVERED_STATUSES = frozenset({VideoStatusEnum.sent, VideoStatusEnum.delivered, VideoStatusEnum.viewed})


def can_transition(current: VideoStatusEnum | str, target: VideoStatusEnum | str) -> bool:
    return VideoStatusEnum(target) in VIDEO_TRANSITIONS[VideoStatusEnum(current)]


def sources_for(target: VideoStatusEnum) -> frozenset[VideoStatusEnum]:
    return frozenset(source for source, targets in VIDEO_TRANSITIONS.items() if target in targets)
