from .channel import ChannelState, ClientChannel
from .leases import StreamBusyError, StreamLease, StreamLeaseRegistry
from .relay import StreamRelay
from .resumption import (
    ResumePlan,
    ResumptionCoordinator,
    build_continuation_prompt,
    new_stream_id,
)

__all__ = [
    "ChannelState",
    "ClientChannel",
    "ResumePlan",
    "ResumptionCoordinator",
    "StreamBusyError",
    "StreamLease",
    "StreamLeaseRegistry",
    "StreamRelay",
    "build_continuation_prompt",
    "new_stream_id",
]
