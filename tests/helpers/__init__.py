"""测试辅助工具"""

from .clock_helpers import ManualClock, RecordingDeliveryChannel
from .redis_helpers import FakeRedis

__all__ = [
    "ManualClock",
    "RecordingDeliveryChannel",
    "FakeRedis",
]
