"""
Services for AMP Tracker.

Services:
    - DayRecordStore: Field-scoped persistence of day records
    - TemplateStore: Role-scoped, versioned template sets
    - BlockOverrideStore / BlockCustomizer: Per-user time-block overrides
    - CompletionRecorder: Write side (completions, notes, to-dos, wake time)
    - DayHydrator: Read side (template + overrides + day record merge)
    - Day-view cache helpers backed by RedisService
"""

from .block_overrides import BlockCustomizer, BlockOverride, BlockOverrideStore
from .completion_recorder import CompletionRecorder
from .day_cache import (
    get_cached_day_view,
    get_day_generation,
    invalidate_day_view,
    invalidate_user_days,
    set_cached_day_view,
)
from .day_store import DayRecordStore, DaySeed
from .hydration import DayHydrator, MergedDayView, TodoItemView, merge_day
from .redis_service import RedisService, get_redis_service
from .template_store import TemplateStore

__all__ = [
    "BlockCustomizer",
    "BlockOverride",
    "BlockOverrideStore",
    "CompletionRecorder",
    "DayHydrator",
    "DayRecordStore",
    "DaySeed",
    "MergedDayView",
    "RedisService",
    "TemplateStore",
    "TodoItemView",
    "get_cached_day_view",
    "get_day_generation",
    "get_redis_service",
    "invalidate_day_view",
    "invalidate_user_days",
    "merge_day",
    "set_cached_day_view",
]
