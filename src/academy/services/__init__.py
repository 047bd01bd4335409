"""Services wiring the primary store, the sequencer and the cache layer."""

from academy.services.base import CacheLayer, invalidate_after_commit
from academy.services.contents import CourseContentService, OrderedResource
from academy.services.users import UserService

__all__ = [
    "CacheLayer",
    "CourseContentService",
    "OrderedResource",
    "UserService",
    "invalidate_after_commit",
]
