"""Academy core: cache synchronization and dense ordering for a course platform.

Subpackages:
- cache: cache-aside record and collection caches plus pattern invalidation
- ordering: the sequencer keeping sibling indices dense (1..N)
- persistence: SQLAlchemy models and primary-store repositories
- services: user and course-content operations wiring the above together
"""

__version__ = "0.1.0"
