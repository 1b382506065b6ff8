"""Progress sink protocol — receives migration progress snapshots."""
from typing import Any, Protocol

from ..models import MigrationProgress


class ProgressSink(Protocol):
    """Callable invoked with every progress snapshot; may return an awaitable."""

    def __call__(self, progress: MigrationProgress) -> Any: ...
