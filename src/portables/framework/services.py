"""Base portable service interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from portables.core.checkpoints import Checkpoint
    from portables.core.jobs import Job
    from portables.orchestration.archive import ArchiveRepository
    from portables.orchestration.cancellation import CancellationToken
    from portables.orchestration.requests import ExportRequest
    from portables.orchestration.result import JobResult


CheckpointCallback = Callable[["PortableService"], bool]


class PortableService(ABC):
    """Base class for everything that moves one category of data.

    Subclasses declare their place in the category hierarchy with class
    attributes and implement both directions. Before a service runs, the
    engine injects the shared collaborators of the run:

    - ``result``: the job's :class:`JobResult` (summary sink)
    - ``repository``: the open :class:`ArchiveRepository`
    - ``cancellation_token``: the job's :class:`CancellationToken`
    - ``checkpoint``: this category's :class:`Checkpoint` (loaded or fresh)
    - ``checkpoint_callback``: persists the checkpoint; returns ``True``
      once the time budget is spent and the service should wind down

    Example:
        @register_service
        class PagesService(PortableService):
            category = "Pages"
            parent_category = ""
            priority = 10

            def export_data(self, job, request):
                for page in pages_after(self.checkpoint.stage_data):
                    self.repository.add_items(self.category, [page])
                    self.checkpoint.stage_data = page["id"]
                    if self.check_point_stage():
                        return
                self.checkpoint.completed = True
                self.check_point_stage()
    """

    category: str = ""
    parent_category: str = ""
    priority: int = 0

    def __init__(self) -> None:
        self.result: JobResult | None = None
        self.repository: ArchiveRepository | None = None
        self.cancellation_token: CancellationToken | None = None
        self.checkpoint: Checkpoint | None = None
        self.checkpoint_callback: CheckpointCallback | None = None

    @abstractmethod
    def export_data(self, job: Job, request: ExportRequest) -> None:
        """Write this category's data into ``self.repository``."""
        ...

    @abstractmethod
    def import_data(self, job: Job, exported_request: ExportRequest) -> None:
        """Read this category's data from ``self.repository``.

        ``exported_request`` is the request the archive was exported with.
        """
        ...

    @property
    def is_root(self) -> bool:
        return not self.parent_category

    @property
    def is_cancelled(self) -> bool:
        token = self.cancellation_token
        return token is not None and token.cancelled

    def check_point_stage(self) -> bool:
        """Persist ``self.checkpoint``. Returns ``True`` when the service should stop."""
        if self.checkpoint_callback is None:
            return False
        return self.checkpoint_callback(self)

    def describe(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "parent_category": self.parent_category,
            "priority": self.priority,
            "type": f"{type(self).__module__}.{type(self).__qualname__}",
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(category={self.category!r}, "
            f"parent={self.parent_category!r}, priority={self.priority})"
        )
