"""Sprint registry.

The orchestrator depends on the SprintStore protocol only; the in-memory
implementation keeps sprints for the lifetime of the process. ``get`` may
return a copy: the orchestrator re-reads before every write that follows an
await and never relies on a shared instance.
"""

from typing import Protocol, runtime_checkable

from foundation_sprint.domain.sprint import Sprint


@runtime_checkable
class SprintStore(Protocol):
    async def get(self, sprint_id: str) -> Sprint | None:
        """Return the sprint, or None for an unknown id."""
        ...

    async def put(self, sprint: Sprint) -> None:
        """Insert or replace the sprint under sprint.id."""
        ...


class InMemorySprintStore:
    """Process-local SprintStore; nothing is ever evicted."""

    def __init__(self) -> None:
        self._sprints: dict[str, Sprint] = {}

    async def get(self, sprint_id: str) -> Sprint | None:
        return self._sprints.get(sprint_id)

    async def put(self, sprint: Sprint) -> None:
        self._sprints[sprint.id] = sprint

    def __len__(self) -> int:
        return len(self._sprints)

    def __contains__(self, sprint_id: object) -> bool:
        return sprint_id in self._sprints
