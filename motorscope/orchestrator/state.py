"""Runtime state of one orchestrator instance."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime

from motorscope.refresh.pipeline import PassResult


@dataclass
class OrchestratorState:
    """
    Mutable state shared by the orchestrator's handlers.

    ``background_tasks`` holds passes spawned for overdue schedules; they
    are awaited on shutdown.
    """

    started_at: datetime | None = None
    initialized: bool = False
    last_pass: PassResult | None = None
    background_tasks: set[asyncio.Task] = field(default_factory=set)

    def track(self, task: asyncio.Task) -> asyncio.Task:
        self.background_tasks.add(task)
        task.add_done_callback(self.background_tasks.discard)
        return task
