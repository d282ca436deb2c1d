"""Ordered, fire-and-forget saves per user identity."""

import asyncio
import logging
from dataclasses import dataclass, field

from calorie_wise.services.persistence import PersistenceGateway

_logger = logging.getLogger(__name__)


@dataclass
class SaveQueue:
    """Runs save-merges for one identity strictly one after another.

    Callers never wait on a save; failures are logged and dropped. The remote
    document is last-write-wins across identities and devices.
    """

    gateway: PersistenceGateway
    _tails: dict[str, asyncio.Task[None]] = field(default_factory=dict, init=False)

    def submit(self, user_id: str, fields: dict[str, object]) -> asyncio.Task[None]:
        """Schedule a save after any pending save for the same identity."""
        previous = self._tails.get(user_id)
        task = asyncio.get_running_loop().create_task(
            self._save_after(previous, user_id, fields)
        )
        self._tails[user_id] = task
        task.add_done_callback(lambda done: self._forget(user_id, done))
        return task

    async def flush(self) -> None:
        """Wait until every scheduled save has finished."""
        while self._tails:
            await asyncio.gather(*self._tails.values(), return_exceptions=True)

    async def _save_after(
        self,
        previous: asyncio.Task[None] | None,
        user_id: str,
        fields: dict[str, object],
    ) -> None:
        if previous is not None:
            await asyncio.gather(previous, return_exceptions=True)
        try:
            await asyncio.to_thread(self.gateway.save_merge, user_id, fields)
        except Exception:
            _logger.exception(
                "Failed to save %s for user %s", ", ".join(sorted(fields)), user_id
            )

    def _forget(self, user_id: str, task: asyncio.Task[None]) -> None:
        if self._tails.get(user_id) is task:
            del self._tails[user_id]
