"""
Download tracking: the atomic counter, the audit log, and a process-local
watch over observed counter values.

The counter increment and the audit insert are two independent writes. If the
process dies between them the counter and the log diverge for good; this gap
is accepted rather than covered by a cross-document transaction.
"""

import asyncio
from typing import Dict, List, Optional, Tuple

from app.core.config import config
from app.core.errors import ErrorResponse, TransientStoreError, ValidationError
from app.core.logger import logger
from app.models.tool import DownloadChannel, DownloadEvent, Tool
from app.repositories.download_log import DownloadLogRepository
from app.repositories.tool import ToolRepository
from app.schemas.tool import DownloadResponse


class DownloadCounterWatch:
    """
    Highest download count observed per tool in this process.

    Increment responses can come back out of order, so only increases are
    recorded. Each waiter is resolved exactly once.
    """

    def __init__(self):
        self._counts: Dict[str, int] = {}
        self._waiters: Dict[str, List[Tuple[int, asyncio.Future]]] = {}

    def latest(self, tool_id: str) -> Optional[int]:
        return self._counts.get(tool_id)

    def observe(self, tool_id: str, count: int) -> None:
        if count <= self._counts.get(tool_id, -1):
            return
        self._counts[tool_id] = count

        pending = []
        for target, future in self._waiters.get(tool_id, []):
            if future.done():
                continue
            if count >= target:
                future.set_result(count)
            else:
                pending.append((target, future))
        if pending:
            self._waiters[tool_id] = pending
        else:
            self._waiters.pop(tool_id, None)

    async def wait_for(self, tool_id: str, target: int, timeout: Optional[float] = None) -> int:
        """Wait until the observed count for a tool reaches target"""
        current = self._counts.get(tool_id)
        if current is not None and current >= target:
            return current

        future = asyncio.get_running_loop().create_future()
        self._waiters.setdefault(tool_id, []).append((target, future))
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            waiters = self._waiters.get(tool_id)
            if waiters:
                self._waiters[tool_id] = [w for w in waiters if w[1] is not future]
                if not self._waiters[tool_id]:
                    del self._waiters[tool_id]


class DownloadService:
    """Service layer for download counting and logging"""

    def __init__(
        self,
        tool_repository: ToolRepository,
        download_log_repository: DownloadLogRepository,
        counter_watch: Optional[DownloadCounterWatch] = None,
    ):
        self.tool_repository = tool_repository
        self.download_log_repository = download_log_repository
        self.counter_watch = counter_watch

    async def increment_download_count(self, tool_id: str) -> int:
        """
        Increment the tool's download counter, retrying transient failures.

        Backs off exponentially between attempts. NotFoundError is raised
        immediately; the last TransientStoreError is raised once attempts run
        out, with the counter left unincremented.
        """
        max_attempts = config.download_increment_max_attempts
        delay = config.download_increment_backoff

        for attempt in range(1, max_attempts + 1):
            try:
                count = await self.tool_repository.increment_downloads(tool_id)
                break
            except TransientStoreError:
                if attempt == max_attempts:
                    logger.error(
                        f"Giving up on download count increment for tool {tool_id}",
                        metadata={"event": "download_increment_failed", "tool_id": tool_id, "attempts": attempt}
                    )
                    raise
                logger.warning(
                    f"Download count increment failed, retrying in {delay:.2f}s",
                    metadata={"event": "download_increment_retry", "tool_id": tool_id, "attempt": attempt}
                )
                await asyncio.sleep(delay)
                delay *= 2

        if self.counter_watch is not None:
            self.counter_watch.observe(tool_id, count)
        return count

    async def record_download(
        self,
        tool_id: str,
        user_id: Optional[str],
        channel: DownloadChannel,
    ) -> DownloadEvent:
        """Append one audit row; does not touch the counter"""
        event = await self.download_log_repository.insert(tool_id, user_id, channel)
        logger.debug(
            f"Recorded download of tool {tool_id}",
            metadata={"event": "download_recorded", "tool_id": tool_id, "channel": channel.value}
        )
        return event

    def resolve_download(self, tool: Tool, channel: DownloadChannel) -> DownloadResponse:
        """Link for the requested channel; no store access"""
        url = tool.url_for(channel)
        if not url:
            raise ValidationError(f"Tool has no {channel.value} download", field="channel")
        return DownloadResponse(tool_id=tool.id, channel=channel, url=url)

    async def track_download(
        self,
        tool_id: str,
        user_id: Optional[str],
        channel: DownloadChannel,
    ) -> Optional[int]:
        """
        Count and log a confirmed download, after the link has been handed out.

        Both writes are best effort and run side by side; a failure in either
        is logged and the other still goes through. Returns the new counter
        value, or None when the increment failed.
        """
        count_result, log_result = await asyncio.gather(
            self.increment_download_count(tool_id),
            self.record_download(tool_id, user_id, channel),
            return_exceptions=True,
        )

        for name, result in (("increment", count_result), ("log", log_result)):
            if isinstance(result, ErrorResponse):
                logger.warning(
                    f"Download tracking {name} failed for tool {tool_id}: {result.message}",
                    metadata={"event": "download_tracking_failed", "tool_id": tool_id, "write": name}
                )
            elif isinstance(result, BaseException):
                raise result

        return None if isinstance(count_result, BaseException) else count_result
