"""
Retention Maintenance Scheduler.

Periodically removes conversations older than the conversation retention
window and files older than the file retention window.

Environment Variables:
    CONVERSATION_RETENTION_DAYS: Conversation age limit (default: 30)
    FILE_RETENTION_DAYS: File age limit (default: 7)
    MAINTENANCE_INTERVAL_HOURS: Hours between sweeps (default: 24)
    MAINTENANCE_ON_STARTUP: Sweep once right after startup (default: false)
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from ..domain.ports import IConversationStore, IFileStore

logger = logging.getLogger(__name__)


# ============================================
# Configuration
# ============================================


class MaintenanceConfig:
    """Configuration loaded from environment variables."""

    def __init__(self):
        self.conversation_retention_days = int(os.getenv("CONVERSATION_RETENTION_DAYS", "30"))
        self.file_retention_days = int(os.getenv("FILE_RETENTION_DAYS", "7"))
        self.interval_hours = float(os.getenv("MAINTENANCE_INTERVAL_HOURS", "24"))
        self.run_on_startup = os.getenv("MAINTENANCE_ON_STARTUP", "false").lower() == "true"

    @property
    def interval_seconds(self) -> float:
        return self.interval_hours * 3600

    def __repr__(self):
        return (
            f"MaintenanceConfig("
            f"conversations={self.conversation_retention_days}d, "
            f"files={self.file_retention_days}d, "
            f"interval={self.interval_hours}h, "
            f"startup={self.run_on_startup})"
        )


# ============================================
# State
# ============================================


@dataclass(frozen=True)
class SweepResult:
    """What one sweep removed."""

    started_at: datetime
    conversations_removed: list[str] = field(default_factory=list)
    files_removed: list[str] = field(default_factory=list)


class MaintenanceState:
    """Shared state for health reporting."""

    def __init__(self):
        self.last_run_at: Optional[datetime] = None
        self.last_run_success: bool = False
        self.total_runs: int = 0
        self.failed_runs: int = 0
        self.last_conversations_removed: int = 0
        self.last_files_removed: int = 0
        self.started_at: datetime = datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastRunAt": self.last_run_at.isoformat() if self.last_run_at else None,
            "lastRunSuccess": self.last_run_success,
            "totalRuns": self.total_runs,
            "failedRuns": self.failed_runs,
            "lastConversationsRemoved": self.last_conversations_removed,
            "lastFilesRemoved": self.last_files_removed,
        }


# ============================================
# Scheduler
# ============================================


class MaintenanceScheduler:
    """Runs retention sweeps on a fixed interval.

    Usage:
        scheduler = MaintenanceScheduler(conversations, files)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        conversations: IConversationStore,
        files: Optional[IFileStore] = None,
        config: Optional[MaintenanceConfig] = None,
    ):
        self.conversations = conversations
        self.files = files
        self.config = config or MaintenanceConfig()
        self.state = MaintenanceState()
        self._shutdown_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    async def run_once(self, now: Optional[datetime] = None) -> SweepResult:
        """Run a single sweep.

        Args:
            now: Reference time for the cutoffs (defaults to the current time)

        Returns:
            SweepResult listing the removed conversation and file ids
        """
        now = now or datetime.now(UTC)
        conversation_cutoff = now - timedelta(days=self.config.conversation_retention_days)
        file_cutoff = now - timedelta(days=self.config.file_retention_days)

        try:
            removed_conversations = await self.conversations.evict_older_than(conversation_cutoff)
            removed_files: list[str] = []
            if self.files is not None:
                removed_files = await self.files.evict_older_than(file_cutoff)
        except Exception:
            self.state.total_runs += 1
            self.state.failed_runs += 1
            self.state.last_run_at = now
            self.state.last_run_success = False
            raise

        self.state.total_runs += 1
        self.state.last_run_at = now
        self.state.last_run_success = True
        self.state.last_conversations_removed = len(removed_conversations)
        self.state.last_files_removed = len(removed_files)

        logger.info(
            f"Maintenance sweep complete: removed {len(removed_conversations)} conversations "
            f"and {len(removed_files)} files"
        )

        return SweepResult(
            started_at=now,
            conversations_removed=removed_conversations,
            files_removed=removed_files,
        )

    async def _safe_run(self) -> None:
        try:
            await self.run_once()
        except Exception as e:
            logger.exception(f"Maintenance sweep failed: {e}")

    async def run_forever(self, shutdown_event: asyncio.Event) -> None:
        """Sweep every interval until shutdown_event is set."""
        interval_seconds = self.config.interval_seconds

        if self.config.run_on_startup:
            logger.info("Running maintenance sweep on startup")
            await self._safe_run()

        next_run = datetime.now(UTC) + timedelta(seconds=interval_seconds)
        logger.info(f"Next maintenance sweep at {next_run.isoformat()}")

        while not shutdown_event.is_set():
            try:
                # Wait for either the interval or shutdown
                await asyncio.wait_for(shutdown_event.wait(), timeout=interval_seconds)
                break
            except asyncio.TimeoutError:
                pass

            await self._safe_run()

            next_run = datetime.now(UTC) + timedelta(seconds=interval_seconds)
            logger.info(f"Next maintenance sweep at {next_run.isoformat()}")

        logger.info("Maintenance scheduler stopped")

    def start(self) -> asyncio.Task:
        """Start the sweep loop as a background task."""
        if self._task is None or self._task.done():
            self._shutdown_event.clear()
            self._task = asyncio.create_task(self.run_forever(self._shutdown_event))
            logger.info(f"Maintenance scheduler started: {self.config!r}")
        return self._task

    async def stop(self) -> None:
        """Signal the loop to exit and wait for it."""
        self._shutdown_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
