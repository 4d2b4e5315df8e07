"""Schedule Manager - fires pipeline runs from a cron expression."""

import asyncio
from datetime import datetime
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from stockshorts.core.config import Settings
from stockshorts.core.errors import NoCredentialError, RunInProgressError
from stockshorts.models.schemas import RunTrigger
from stockshorts.storage.settings_repository import SettingsRepository


def validate_cron(expression: str) -> str:
    """Return the stripped expression, or raise ValueError if croniter rejects it."""
    expression = (expression or "").strip()
    if not expression or not croniter.is_valid(expression):
        raise ValueError(f"Invalid cron expression: {expression!r}")
    return expression


class ScheduleManager:
    """Runs the orchestrator whenever the configured cron expression fires."""

    def __init__(
        self,
        settings: Settings,
        logger: Any,
        repository: SettingsRepository,
        orchestrator: Any,
    ):
        """
        Initialize schedule manager.

        Args:
            settings: Application settings (timezone, default privacy)
            logger: Logger instance
            repository: Source of the persisted enable flag and cron expression
            orchestrator: PipelineOrchestrator started on each fire
        """
        self.settings = settings
        self.logger = logger
        self.repository = repository
        self.orchestrator = orchestrator
        self._task: Optional[asyncio.Task] = None

        try:
            self.tz = ZoneInfo(settings.schedule_timezone)
        except ZoneInfoNotFoundError as e:
            raise ValueError(f"Unknown timezone: {settings.schedule_timezone}. Error: {e}")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_fire_time(self, now: Optional[datetime] = None) -> datetime:
        """
        Next time the schedule fires, in the configured timezone.

        Args:
            now: Reference time; naive values are read as local to the schedule timezone
        """
        expression = validate_cron(self.repository.current.auto_schedule_cron)
        now = now or datetime.now(self.tz)
        if now.tzinfo is None:
            now = now.replace(tzinfo=self.tz)
        return croniter(expression, now.astimezone(self.tz)).get_next(datetime)

    async def fire(self) -> Optional[Any]:
        """
        Handle one schedule tick.

        Starts a run with a random topic and the default privacy when
        scheduling is enabled and a credential is present. Precondition
        failures are reported through the status line and progress channel.

        Returns:
            The started RunHandle, or None if the tick was skipped
        """
        if not self.repository.current.auto_enabled:
            self.logger.info("Scheduled run skipped: automatic runs are disabled")
            return None

        try:
            return await self.orchestrator.start(
                topic="",
                privacy=self.settings.default_privacy,
                trigger=RunTrigger.SCHEDULED,
            )
        except NoCredentialError as e:
            self.logger.warning(f"Scheduled run skipped: {e}")
            self.orchestrator.report_precondition_failure(str(e))
        except RunInProgressError as e:
            self.logger.warning(f"Scheduled run skipped: {e}")
            self.orchestrator.report_precondition_failure(str(e))
        return None

    async def _loop(self) -> None:
        while True:
            next_time = self.next_fire_time()
            delay = max(0.0, (next_time - datetime.now(self.tz)).total_seconds())
            self.logger.info(f"Next scheduled run at {next_time.isoformat()}")
            await asyncio.sleep(delay)
            await self.fire()

    def start(self) -> bool:
        """
        (Re)start the schedule loop from the current settings.

        Returns:
            True if a loop is now running
        """
        self.stop()
        current = self.repository.current
        if not current.auto_enabled:
            self.logger.info("Automatic runs disabled")
            return False
        try:
            validate_cron(current.auto_schedule_cron)
        except ValueError as e:
            self.logger.error(str(e))
            return False
        self._task = asyncio.create_task(self._loop())
        return True

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
