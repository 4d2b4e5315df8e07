"""Explicit process-wide state shared by pipeline runs."""

from dataclasses import dataclass, field
from typing import Any, Optional

from stockshorts.core.config import Settings
from stockshorts.core.logging_config import get_logger
from stockshorts.models.schemas import RunRecord
from stockshorts.services.composition_engine import BackgroundAudioCache
from stockshorts.services.credential_store import CredentialStore
from stockshorts.services.progress_broadcaster import ProgressBroadcaster
from stockshorts.storage.settings_repository import SettingsRepository

INITIAL_STATUS = "No run has been started yet."


@dataclass
class PipelineContext:
    """
    State owned by the orchestrator and injected into every stage.

    Holds what would otherwise be module globals: the status line, the
    credential, the persisted settings and the background audio cache.
    """

    settings: Settings
    logger: Any
    broadcaster: ProgressBroadcaster
    credential_store: CredentialStore
    settings_repository: SettingsRepository
    audio_cache: BackgroundAudioCache
    status_line: str = INITIAL_STATUS
    last_run: Optional[RunRecord] = None
    active_runs: dict[str, RunRecord] = field(default_factory=dict)


def build_context(settings: Settings, logger: Optional[Any] = None) -> PipelineContext:
    """Wire a PipelineContext with the default collaborators."""
    logger = logger or get_logger("stockshorts")
    repository = SettingsRepository(settings, logger)
    repository.load()
    return PipelineContext(
        settings=settings,
        logger=logger,
        broadcaster=ProgressBroadcaster(logger),
        credential_store=CredentialStore(settings, logger),
        settings_repository=repository,
        audio_cache=BackgroundAudioCache(settings, logger),
    )
