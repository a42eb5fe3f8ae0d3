"""Application bootstrap assembly for storage, sync and playback services."""
from __future__ import annotations

from dataclasses import dataclass

from ..config import AppConfig
from ..integrations.platform_api import PlatformApiClient
from ..integrations.vlc_media import build_vlc_media_factory
from ..storage.key_value import build_key_value_store
from ..storage.progress_repository import ProgressRepository
from .playback_engine import PlaybackEngine
from .ports import KeyValueStore, MediaFactory, ProgressSyncClient
from .progress_store import ProgressStore
from .sync_service import ProgressSyncService


@dataclass(frozen=True)
class AppServices:
    key_value_store: KeyValueStore
    repository: ProgressRepository
    progress_store: ProgressStore
    api_client: PlatformApiClient | None
    sync_service: ProgressSyncService
    engine: PlaybackEngine

    def shutdown(self) -> None:
        self.engine.cleanup()
        self.sync_service.shutdown(wait=True)


def initialize_app_services(
    *,
    config: AppConfig,
    logger,
    media_factory: MediaFactory | None = None,
    key_value_store: KeyValueStore | None = None,
    api_client: PlatformApiClient | None = None,
    sync_client: ProgressSyncClient | None = None,
) -> AppServices:
    """Construct the service graph; callers own the returned engine."""
    store = key_value_store or build_key_value_store(
        config.storage_backend,
        config.storage_path,
        logger_instance=logger,
    )
    logger.info(
        "Progress storage: backend=%s path=%s",
        config.storage_backend,
        config.storage_path if config.storage_backend != "memory" else "-",
    )
    repository = ProgressRepository(store, logger_instance=logger)
    progress_store = ProgressStore(
        repository,
        logger,
        recently_played_limit=config.recently_played_limit,
        continue_listening_limit=config.continue_listening_limit,
        recently_played_view_limit=config.recently_played_view_limit,
    )
    if api_client is None and config.api_url:
        api_client = PlatformApiClient(config.api_url, timeout_seconds=config.api_timeout_seconds)
    resolved_sync_client = sync_client or api_client
    if resolved_sync_client is None:
        logger.warning("API_URL is empty; progress sync is disabled.")
    sync_service = ProgressSyncService(
        resolved_sync_client,
        repository.load_user_token,
        logger,
        interval_seconds=config.sync_interval_seconds,
        enabled=config.sync_enabled and resolved_sync_client is not None,
    )
    engine = PlaybackEngine(
        media_factory or build_vlc_media_factory(logger_instance=logger),
        progress_store,
        logger,
        sync_service=sync_service,
        save_every_seconds=config.progress_save_every_seconds,
    )
    return AppServices(
        key_value_store=store,
        repository=repository,
        progress_store=progress_store,
        api_client=api_client,
        sync_service=sync_service,
        engine=engine,
    )
