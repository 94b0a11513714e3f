"""
FastAPI dependency injection for Fuxi.
"""
import os
from functools import lru_cache
from typing import Optional
import logging

from fastapi import HTTPException, status
from starlette.requests import HTTPConnection

from ..config.settings import ConfigManager, AppConfig, DEFAULT_CONFIG_PATH
from ..coordinator import SessionCoordinator
from ..errors import (
    FuxiError, InvalidReaction, InvalidSettings, RecommendationUnavailable, SessionFull, SessionNotFound
)
from ..persistence.feature_store import FeatureStore
from ..utils.logging import StructuredLogger


logger = logging.getLogger(__name__)


class AppState:
    """Application state: configuration, logger and the session coordinator."""

    def __init__(self, config: Optional[AppConfig] = None,
                 coordinator: Optional[SessionCoordinator] = None):
        self.config_manager = ConfigManager()
        self.config: Optional[AppConfig] = config
        self.logger: Optional[StructuredLogger] = None
        self.coordinator: Optional[SessionCoordinator] = coordinator

    def initialize(self, config_path: Optional[str] = None) -> None:
        """Load configuration and the catalog, then build the coordinator."""
        if self.coordinator is not None:
            if self.config is None:
                self.config = self.coordinator.config
            return

        try:
            if self.config is None:
                self.config = self.config_manager.load(
                    config_path or os.getenv('FUXI_CONFIG', DEFAULT_CONFIG_PATH)
                )
            self.logger = StructuredLogger(
                "fuxi.api",
                level=self.config.logging.level,
                fmt=self.config.logging.format
            )
            features = self._load_catalog()
            self.coordinator = SessionCoordinator(self.config, features)
            self.logger.info("Fuxi API initialized", catalog_size=len(features))

        except Exception as e:
            logger.error(f"Failed to initialize Fuxi: {e}")
            raise

    def _load_catalog(self) -> FeatureStore:
        path = self.config.catalog.path
        if not path or not os.path.exists(path):
            self.logger.warning("Catalog not found, starting with an empty catalog", path=path)
            return FeatureStore()
        return FeatureStore.load(path)


@lru_cache()
def get_app_state() -> AppState:
    """Get or create the default application state."""
    state = AppState()
    state.initialize()
    return state


def get_coordinator(connection: HTTPConnection) -> SessionCoordinator:
    """Dependency for getting the session coordinator of the running app."""
    state: AppState = connection.app.state.fuxi
    if state.coordinator is None:
        raise RuntimeError("Session coordinator not initialized")
    return state.coordinator


def get_config(connection: HTTPConnection) -> AppConfig:
    """Dependency for getting the app configuration."""
    return connection.app.state.fuxi.config


def http_error(error: FuxiError) -> HTTPException:
    """Map an engine error to the HTTP status clients expect."""
    if isinstance(error, (SessionNotFound, RecommendationUnavailable)):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, (InvalidReaction, InvalidSettings)):
        code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(error, SessionFull):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    return HTTPException(status_code=code, detail=str(error))
