"""
Configuration management for Fuxi.

Provides centralized configuration loading, validation, and environment variable overrides.
"""

import os
import yaml
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional
from pathlib import Path

DEFAULT_CONFIG_PATH = str(Path(__file__).parent / "default_config.yaml")


@dataclass
class SessionConfig:
    """Default settings applied to every new session."""
    max_participants: int = 10
    auto_next: bool = True
    reaction_threshold: int = 3


@dataclass
class EngagementConfig:
    """Engagement decay parameters."""
    decay_ms: int = 300_000
    default_intensity: int = 3


@dataclass
class RecommendationConfig:
    """Configuration for the recommendation combiner and its strategies."""
    collaborative_weight: float = 0.4
    content_weight: float = 0.4
    contextual_weight: float = 0.2
    strategy_limit: int = 5
    result_limit: int = 10
    adaptive_limit: int = 5
    peer_count: int = 5
    min_peer_rating: int = 4
    max_context_boost: float = 2.0
    seed: Optional[int] = None


@dataclass
class StreamingConfig:
    """Debounce windows and broadcast timers for the reactive stages."""
    reaction_debounce_ms: int = 300
    recommendation_debounce_ms: int = 500
    metrics_interval_s: float = 10.0
    outbox_size: int = 100


@dataclass
class CatalogConfig:
    """Where the track feature catalog is loaded from."""
    path: str = str(Path(__file__).parent.parent / "data" / "default_catalog.json")


@dataclass
class PersistenceConfig:
    """Durable reaction logging. An empty path disables the log."""
    reaction_log_path: str = ""


@dataclass
class LoggingConfig:
    """Configuration for logging parameters."""
    level: str = "INFO"
    format: str = "json"


@dataclass
class VersioningConfig:
    api_version: str = "1.0.0"


@dataclass
class AppConfig:
    """Main application configuration containing all sub-configurations."""
    session: SessionConfig = field(default_factory=SessionConfig)
    engagement: EngagementConfig = field(default_factory=EngagementConfig)
    recommendation: RecommendationConfig = field(default_factory=RecommendationConfig)
    streaming: StreamingConfig = field(default_factory=StreamingConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    versioning: VersioningConfig = field(default_factory=VersioningConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


class ConfigManager:
    """Manages application configuration loading, validation, and environment overrides."""

    ENV_MAPPINGS = {
        'FUXI_MAX_PARTICIPANTS': (['session', 'max_participants'], int),
        'FUXI_REACTION_THRESHOLD': (['session', 'reaction_threshold'], int),
        'FUXI_ENGAGEMENT_DECAY_MS': (['engagement', 'decay_ms'], int),
        'FUXI_RESULT_LIMIT': (['recommendation', 'result_limit'], int),
        'FUXI_RECOMMENDATION_SEED': (['recommendation', 'seed'], int),
        'FUXI_REACTION_DEBOUNCE_MS': (['streaming', 'reaction_debounce_ms'], int),
        'FUXI_RECOMMENDATION_DEBOUNCE_MS': (['streaming', 'recommendation_debounce_ms'], int),
        'FUXI_METRICS_INTERVAL_S': (['streaming', 'metrics_interval_s'], float),
        'FUXI_CATALOG_PATH': (['catalog', 'path'], str),
        'FUXI_REACTION_LOG_PATH': (['persistence', 'reaction_log_path'], str),
        'FUXI_LOG_LEVEL': (['logging', 'level'], str),
        'FUXI_LOG_FORMAT': (['logging', 'format'], str),
    }

    def __init__(self):
        self._config: Optional[AppConfig] = None

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self._config

    def load(self, config_path: str = DEFAULT_CONFIG_PATH) -> AppConfig:
        """
        Load configuration from YAML file with environment variable overrides.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            AppConfig: Loaded and validated configuration

        Raises:
            ConfigValidationError: If configuration is invalid
            FileNotFoundError: If config file doesn't exist
        """
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        return self.load_dict(config_data)

    def load_dict(self, config_data: Dict[str, Any]) -> AppConfig:
        """Build, override and validate a configuration from plain data."""
        config_data = self._apply_env_overrides(config_data)
        config = self._create_config_from_dict(config_data)
        self.validate(config)
        self._config = config
        return config

    def _create_config_from_dict(self, config_data: Dict[str, Any]) -> AppConfig:
        """Create AppConfig from dictionary data."""
        session_data = config_data.get('session') or {}
        engagement_data = config_data.get('engagement') or {}
        recommendation_data = config_data.get('recommendation') or {}
        streaming_data = config_data.get('streaming') or {}
        catalog_data = config_data.get('catalog') or {}
        persistence_data = config_data.get('persistence') or {}
        logging_data = config_data.get('logging') or {}
        versioning_data = config_data.get('versioning') or {}

        session_config = SessionConfig(
            max_participants=session_data.get('max_participants', SessionConfig.max_participants),
            auto_next=session_data.get('auto_next', SessionConfig.auto_next),
            reaction_threshold=session_data.get('reaction_threshold', SessionConfig.reaction_threshold)
        )

        engagement_config = EngagementConfig(
            decay_ms=engagement_data.get('decay_ms', EngagementConfig.decay_ms),
            default_intensity=engagement_data.get('default_intensity', EngagementConfig.default_intensity)
        )

        defaults = RecommendationConfig()
        recommendation_config = RecommendationConfig(
            collaborative_weight=recommendation_data.get('collaborative_weight', defaults.collaborative_weight),
            content_weight=recommendation_data.get('content_weight', defaults.content_weight),
            contextual_weight=recommendation_data.get('contextual_weight', defaults.contextual_weight),
            strategy_limit=recommendation_data.get('strategy_limit', defaults.strategy_limit),
            result_limit=recommendation_data.get('result_limit', defaults.result_limit),
            adaptive_limit=recommendation_data.get('adaptive_limit', defaults.adaptive_limit),
            peer_count=recommendation_data.get('peer_count', defaults.peer_count),
            min_peer_rating=recommendation_data.get('min_peer_rating', defaults.min_peer_rating),
            max_context_boost=recommendation_data.get('max_context_boost', defaults.max_context_boost),
            seed=recommendation_data.get('seed', defaults.seed)
        )

        streaming_config = StreamingConfig(
            reaction_debounce_ms=streaming_data.get('reaction_debounce_ms', StreamingConfig.reaction_debounce_ms),
            recommendation_debounce_ms=streaming_data.get(
                'recommendation_debounce_ms', StreamingConfig.recommendation_debounce_ms
            ),
            metrics_interval_s=streaming_data.get('metrics_interval_s', StreamingConfig.metrics_interval_s),
            outbox_size=streaming_data.get('outbox_size', StreamingConfig.outbox_size)
        )

        catalog_config = CatalogConfig(path=catalog_data.get('path') or CatalogConfig().path)

        persistence_config = PersistenceConfig(
            reaction_log_path=persistence_data.get('reaction_log_path') or ""
        )

        logging_config = LoggingConfig(
            level=str(logging_data.get('level', LoggingConfig.level)).upper(),
            format=logging_data.get('format', LoggingConfig.format)
        )

        versioning_config = VersioningConfig(
            api_version=versioning_data.get('api_version', VersioningConfig.api_version)
        )

        return AppConfig(
            session=session_config,
            engagement=engagement_config,
            recommendation=recommendation_config,
            streaming=streaming_config,
            catalog=catalog_config,
            persistence=persistence_config,
            logging=logging_config,
            versioning=versioning_config
        )

    def _apply_env_overrides(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration data."""
        for env_var, (config_path, cast) in self.ENV_MAPPINGS.items():
            env_value = os.getenv(env_var)
            if env_value is None:
                continue
            current = config_data
            for key in config_path[:-1]:
                if not isinstance(current.get(key), dict):
                    current[key] = {}
                current = current[key]
            try:
                current[config_path[-1]] = cast(env_value)
            except ValueError as e:
                raise ConfigValidationError(f"Invalid value for {env_var}: {env_value!r}") from e

        return config_data

    def validate(self, config: AppConfig) -> bool:
        """
        Validate configuration values.

        Args:
            config: Configuration to validate

        Returns:
            bool: True if valid

        Raises:
            ConfigValidationError: If validation fails
        """
        errors = []

        if config.session.max_participants <= 0:
            errors.append("Session max_participants must be positive")

        if not (1 <= config.session.reaction_threshold <= 5):
            errors.append("Session reaction_threshold must be between 1 and 5")

        if config.engagement.decay_ms <= 0:
            errors.append("Engagement decay_ms must be positive")

        if not (1 <= config.engagement.default_intensity <= 5):
            errors.append("Engagement default_intensity must be between 1 and 5")

        rec = config.recommendation
        weights = [rec.collaborative_weight, rec.content_weight, rec.contextual_weight]
        if any(w < 0 for w in weights):
            errors.append("Recommendation strategy weights cannot be negative")
        if sum(weights) <= 0:
            errors.append("Recommendation strategy weights must not all be zero")

        for name in ('strategy_limit', 'result_limit', 'adaptive_limit', 'peer_count'):
            if getattr(rec, name) <= 0:
                errors.append(f"Recommendation {name} must be positive")

        if not (1 <= rec.min_peer_rating <= 5):
            errors.append("Recommendation min_peer_rating must be between 1 and 5")

        if rec.max_context_boost < 1.0:
            errors.append("Recommendation max_context_boost must be at least 1.0")

        if config.streaming.reaction_debounce_ms < 0:
            errors.append("Streaming reaction_debounce_ms cannot be negative")

        if config.streaming.recommendation_debounce_ms < 0:
            errors.append("Streaming recommendation_debounce_ms cannot be negative")

        if config.streaming.metrics_interval_s <= 0:
            errors.append("Streaming metrics_interval_s must be positive")

        if config.streaming.outbox_size <= 0:
            errors.append("Streaming outbox_size must be positive")

        if not config.catalog.path:
            errors.append("Catalog path cannot be empty")

        valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if config.logging.level not in valid_log_levels:
            errors.append(f"Logging level must be one of: {valid_log_levels}")

        if config.logging.format not in ['json', 'text']:
            errors.append("Logging format must be 'json' or 'text'")

        if not config.versioning.api_version:
            errors.append("API version cannot be empty")

        if errors:
            raise ConfigValidationError(f"Configuration validation failed: {'; '.join(errors)}")

        return True

    def get_with_env_override(self, key: str) -> Any:
        """
        Get configuration value with potential environment variable override.

        Args:
            key: Configuration key in dot notation (e.g., 'session.max_participants')

        Returns:
            Configuration value
        """
        env_key = f"FUXI_{key.upper().replace('.', '_')}"
        env_value = os.getenv(env_key)

        if env_value is not None:
            return env_value

        current = self.config
        for k in key.split('.'):
            if hasattr(current, k):
                current = getattr(current, k)
            else:
                raise KeyError(f"Configuration key not found: {key}")

        return current
