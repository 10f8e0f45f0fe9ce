"""
Centralized Configuration Module

Provides a single source of truth for all service configuration parameters.
Loads settings from environment variables with sensible defaults and validation.
"""

import os
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional
from urllib.parse import urlparse
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""
    pass


@dataclass
class Config:
    """
    Centralized configuration for the news RAG chat service.

    All configuration parameters are loaded from environment variables
    with sensible defaults. Validation is performed on initialization.
    """

    # Ollama Settings
    ollama_base_url: str = field(default="http://localhost:11434")
    ollama_embed_model: str = field(default="nomic-embed-text")
    ollama_chat_model: str = field(default="llama3.1:latest")
    ollama_timeout: int = field(default=30)
    enable_embedding_cache: bool = field(default=True)
    embedding_cache_size: int = field(default=1024)
    chat_temperature: float = field(default=0.7)

    # Vector Index
    vector_db_dir: str = field(default="data/vector_db")
    corpus_name: str = field(default="news_articles")
    top_k: int = field(default=3)

    # Session Store
    redis_url: str = field(default="")
    session_ttl_seconds: int = field(default=3600)

    # Timeouts around external calls (seconds)
    embedding_timeout: float = field(default=30.0)
    search_timeout: float = field(default=10.0)
    session_timeout: float = field(default=5.0)
    generation_timeout: float = field(default=120.0)

    # Ingestion
    ingest_delay: float = field(default=0.2)
    max_articles: int = field(default=50)
    seed_articles_path: str = field(default="")

    # HTTP Server
    host: str = field(default="0.0.0.0")
    port: int = field(default=3000)
    log_level: str = field(default="INFO")

    def __post_init__(self):
        """Load configuration from environment and validate."""
        self._load_from_environment()
        self._validate()

    def _load_from_environment(self):
        """Load configuration from environment variables."""
        # Ollama Settings
        self.ollama_base_url = self._get_env_str('OLLAMA_BASE_URL', self.ollama_base_url)
        self.ollama_embed_model = self._get_env_str('OLLAMA_EMBED_MODEL', self.ollama_embed_model)
        self.ollama_chat_model = self._get_env_str('OLLAMA_CHAT_MODEL', self.ollama_chat_model)
        self.ollama_timeout = self._get_env_int('OLLAMA_TIMEOUT', self.ollama_timeout)
        self.enable_embedding_cache = self._get_env_bool(
            'ENABLE_EMBEDDING_CACHE', self.enable_embedding_cache
        )
        self.embedding_cache_size = self._get_env_int(
            'EMBEDDING_CACHE_SIZE', self.embedding_cache_size
        )
        self.chat_temperature = self._get_env_float('CHAT_TEMPERATURE', self.chat_temperature)

        # Vector Index
        self.vector_db_dir = self._get_env_path('VECTOR_DB_DIR', self.vector_db_dir)
        self.corpus_name = self._get_env_str('CORPUS_NAME', self.corpus_name)
        self.top_k = self._get_env_int('TOP_K', self.top_k)

        # Session Store
        self.redis_url = self._get_env_str('REDIS_URL', self.redis_url)
        self.session_ttl_seconds = self._get_env_int('SESSION_TTL_SECONDS', self.session_ttl_seconds)

        # Timeouts
        self.embedding_timeout = self._get_env_float('EMBEDDING_TIMEOUT', self.embedding_timeout)
        self.search_timeout = self._get_env_float('SEARCH_TIMEOUT', self.search_timeout)
        self.session_timeout = self._get_env_float('SESSION_TIMEOUT', self.session_timeout)
        self.generation_timeout = self._get_env_float('GENERATION_TIMEOUT', self.generation_timeout)

        # Ingestion
        self.ingest_delay = self._get_env_float('INGEST_DELAY', self.ingest_delay)
        self.max_articles = self._get_env_int('MAX_ARTICLES', self.max_articles)
        self.seed_articles_path = self._get_env_path('SEED_ARTICLES_PATH', self.seed_articles_path)

        # HTTP Server
        self.host = self._get_env_str('HOST', self.host)
        self.port = self._get_env_int('PORT', self.port)
        self.log_level = self._get_env_str('LOG_LEVEL', self.log_level).upper()

    def _get_env_str(self, key: str, default: str) -> str:
        """Get string value from environment."""
        value = os.getenv(key, default)
        if isinstance(value, str):
            value = value.strip()
        return value

    def _get_env_int(self, key: str, default: int) -> int:
        """Get integer value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return int(value)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid integer value for {key}: '{value}'"
            )

    def _get_env_float(self, key: str, default: float) -> float:
        """Get float value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return float(value)
        except ValueError:
            raise ConfigValidationError(
                f"Invalid float value for {key}: '{value}'"
            )

    def _get_env_bool(self, key: str, default: bool) -> bool:
        """Get boolean value from environment."""
        value = os.getenv(key)
        if value is None:
            return default

        value = value.lower().strip()
        if value in ('true', '1', 'yes', 'on'):
            return True
        elif value in ('false', '0', 'no', 'off'):
            return False
        else:
            return default

    def _get_env_path(self, key: str, default: str) -> str:
        """Get path value from environment with expansion."""
        value = os.getenv(key, default)
        if isinstance(value, str):
            value = value.strip()
            # Expand ~ to home directory
            value = os.path.expanduser(value)
        return value

    def _validate(self):
        """Validate configuration parameters."""
        # Validate non-empty strings
        for field_name in ('ollama_embed_model', 'ollama_chat_model', 'corpus_name', 'vector_db_dir'):
            if not getattr(self, field_name):
                raise ConfigValidationError(f"{field_name} cannot be empty")

        # Validate positive integers
        positive_int_fields = [
            ('top_k', self.top_k),
            ('session_ttl_seconds', self.session_ttl_seconds),
            ('max_articles', self.max_articles),
            ('embedding_cache_size', self.embedding_cache_size),
            ('port', self.port),
        ]

        for field_name, value in positive_int_fields:
            if value <= 0:
                raise ConfigValidationError(
                    f"{field_name} must be positive, got {value}"
                )

        # Validate timeouts (must be positive)
        timeout_fields = [
            ('embedding_timeout', self.embedding_timeout),
            ('search_timeout', self.search_timeout),
            ('session_timeout', self.session_timeout),
            ('generation_timeout', self.generation_timeout),
        ]
        for field_name, value in timeout_fields:
            if value <= 0:
                raise ConfigValidationError(
                    f"{field_name} must be positive, got {value}"
                )

        if self.ollama_timeout < 1:
            raise ConfigValidationError(
                f"ollama_timeout must be at least 1, got {self.ollama_timeout}"
            )

        if self.ingest_delay < 0:
            raise ConfigValidationError(
                f"ingest_delay cannot be negative, got {self.ingest_delay}"
            )

        if not 0.0 <= self.chat_temperature <= 2.0:
            raise ConfigValidationError(
                f"chat_temperature must be between 0.0 and 2.0, got {self.chat_temperature}"
            )

        # Corpus name becomes a file name
        if os.sep in self.corpus_name or self.corpus_name.startswith('.'):
            raise ConfigValidationError(
                f"corpus_name must be a plain name, got {self.corpus_name!r}"
            )

        # Validate URL format
        self._validate_url('ollama_base_url', self.ollama_base_url)
        if self.redis_url:
            self._validate_url('redis_url', self.redis_url)

    def _validate_url(self, field_name: str, url: str):
        try:
            parsed = urlparse(url)
            if not all([parsed.scheme, parsed.netloc]):
                raise ValueError("Missing scheme or netloc")
        except Exception:
            raise ConfigValidationError(
                f"Invalid URL for {field_name}: {url}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return asdict(self)

    def __repr__(self) -> str:
        """String representation of configuration."""
        items = []
        for key, value in self.to_dict().items():
            items.append(f"{key}={value!r}")
        return f"Config({', '.join(items)})"

    def update(self, **kwargs):
        """
        Update configuration values with validation.

        Args:
            **kwargs: Configuration parameters to update

        Raises:
            ConfigValidationError: If validation fails
        """
        # Store original values for rollback
        original_values = {}

        try:
            # Update values
            for key, value in kwargs.items():
                if not hasattr(self, key):
                    raise ConfigValidationError(f"Unknown configuration parameter: {key}")
                original_values[key] = getattr(self, key)
                setattr(self, key, value)

            # Validate new configuration
            self._validate()

        except Exception:
            # Rollback on validation failure
            for key, value in original_values.items():
                setattr(self, key, value)
            raise

    def get_timeout_config(self) -> Dict[str, float]:
        """Get per-call timeout configuration."""
        return {
            'embedding_timeout': self.embedding_timeout,
            'search_timeout': self.search_timeout,
            'session_timeout': self.session_timeout,
            'generation_timeout': self.generation_timeout,
        }


# Singleton instance
_config_instance: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance (singleton pattern).

    Returns:
        Config: Global configuration instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance


def reset_config():
    """Reset the global configuration instance."""
    global _config_instance
    _config_instance = None
