"""Configuration management for knowledge-garden."""

import json
import os
from pathlib import Path
from typing import Any, List, Literal, Optional

from loguru import logger
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from knowledge_garden.utils import setup_logging


DATABASE_NAME = "garden.db"
DATA_DIR_NAME = ".knowledge-garden"
CONFIG_FILE_NAME = "config.json"

Environment = Literal["test", "dev", "user"]

# Knobs documented for operators under their bare names; the prefixed
# spelling is accepted too so a single GARDEN_* namespace works everywhere.
_BARE_KNOBS = {
    "logseq_root": "LOGSEQ_ROOT",
    "vector_provider_url": "VECTOR_PROVIDER_URL",
    "llm_provider_url": "LLM_PROVIDER_URL",
    "default_search_strategy": "DEFAULT_SEARCH_STRATEGY",
    "sync_fanout": "SYNC_FANOUT",
    "sync_clock_skew_seconds": "SYNC_CLOCK_SKEW_SECONDS",
}


def _knob(field_name: str) -> AliasChoices:
    return AliasChoices(field_name, f"GARDEN_{_BARE_KNOBS[field_name]}", _BARE_KNOBS[field_name])


class GardenConfig(BaseSettings):
    """Pydantic model for knowledge-garden configuration."""

    env: Environment = Field(default="dev", description="Environment name")

    log_level: str = "INFO"

    # Database
    database_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy async URL. When unset, SQLite under the data directory is used.",
    )

    # External providers
    vector_provider_url: Optional[str] = Field(
        default=None,
        description="Base URL of the embedding provider. Vector passes are skipped when unset.",
        validation_alias=_knob("vector_provider_url"),
    )
    llm_provider_url: Optional[str] = Field(
        default=None,
        description="Base URL of the LLM used for answer synthesis.",
        validation_alias=_knob("llm_provider_url"),
    )
    embedding_model: str = Field(
        default="nomic-embed-text:latest",
        description="Model name sent to the embedding provider.",
    )
    llm_model: str = Field(
        default="llama3.1:latest",
        description="Model name sent to the LLM provider.",
    )
    llm_timeout_seconds: float = Field(
        default=30.0,
        description="Hard deadline for a single LLM call.",
        gt=0,
    )

    # Unified search
    default_search_strategy: str = Field(
        default="qa-v2-passage",
        description="Embedding strategy used for query vectors and index lookups.",
        validation_alias=_knob("default_search_strategy"),
    )
    search_limit_default: int = Field(default=50, description="Default result limit.", gt=0)
    search_limit_max: int = Field(
        default=500,
        description="Upper bound applied to any requested limit.",
        gt=0,
    )
    search_fuzzy_threshold: float = Field(
        default=0.55,
        description="Minimum edit-distance similarity for a fuzzy hit.",
        ge=0.0,
        le=1.0,
    )
    search_vector_top_k: int = Field(
        default=50,
        description="Nearest neighbours requested from each adapter's vector index.",
        gt=0,
    )
    search_adapter_cap: int = Field(
        default=200,
        description="Maximum candidates a single adapter contributes per request.",
        gt=0,
    )
    search_vector_budget_ms: int = Field(
        default=500,
        description="Soft budget for one adapter's vector pass before it is skipped.",
        gt=0,
    )
    search_fuzzy_scan_limit: int = Field(
        default=2000,
        description="Most recent rows per adapter considered by the fuzzy pass.",
        gt=0,
    )
    sync_fanout: int = Field(
        default=8,
        description="Concurrency limit for per-request fan-out across source adapters.",
        gt=0,
        validation_alias=_knob("sync_fanout"),
    )

    # Advanced search
    advanced_search_top_k: int = Field(
        default=8, description="Bookmarks retrieved as answer context.", gt=0
    )
    advanced_search_context_chars: int = Field(
        default=8000,
        description="Character budget of the context block handed to the LLM.",
        gt=0,
    )

    # Logseq sync
    logseq_root: Optional[Path] = Field(
        default=None,
        description="Root directory of the Logseq graph (contains pages/ and journals/).",
        validation_alias=_knob("logseq_root"),
    )
    sync_clock_skew_seconds: float = Field(
        default=2.0,
        description="Tolerance applied when comparing file mtimes with entity timestamps.",
        ge=0,
        validation_alias=_knob("sync_clock_skew_seconds"),
    )
    logseq_entity_types: List[str] = Field(
        default_factory=lambda: ["page", "journal", "concept", "note", "person", "project"],
        description="Entity types mirrored into the Logseq graph.",
    )
    logseq_exclude_prefixes: List[str] = Field(
        default_factory=lambda: [".git/", "logseq/", "assets/", "draws/", ".recycle/"],
        description="Relative directory prefixes never scanned for pages.",
    )
    logseq_repo_url: Optional[str] = Field(
        default=None,
        description="Remote cloned into logseq_root when the directory is empty.",
    )
    logseq_ssh_key_path: Optional[Path] = Field(
        default=None,
        description="Private key used for git pull/push over SSH.",
    )
    logseq_git_pull: bool = Field(
        default=False,
        description="Pull from the remote before each sync run.",
    )
    logseq_git_push: bool = Field(
        default=False,
        description="Commit and push changes after each sync run.",
    )

    model_config = SettingsConfigDict(
        env_prefix="GARDEN_",
        extra="ignore",
    )

    @field_validator("vector_provider_url", "llm_provider_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().rstrip("/")
            return value or None
        return value

    @field_validator("logseq_exclude_prefixes")
    @classmethod
    def normalize_prefixes(cls, value: List[str]) -> List[str]:
        return [p.strip("/") + "/" for p in value if p.strip("/")]

    @property
    def is_test_env(self) -> bool:
        return self.env == "test" or os.getenv("PYTEST_CURRENT_TEST") is not None

    @property
    def data_dir_path(self) -> Path:
        if config_dir := os.getenv("GARDEN_CONFIG_DIR"):
            return Path(config_dir)
        return Path(os.getenv("HOME", Path.home())) / DATA_DIR_NAME

    @property
    def database_path(self) -> Path:
        """SQLite database path used when no database_url is configured."""
        database_path = self.data_dir_path / DATABASE_NAME
        database_path.parent.mkdir(parents=True, exist_ok=True)
        return database_path


# Module-level cache for configuration
_CONFIG_CACHE: Optional[GardenConfig] = None


class ConfigManager:
    """Manages knowledge-garden configuration stored in config.json."""

    def __init__(self) -> None:
        home = os.getenv("HOME", Path.home())
        if isinstance(home, str):
            home = Path(home)

        if config_dir := os.getenv("GARDEN_CONFIG_DIR"):
            self.config_dir = Path(config_dir)
        else:
            self.config_dir = home / DATA_DIR_NAME

        self.config_file = self.config_dir / CONFIG_FILE_NAME
        self.config_dir.mkdir(parents=True, exist_ok=True)

    @property
    def config(self) -> GardenConfig:
        return self.load_config()

    def load_config(self) -> GardenConfig:
        """Load configuration from file or create default.

        Environment variables take precedence over file values.
        """
        global _CONFIG_CACHE

        if _CONFIG_CACHE is not None:
            return _CONFIG_CACHE

        if not self.config_file.exists():
            _CONFIG_CACHE = GardenConfig()
            return _CONFIG_CACHE

        try:
            file_data = json.loads(self.config_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:  # pragma: no cover
            logger.error(f"Invalid JSON in config file {self.config_file}: {e}")
            raise SystemExit(
                f"Error: config file is not valid JSON: {self.config_file}\n"
                f"  {e}\n"
                f"Fix or delete the file and re-run."
            )

        # Drop file values for any field an environment variable overrides,
        # then let pydantic-settings read the environment
        merged_data = {}
        for field_name, value in file_data.items():
            if field_name not in GardenConfig.model_fields:
                continue
            if self._env_overrides(field_name):
                continue
            merged_data[field_name] = value

        _CONFIG_CACHE = GardenConfig(**merged_data)
        return _CONFIG_CACHE

    def save_config(self, config: GardenConfig) -> None:
        global _CONFIG_CACHE
        save_garden_config(self.config_file, config)
        _CONFIG_CACHE = None

    @staticmethod
    def _env_overrides(field_name: str) -> bool:
        names = {f"GARDEN_{field_name.upper()}"}
        if field_name in _BARE_KNOBS:
            names |= {_BARE_KNOBS[field_name], f"GARDEN_{_BARE_KNOBS[field_name]}"}
        return any(name in os.environ for name in names)


def get_config() -> GardenConfig:
    return ConfigManager().config


def save_garden_config(file_path: Path, config: GardenConfig) -> None:
    """Save configuration to file."""
    try:
        config_dict = config.model_dump(mode="json")
        file_path.write_text(json.dumps(config_dict, indent=2))
    except OSError as e:  # pragma: no cover
        logger.error(f"Failed to save config: {e}")


# Logging initialization functions for different entry points


def init_cli_logging() -> None:  # pragma: no cover
    """Initialize logging for CLI commands - file only.

    CLI output goes to the terminal through rich; log lines would interleave with it.
    """
    log_level = os.getenv("GARDEN_LOG_LEVEL", "INFO")
    setup_logging(log_level=log_level, log_to_file=True)


def init_api_logging() -> None:  # pragma: no cover
    """Initialize logging for the API server: file plus stderr."""
    log_level = os.getenv("GARDEN_LOG_LEVEL", "INFO")
    setup_logging(log_level=log_level, log_to_file=True, log_to_stdout=True)
