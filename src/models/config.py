"""Configuration management for the recipe extraction pipeline."""

import os
import re
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from src.models.data_models import CrawlTarget
from src.models.errors import ConfigurationError

DEFAULT_RECIPE_URL_PATTERN = r"/(recipe|recipes|food/recipes|cooking)/[a-z0-9\-_]+(?:/|\?|#|$)"


class CrawlTargetConfig(BaseModel):
    """Registry entry for a single recipe site."""
    name: str = Field(description="Site name")
    base_url: str = Field(description="Homepage URL")
    sitemap_url: Optional[str] = Field(default=None, description="Primary sitemap URL")
    sub_sitemaps: List[str] = Field(default_factory=list, description="Additional sitemaps")
    category: str = Field(default="General", description="Registry category")
    priority: int = Field(default=5, description="Higher priority sites are processed first")
    active: bool = Field(default=True, description="Inactive sites are skipped")

    @field_validator('base_url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError(f"URL must start with http:// or https://, got: {v}")
        return v

    def to_target(self) -> CrawlTarget:
        return CrawlTarget(
            name=self.name,
            base_url=self.base_url,
            sitemap_url=self.sitemap_url,
            sub_sitemaps=list(self.sub_sitemaps),
            category=self.category,
            priority=self.priority,
            active=self.active,
        )


class PipelineConfig(BaseModel):
    """Main pipeline configuration."""

    # Batch controller
    concurrency: int = Field(default=5, description="Maximum in-flight extraction tasks")
    batch_size: int = Field(default=50, description="Tasks per sequential batch")
    inter_task_delay_ms: int = Field(default=500, description="Delay before a worker slot is released")
    task_timeout_ms: int = Field(default=90000, description="Wall-clock bound on a single task")

    # Fetcher
    fetch_timeout_ms: int = Field(default=30000, description="Per-attempt HTTP timeout")
    fetch_max_retries: int = Field(default=3, description="HTTP attempts per URL")
    retry_base_delay_ms: int = Field(default=1000, description="Linear backoff base delay")
    domain_pacing_ms: int = Field(default=1000, description="Minimum spacing between requests to one domain")

    # Cache
    cache_ttl_ms: int = Field(default=3600000, description="Time to live for cached results")
    cache_max_entries: int = Field(default=5000, description="Safety bound on cached entries")

    # Circuit registry
    circuit_failure_threshold: int = Field(default=5, description="Consecutive failures before blocking a domain")
    circuit_cooldown_ms: Optional[int] = Field(
        default=None, description="Half-open probe window; None keeps a domain blocked until a success"
    )

    # Extraction
    recipe_url_pattern: str = Field(default=DEFAULT_RECIPE_URL_PATTERN, description="Recipe article URL matcher")
    render_enabled: bool = Field(default=False, description="Enable the headless-render fallback")
    render_timeout_ms: int = Field(default=20000, description="Wall-clock bound on a headless render")
    render_strategies: str = Field(default="all", description="Strategies rerun on rendered DOM: all or dom_only")
    parse_workers: int = Field(default=4, description="Threads used for HTML parsing")

    # Output
    qa_log_path: str = Field(default="out/qa_log.jsonl", description="Append-only QA sink")
    output_directory: str = Field(default="out", description="Output directory for run reports")
    output_filename: str = Field(default="run_report.json", description="Run report filename")
    sites_file: str = Field(default="config/sites.yaml", description="CrawlTarget registry")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator(
        'concurrency', 'batch_size', 'fetch_timeout_ms', 'fetch_max_retries',
        'cache_ttl_ms', 'cache_max_entries', 'circuit_failure_threshold',
        'task_timeout_ms', 'render_timeout_ms', 'parse_workers',
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        """Validate counts and durations are positive."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive, got: {v}")
        return v

    @field_validator('inter_task_delay_ms', 'retry_base_delay_ms', 'domain_pacing_ms')
    @classmethod
    def validate_non_negative(cls, v: int, info) -> int:
        """Validate delays are not negative."""
        if v < 0:
            raise ValueError(f"{info.field_name} must not be negative, got: {v}")
        return v

    @field_validator('recipe_url_pattern')
    @classmethod
    def validate_pattern(cls, v: str) -> str:
        """Validate the recipe URL pattern compiles."""
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"recipe_url_pattern is not a valid regex: {e}")
        return v

    @field_validator('render_strategies')
    @classmethod
    def validate_render_strategies(cls, v: str) -> str:
        if v not in ("all", "dom_only"):
            raise ValueError(f"render_strategies must be 'all' or 'dom_only', got: {v}")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR"):
            raise ValueError(f"log_level must be DEBUG, INFO, WARNING or ERROR, got: {v}")
        return v

    @model_validator(mode='after')
    def validate_render_timeout(self) -> "PipelineConfig":
        """The render fallback must be bounded more strictly than the whole task."""
        if self.render_timeout_ms >= self.task_timeout_ms:
            raise ValueError(
                f"render_timeout_ms ({self.render_timeout_ms}) must be lower than "
                f"task_timeout_ms ({self.task_timeout_ms})"
            )
        return self

    @property
    def output_path(self) -> Path:
        """Get full output file path."""
        return Path(self.output_directory) / self.output_filename

    @property
    def compiled_recipe_pattern(self) -> "re.Pattern[str]":
        return re.compile(self.recipe_url_pattern, re.IGNORECASE)

    @classmethod
    def from_env(cls) -> Dict[str, object]:
        """Collect environment variable overrides as a field dictionary."""
        env_mappings = {
            "RECIPE_PIPELINE_CONCURRENCY": "concurrency",
            "RECIPE_PIPELINE_BATCH_SIZE": "batch_size",
            "RECIPE_PIPELINE_INTER_TASK_DELAY_MS": "inter_task_delay_ms",
            "RECIPE_PIPELINE_FETCH_TIMEOUT_MS": "fetch_timeout_ms",
            "RECIPE_PIPELINE_FETCH_MAX_RETRIES": "fetch_max_retries",
            "RECIPE_PIPELINE_CACHE_TTL_MS": "cache_ttl_ms",
            "RECIPE_PIPELINE_CIRCUIT_FAILURE_THRESHOLD": "circuit_failure_threshold",
            "RECIPE_PIPELINE_RECIPE_URL_PATTERN": "recipe_url_pattern",
            "RECIPE_PIPELINE_DOMAIN_PACING_MS": "domain_pacing_ms",
            "RECIPE_PIPELINE_RENDER_ENABLED": "render_enabled",
            "RECIPE_PIPELINE_LOG_LEVEL": "log_level",
            "RECIPE_PIPELINE_QA_LOG_PATH": "qa_log_path",
            "RECIPE_PIPELINE_SITES_FILE": "sites_file",
        }

        overrides: Dict[str, object] = {}
        for env_var, field_name in env_mappings.items():
            if env_var in os.environ:
                value = os.environ[env_var]
                # Convert to appropriate type based on field type
                field_info = cls.model_fields[field_name]
                if field_info.annotation == int:
                    try:
                        overrides[field_name] = int(value)
                    except ValueError:
                        raise ConfigurationError(f"{env_var} must be an integer, got: {value!r}")
                elif field_info.annotation == bool:
                    overrides[field_name] = value.strip().lower() in ("1", "true", "yes", "on")
                else:
                    overrides[field_name] = value
        return overrides


class ConfigManager:
    """Manages configuration loading with override precedence."""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = config_file or Path("config/config.yaml")
        self._config: Optional[PipelineConfig] = None

    def load_config(self, cli_overrides: Optional[Dict] = None) -> PipelineConfig:
        """
        Load configuration with override precedence: CLI > ENV > YAML.

        Args:
            cli_overrides: Optional dictionary of CLI flag overrides

        Returns:
            Fully merged PipelineConfig instance

        Raises:
            ConfigurationError: If the YAML file is unreadable or validation fails
        """
        config_dict: Dict[str, object] = {}

        if self.config_file.exists():
            try:
                with open(self.config_file, 'r') as f:
                    yaml_config = yaml.safe_load(f)
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(f"Cannot read config file {self.config_file}: {e}")
            if yaml_config:
                if not isinstance(yaml_config, dict):
                    raise ConfigurationError(f"Config file {self.config_file} must contain a mapping")
                config_dict.update(yaml_config)

        config_dict.update(PipelineConfig.from_env())

        if cli_overrides:
            # Filter out None values from CLI
            config_dict.update({k: v for k, v in cli_overrides.items() if v is not None})

        try:
            self._config = PipelineConfig(**config_dict)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}")
        return self._config

    @property
    def config(self) -> PipelineConfig:
        """Get the loaded configuration."""
        if self._config is None:
            self._config = self.load_config()
        return self._config


class SiteRegistry:
    """CrawlTarget registry loaded from YAML."""

    def __init__(self, targets: List[CrawlTarget]):
        self.targets = targets

    @classmethod
    def load(cls, path: Path) -> "SiteRegistry":
        """
        Load the registry file.

        Raises:
            ConfigurationError: If the file is missing, unreadable or malformed
        """
        path = Path(path)
        try:
            with open(path, 'r') as f:
                raw = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Cannot read site registry {path}: {e}")

        entries = raw.get("sites") if isinstance(raw, dict) else raw
        if not isinstance(entries, list):
            raise ConfigurationError(f"Site registry {path} must contain a list of sites")

        targets = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise ConfigurationError(f"Site registry entry #{index + 1} must be a mapping")
            try:
                targets.append(CrawlTargetConfig(**entry).to_target())
            except ValidationError as e:
                raise ConfigurationError(f"Invalid site registry entry #{index + 1}: {e}")
        return cls(targets)

    def active_targets(self) -> List[CrawlTarget]:
        """Active targets, highest priority first."""
        active = [t for t in self.targets if t.active]
        return sorted(active, key=lambda t: t.priority, reverse=True)

    def get(self, name: str) -> Optional[CrawlTarget]:
        for target in self.targets:
            if target.name.lower() == name.lower():
                return target
        return None
