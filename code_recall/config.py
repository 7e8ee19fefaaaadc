"""
Configuration Module - Load and manage code-recall configuration.

Configuration precedence (highest to lowest):
1. Programmatic overrides (keyword arguments to load_config)
2. Environment variables
3. Configuration file (.code-recall.yml)
4. Default values
"""

import hashlib
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

from .embedding.model import DEFAULT_DIMENSIONS, DEFAULT_MODEL
from .llm.base import LLMConfig


logger = logging.getLogger(__name__)


# Configuration file names (in order of precedence)
CONFIG_FILE_NAMES = [
    ".code-recall.yml",
    ".code-recall.yaml",
]

DEFAULT_RECALL_DIR = "~/.code-recall"
DB_FILE_NAME = "memories.db"
PROJECT_HASH_LENGTH = 12


@dataclass
class LLMSettings:
    """Completion provider used for memory extraction."""

    provider: str = "anthropic"
    model: str = ""
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    temperature: float = 0.0
    max_tokens: int = 4096
    timeout: float = 60.0
    max_retries: int = 3

    def to_llm_config(self) -> LLMConfig:
        """Convert to LLMConfig for provider initialization."""
        return LLMConfig(
            provider=self.provider,
            model=self.model,
            api_key=self.api_key,
            api_base=self.api_base,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout=self.timeout,
            max_retries=self.max_retries,
        )


@dataclass
class RecallConfig:
    """
    Complete configuration for code-recall.

    Example YAML configuration:
        ```yaml
        recall_dir: ~/.code-recall
        similarity_threshold: 0.3
        dedup_threshold: 0.9
        max_memories_per_read: 5
        embedding_model: all-MiniLM-L6-v2

        llm:
          provider: anthropic
          model: claude-3-5-haiku-latest
        ```
    """

    recall_dir: str = DEFAULT_RECALL_DIR

    # Retrieval
    similarity_threshold: float = 0.3
    dedup_threshold: float = 0.9
    max_memories_per_read: int = 5
    max_memories_per_session: int = 20
    search_limit: int = 10

    # Embeddings
    dimensions: int = DEFAULT_DIMENSIONS
    embedding_model: str = DEFAULT_MODEL

    llm: LLMSettings = field(default_factory=LLMSettings)

    @property
    def recall_path(self) -> Path:
        return Path(self.recall_dir).expanduser()

    def db_path_for(self, project_identity: str) -> Path:
        """Database path for a project."""
        return project_db_path(project_identity, self.recall_dir)

    @classmethod
    def from_dict(cls, data: dict) -> "RecallConfig":
        """Create configuration from dictionary, ignoring unknown keys."""
        llm_data = data.get("llm") or {}
        llm_names = {f.name for f in fields(LLMSettings)}
        top_names = {f.name for f in fields(cls)} - {"llm"}

        return cls(
            llm=LLMSettings(**{k: v for k, v in llm_data.items() if k in llm_names}),
            **{k: v for k, v in data.items() if k in top_names},
        )

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        result = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "llm"}
        result["llm"] = {f.name: getattr(self.llm, f.name) for f in fields(self.llm)}
        result["llm"]["api_key"] = "***" if self.llm.api_key else None  # Redact API key
        return result


def project_db_path(project_identity: str, recall_dir: str = DEFAULT_RECALL_DIR) -> Path:
    """
    Path of the memory database for a project.

    Args:
        project_identity: Stable identity string, e.g. the project's working directory
        recall_dir: Root directory holding all project databases

    Returns:
        ``<recall_dir>/<sha256(identity)[:12]>/memories.db``
    """
    digest = hashlib.sha256(project_identity.encode("utf-8")).hexdigest()[:PROJECT_HASH_LENGTH]
    return Path(recall_dir).expanduser() / digest / DB_FILE_NAME


def find_config_file(start_path: Optional[str] = None) -> Optional[Path]:
    """
    Find the configuration file starting from the given path.

    Searches the start directory (or the current directory), its parents,
    and finally the user's home directory.
    """
    start = Path(start_path) if start_path else Path.cwd()
    search_dirs = [start] + list(start.resolve().parents) + [Path.home()]

    for directory in search_dirs:
        for config_name in CONFIG_FILE_NAMES:
            config_path = directory / config_name
            if config_path.is_file():
                logger.debug(f"Found config file: {config_path}")
                return config_path

    return None


def load_yaml_file(file_path: Path) -> dict:
    """
    Load a YAML configuration file.

    Returns an empty dict if the file cannot be read or parsed.
    """
    import yaml

    try:
        with open(file_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Error loading config file {file_path}: {e}")
        return {}

    if not isinstance(data, dict):
        logger.warning(f"Ignoring config file {file_path}: top level must be a mapping")
        return {}
    return data


def _env_number(name: str, convert):
    value = os.environ.get(name)
    if value is None:
        return None
    try:
        return convert(value)
    except ValueError:
        logger.warning(f"Ignoring invalid value for {name}: {value!r}")
        return None


def load_config_from_env() -> dict:
    """
    Load configuration from environment variables.

    Supported environment variables:
    - CODE_RECALL_DIR: Root directory for memory databases
    - CODE_RECALL_SIMILARITY_THRESHOLD: Recall threshold
    - CODE_RECALL_DEDUP_THRESHOLD: Extraction dedup threshold
    - CODE_RECALL_EMBEDDING_MODEL: sentence-transformers model name
    - CODE_RECALL_PROVIDER: LLM provider name
    - CODE_RECALL_MODEL: LLM model name
    - ANTHROPIC_API_KEY / OPENAI_API_KEY: Provider API keys
    """
    config: dict = {"llm": {}}

    if os.environ.get("CODE_RECALL_DIR"):
        config["recall_dir"] = os.environ["CODE_RECALL_DIR"]
    if os.environ.get("CODE_RECALL_EMBEDDING_MODEL"):
        config["embedding_model"] = os.environ["CODE_RECALL_EMBEDDING_MODEL"]

    for key, name in (
        ("similarity_threshold", "CODE_RECALL_SIMILARITY_THRESHOLD"),
        ("dedup_threshold", "CODE_RECALL_DEDUP_THRESHOLD"),
    ):
        value = _env_number(name, float)
        if value is not None:
            config[key] = value

    if os.environ.get("CODE_RECALL_PROVIDER"):
        config["llm"]["provider"] = os.environ["CODE_RECALL_PROVIDER"]
    if os.environ.get("CODE_RECALL_MODEL"):
        config["llm"]["model"] = os.environ["CODE_RECALL_MODEL"]

    # Detect provider from available keys when not set explicitly
    for provider, key_name in (("anthropic", "ANTHROPIC_API_KEY"), ("openai", "OPENAI_API_KEY")):
        if os.environ.get(key_name):
            config["llm"].setdefault("provider", provider)
            if config["llm"]["provider"] == provider:
                config["llm"]["api_key"] = os.environ[key_name]

    return config


def load_config(
    config_path: Optional[str] = None,
    project_path: Optional[str] = None,
    **overrides: Any,
) -> RecallConfig:
    """
    Load configuration from all sources.

    Args:
        config_path: Optional explicit path to config file.
        project_path: Optional project path to search for config.
        **overrides: Configuration overrides. LLM settings may be given
            as ``llm_provider``, ``llm_model`` etc. or as an ``llm`` dict.

    Returns:
        Merged RecallConfig.
    """
    merged_config: dict = {}

    if config_path:
        file_path = Path(config_path)
        if file_path.exists():
            merged_config = _deep_merge(merged_config, load_yaml_file(file_path))
        else:
            logger.warning(f"Config file not found: {config_path}")
    else:
        config_file = find_config_file(project_path)
        if config_file:
            merged_config = _deep_merge(merged_config, load_yaml_file(config_file))

    merged_config = _deep_merge(merged_config, load_config_from_env())

    if overrides:
        override_config: dict = {"llm": {}}
        for key, value in overrides.items():
            if key.startswith("llm_"):
                override_config["llm"][key[len("llm_"):]] = value
            else:
                override_config[key] = value
        merged_config = _deep_merge(merged_config, override_config)

    return RecallConfig.from_dict(merged_config)


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries. None values in override are ignored.
    """
    result = base.copy()

    for key, value in override.items():
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = _deep_merge(result[key], value)
        elif value is not None:
            result[key] = value

    return result
