"""Tests for layered configuration loading."""

import hashlib
import os
from pathlib import Path

import pytest
from unittest.mock import patch

from code_recall.config import (
    RecallConfig,
    _deep_merge,
    find_config_file,
    load_config,
    load_config_from_env,
    load_yaml_file,
    project_db_path,
)


@pytest.fixture
def clean_env():
    """Run with no code-recall or provider variables set."""
    keep = {
        k: v for k, v in os.environ.items()
        if not k.startswith("CODE_RECALL_") and k not in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY")
    }
    with patch.dict(os.environ, keep, clear=True):
        yield


class TestRecallConfig:
    """Test cases for configuration defaults and conversion."""

    def test_defaults(self):
        config = RecallConfig()
        assert config.similarity_threshold == 0.3
        assert config.dedup_threshold == 0.9
        assert config.max_memories_per_read == 5
        assert config.max_memories_per_session == 20
        assert config.search_limit == 10
        assert config.dimensions == 384
        assert config.embedding_model == "all-MiniLM-L6-v2"
        assert config.recall_dir == "~/.code-recall"

    def test_from_dict_ignores_unknown_keys(self):
        config = RecallConfig.from_dict({
            "similarity_threshold": 0.5,
            "bogus": True,
            "llm": {"provider": "openai", "unknown": 1},
        })
        assert config.similarity_threshold == 0.5
        assert config.llm.provider == "openai"

    def test_to_dict_redacts_api_key(self):
        config = RecallConfig.from_dict({"llm": {"api_key": "secret"}})
        assert config.to_dict()["llm"]["api_key"] == "***"

    def test_to_llm_config(self):
        config = RecallConfig.from_dict({"llm": {"provider": "openai", "max_retries": 5}})
        llm_config = config.llm.to_llm_config()
        assert llm_config.provider == "openai"
        assert llm_config.model == "gpt-4o-mini"
        assert llm_config.max_retries == 5


class TestProjectDbPath:
    """Test cases for per-project database paths."""

    def test_layout(self, tmp_path):
        identity = "/home/dev/projects/events"
        digest = hashlib.sha256(identity.encode("utf-8")).hexdigest()[:12]

        path = project_db_path(identity, str(tmp_path))

        assert path == tmp_path / digest / "memories.db"

    def test_distinct_projects(self, tmp_path):
        assert project_db_path("/a", str(tmp_path)) != project_db_path("/b", str(tmp_path))

    def test_expands_home(self):
        path = project_db_path("/a")
        assert str(path).startswith(str(Path.home()))

    def test_config_helper(self, tmp_path):
        config = RecallConfig(recall_dir=str(tmp_path))
        assert config.db_path_for("/a") == project_db_path("/a", str(tmp_path))


class TestConfigFiles:
    """Test cases for YAML configuration files."""

    def test_find_in_parent(self, tmp_path):
        (tmp_path / ".code-recall.yml").write_text("search_limit: 3\n")
        nested = tmp_path / "src" / "pkg"
        nested.mkdir(parents=True)

        assert find_config_file(str(nested)) == tmp_path / ".code-recall.yml"

    def test_yaml_extension(self, tmp_path):
        (tmp_path / ".code-recall.yaml").write_text("search_limit: 3\n")
        assert find_config_file(str(tmp_path)) == tmp_path / ".code-recall.yaml"

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("similarity_threshold: 0.4\nllm:\n  provider: openai\n")
        assert load_yaml_file(path) == {"similarity_threshold": 0.4, "llm": {"provider": "openai"}}

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("key: [unclosed\n")
        assert load_yaml_file(path) == {}

    def test_non_mapping_yaml(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("- a\n- b\n")
        assert load_yaml_file(path) == {}


class TestLoadConfig:
    """Test cases for configuration precedence."""

    def test_env_variables(self, clean_env):
        with patch.dict(os.environ, {
            "CODE_RECALL_DIR": "/tmp/recall",
            "CODE_RECALL_SIMILARITY_THRESHOLD": "0.45",
            "CODE_RECALL_DEDUP_THRESHOLD": "0.95",
            "CODE_RECALL_EMBEDDING_MODEL": "other-model",
            "CODE_RECALL_PROVIDER": "openai",
            "CODE_RECALL_MODEL": "gpt-4o",
            "OPENAI_API_KEY": "sk-test",
        }):
            env = load_config_from_env()

        assert env["recall_dir"] == "/tmp/recall"
        assert env["similarity_threshold"] == 0.45
        assert env["dedup_threshold"] == 0.95
        assert env["embedding_model"] == "other-model"
        assert env["llm"] == {"provider": "openai", "model": "gpt-4o", "api_key": "sk-test"}

    def test_invalid_number_ignored(self, clean_env):
        with patch.dict(os.environ, {"CODE_RECALL_SIMILARITY_THRESHOLD": "high"}):
            assert "similarity_threshold" not in load_config_from_env()

    def test_provider_detected_from_key(self, clean_env):
        with patch.dict(os.environ, {"OPENAI_API_KEY": "sk-test"}):
            env = load_config_from_env()
        assert env["llm"] == {"provider": "openai", "api_key": "sk-test"}

    def test_anthropic_key_wins(self, clean_env):
        with patch.dict(os.environ, {"OPENAI_API_KEY": "sk-o", "ANTHROPIC_API_KEY": "sk-a"}):
            env = load_config_from_env()
        assert env["llm"] == {"provider": "anthropic", "api_key": "sk-a"}

    def test_precedence(self, clean_env, tmp_path):
        config_file = tmp_path / ".code-recall.yml"
        config_file.write_text(
            "similarity_threshold: 0.4\n"
            "dedup_threshold: 0.8\n"
            "search_limit: 7\n"
            "llm:\n  provider: openai\n  model: gpt-4o\n"
        )

        with patch.dict(os.environ, {"CODE_RECALL_DEDUP_THRESHOLD": "0.85"}):
            config = load_config(
                config_path=str(config_file),
                search_limit=3,
                llm_model="gpt-4.1-mini",
            )

        assert config.similarity_threshold == 0.4
        assert config.dedup_threshold == 0.85
        assert config.search_limit == 3
        assert config.llm.provider == "openai"
        assert config.llm.model == "gpt-4.1-mini"

    def test_project_file_discovered(self, clean_env, tmp_path):
        (tmp_path / ".code-recall.yml").write_text("max_memories_per_read: 2\n")
        assert load_config(project_path=str(tmp_path)).max_memories_per_read == 2

    def test_missing_explicit_file(self, clean_env, tmp_path):
        config = load_config(config_path=str(tmp_path / "missing.yml"))
        assert config.similarity_threshold == 0.3

    def test_none_overrides_ignored(self, clean_env, tmp_path):
        config = load_config(config_path=str(tmp_path / "missing.yml"), search_limit=None)
        assert config.search_limit == 10


class TestDeepMerge:
    def test_nested(self):
        merged = _deep_merge({"a": 1, "llm": {"provider": "x", "model": "m"}}, {"llm": {"model": "n"}})
        assert merged == {"a": 1, "llm": {"provider": "x", "model": "n"}}

    def test_none_values_skipped(self):
        assert _deep_merge({"a": 1}, {"a": None, "b": 2}) == {"a": 1, "b": 2}
