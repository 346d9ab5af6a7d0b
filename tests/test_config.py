"""Tests for TreeConfig validation and environment-driven settings."""

import pytest
from pydantic import ValidationError

from nestedset.config import TreeConfig, load_settings

ENV_VARS = ("NESTEDSET_DB_PATH", "NESTEDSET_TABLE", "NESTEDSET_SCOPE", "NESTEDSET_SOFT_DELETE")


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestTreeConfig:
    def test_defaults(self):
        config = TreeConfig()
        assert config.table == "nodes"
        assert (config.parent_id, config.lft, config.rgt) == ("parent_id", "lft", "rgt")
        assert config.scope == ()
        assert config.soft_delete is False

    def test_rejects_unsafe_identifier(self):
        with pytest.raises(ValidationError):
            TreeConfig(table="nodes; DROP TABLE nodes")

    def test_rejects_unsafe_scope_column(self):
        with pytest.raises(ValidationError):
            TreeConfig(scope=("tree id",))

    def test_is_frozen(self):
        config = TreeConfig()
        with pytest.raises(ValidationError):
            config.table = "other"


class TestLoadSettings:
    def test_defaults_without_env(self, clean_env, tmp_path):
        settings = load_settings(tmp_path / ".env")
        assert settings.db_path == "nestedset.db"
        assert settings.tree.scope == ("tree_id",)
        assert settings.tree.soft_delete is True

    def test_reads_environment(self, clean_env, tmp_path):
        clean_env.setenv("NESTEDSET_TABLE", "categories")
        clean_env.setenv("NESTEDSET_SCOPE", "menu_id, site_id")
        clean_env.setenv("NESTEDSET_SOFT_DELETE", "false")
        settings = load_settings(tmp_path / ".env")
        assert settings.tree.table == "categories"
        assert settings.tree.scope == ("menu_id", "site_id")
        assert settings.tree.soft_delete is False

    def test_empty_scope_means_unscoped(self, clean_env, tmp_path):
        clean_env.setenv("NESTEDSET_SCOPE", "")
        assert load_settings(tmp_path / ".env").tree.scope == ()

    def test_reads_dotenv_file(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("NESTEDSET_DB_PATH=/tmp/trees.db\n")
        assert load_settings(env_file).db_path == "/tmp/trees.db"
