"""Tests for .dataplane/ project support and the init command."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest
import yaml
from dataplane.errors import ConfigError
from dataplane_cli.main import app
from dataplane_cli.project import find_project_root, load_project_config
from dataplane_cli.utils import build_config
from typer.testing import CliRunner

runner = CliRunner()


def _ctx(**obj) -> MagicMock:
    ctx = MagicMock()
    ctx.obj = obj
    return ctx


def test_find_project_root_exists(tmp_path: Path):
    (tmp_path / ".dataplane").mkdir()
    assert find_project_root(tmp_path) == tmp_path


def test_find_project_root_parent(tmp_path: Path):
    (tmp_path / ".dataplane").mkdir()
    child = tmp_path / "sub" / "deep"
    child.mkdir(parents=True)
    assert find_project_root(child) == tmp_path


def test_find_project_root_not_found(tmp_path: Path):
    assert find_project_root(tmp_path) is None


def test_load_project_config(tmp_path: Path):
    (tmp_path / ".dataplane").mkdir()
    (tmp_path / ".dataplane" / "config.yaml").write_text(yaml.dump({"url": "http://lb:5555"}))
    assert load_project_config(tmp_path) == {"url": "http://lb:5555"}


def test_load_project_config_missing(tmp_path: Path):
    (tmp_path / ".dataplane").mkdir()
    assert load_project_config(tmp_path) == {}


def test_load_project_config_not_mapping(tmp_path: Path):
    (tmp_path / ".dataplane").mkdir()
    (tmp_path / ".dataplane" / "config.yaml").write_text("- just\n- a list\n")
    with pytest.raises(ValueError, match="mapping"):
        load_project_config(tmp_path)


class TestBuildConfig:
    def test_project_file_env_and_flags(self, tmp_path: Path, monkeypatch):
        (tmp_path / ".dataplane").mkdir()
        (tmp_path / ".dataplane" / "config.yaml").write_text(
            yaml.dump({"url": "http://file:5555", "username": "file-user", "api_version": "v2", "retry_delay": 0.5})
        )
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("DATAPLANE_USERNAME", "env-user")
        monkeypatch.setenv("DATAPLANE_PASSWORD", "env-pw")
        monkeypatch.delenv("DATAPLANE_URL", raising=False)
        monkeypatch.delenv("DATAPLANE_API_VERSION", raising=False)

        config = build_config(_ctx(url="http://flag:5555", insecure=False))

        assert config.url == "http://flag:5555"
        assert config.username == "env-user"
        assert config.password == "env-pw"
        assert config.api_version == "v2"
        assert config.retry_delay == 0.5
        assert config.insecure is False

    def test_nothing_configured(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        for var in ("DATAPLANE_URL", "DATAPLANE_USERNAME", "DATAPLANE_PASSWORD"):
            monkeypatch.delenv(var, raising=False)
        with pytest.raises(ConfigError):
            build_config(_ctx())


class TestInit:
    def test_init_writes_config(self, tmp_path: Path):
        result = runner.invoke(app, ["init", "--dir", str(tmp_path), "--url", "https://lb:5555", "--api-version", "v2"])
        assert result.exit_code == 0, result.output
        data = yaml.safe_load((tmp_path / ".dataplane" / "config.yaml").read_text())
        assert data["url"] == "https://lb:5555"
        assert data["api_version"] == "v2"
        assert data["max_attempts"] == 10
        assert "password" not in data

    def test_init_refuses_overwrite(self, tmp_path: Path):
        runner.invoke(app, ["init", "--dir", str(tmp_path)])
        result = runner.invoke(app, ["init", "--dir", str(tmp_path)])
        assert result.exit_code == 1
        assert "already" in result.output

    def test_init_force(self, tmp_path: Path):
        runner.invoke(app, ["init", "--dir", str(tmp_path)])
        result = runner.invoke(app, ["init", "--dir", str(tmp_path), "--force", "--username", "ops"])
        assert result.exit_code == 0, result.output
        data = yaml.safe_load((tmp_path / ".dataplane" / "config.yaml").read_text())
        assert data["username"] == "ops"
