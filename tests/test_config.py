"""Tests for configuration loading and override behavior.

Environment variables override YAML values, which override model defaults.
"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from degrees.utils.config import MIN_CAST, get_config, load_config, reset_config


@pytest.fixture(autouse=True)
def _reset_global_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Ensure config singleton doesn't leak between tests."""
    # Keep a developer's local .env and shell exports out of the tests
    monkeypatch.chdir(tmp_path)
    for name in ("TMDB_API_TOKEN", "NEO4J_PASSWORD", "GRAPH_BACKEND", "TMDB__RATE_LIMIT"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


def _write_yaml(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")


def test_yaml_loads_defaults(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(
        cfg_path,
        {
            "database": {
                "neo4j_password": "yaml_pw",
            },
            "pipeline": {"max_cast": 15},
        },
    )

    cfg = load_config(cfg_path)

    assert cfg.database.neo4j_password == "yaml_pw"
    assert cfg.pipeline.max_cast == 15
    assert cfg.pipeline.max_pages == 100
    assert cfg.tmdb.rate_limit == 4.0
    assert cfg.tmdb.burst == 5
    assert cfg.tmdb.max_retries == 3
    assert get_config() is cfg


def test_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(
        cfg_path,
        {
            "database": {
                "neo4j_password": "yaml_pw",
            }
        },
    )

    monkeypatch.setenv("NEO4J_PASSWORD", "env_pw")

    cfg = load_config(cfg_path)

    assert cfg.database.neo4j_password == "env_pw"


def test_api_token_from_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {"tmdb": {"api_token": "yaml_token"}})

    monkeypatch.setenv("TMDB_API_TOKEN", "env_token")

    cfg = load_config(cfg_path, require_api_token=True)

    assert cfg.api_token == "env_token"


def test_missing_api_token_rejected_for_ingestion(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {})

    with pytest.raises(ValueError, match="TMDB API token required"):
        load_config(cfg_path, require_api_token=True)

    # Query-only use does not need a token
    assert load_config(cfg_path).api_token == ""


def test_non_positive_rate_rejected(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {"tmdb": {"rate_limit": 0}})

    with pytest.raises(ValueError, match="rate_limit must be positive"):
        load_config(cfg_path)


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_get_config_before_load_raises() -> None:
    with pytest.raises(RuntimeError, match="not initialized"):
        get_config()


def test_invalid_yaml_root_type_raises(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(yaml.safe_dump(["not", "a", "mapping"]), encoding="utf-8")

    with pytest.raises(ValueError, match="YAML config root must be a mapping"):
        load_config(cfg_path)


def test_cast_cap_below_minimum_rejected(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {"pipeline": {"max_cast": MIN_CAST - 1}})

    with pytest.raises(ValueError, match="max_cast must be at least 2"):
        load_config(cfg_path)
