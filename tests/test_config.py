# tests/test_config.py
from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from jyotish_engine.utils.config import EngineConfig, load_config


def test_defaults_without_a_file(tmp_path):
    cfg = load_config(str(tmp_path / "missing.yaml"), env={})
    assert cfg.engine.ayanamsha == "lahiri"
    assert cfg["cache"]["short_cap"] == 25
    ec = EngineConfig.from_config(cfg)
    assert ec == EngineConfig()


def test_yaml_then_env_precedence(tmp_path):
    path = tmp_path / "cfg.yaml"
    path.write_text(yaml.safe_dump({
        "engine": {"ayanamsha": "raman", "house_system": "koch"},
        "cache": {"short_ttl_days": 7, "store": "none"},
    }))
    cfg = load_config(str(path), env={"JYOTISH_HOUSE_SYSTEM": "equal", "JYOTISH_BULK_WORKERS": "0"})
    ec = EngineConfig.from_config(cfg)
    assert ec.ayanamsha == "raman"
    assert ec.house_system == "equal"
    assert ec.short_ttl_seconds == 7 * 86400.0
    assert ec.long_ttl_seconds == 365 * 86400.0
    assert ec.store == "none"
    assert ec.bulk_workers == 1


def test_config_path_from_env(tmp_path):
    path = tmp_path / "alt.yaml"
    path.write_text("engine:\n  provider: skyfield\n  ephemeris: /data/de421.bsp\n")
    ec = EngineConfig.from_config(load_config(env={"JYOTISH_CONFIG": str(path)}))
    assert ec.provider == "skyfield"
    assert ec.ephemeris == "/data/de421.bsp"


def test_empty_env_values_are_ignored(tmp_path):
    cfg = load_config(str(tmp_path / "none.yaml"), env={"JYOTISH_AYANAMSHA": ""})
    assert cfg.engine.ayanamsha == "lahiri"


def test_malformed_yaml_raises(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("engine: [unclosed\n")
    with pytest.raises(yaml.YAMLError):
        load_config(str(path), env={})


def test_bundled_defaults_file_matches_builtins():
    ec = EngineConfig.load(str(Path(__file__).resolve().parents[1] / "config" / "defaults.yaml"))
    assert ec.to_dict()["fast_capacity"] == 100
    assert ec.provider == "approximation"
