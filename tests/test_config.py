# File: tests/test_config.py
import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from site_indexer.config import CrawlerConfig, env_overrides, load_config


def write_file(tmp_path: Path, content: str, suffix: str) -> Path:
    path = tmp_path / f"config{suffix}"
    path.write_text(content, encoding="utf-8")
    return path


@pytest.mark.parametrize(
    "content,suffix,expect_exc",
    [
        ("concurrency: 3\nshard_count: 4\nshard_index: 2", ".yaml", None),
        (json.dumps({"concurrency": 3, "shard_count": 4, "shard_index": 2}), ".json", None),
        ("shard_count: 2\nshard_index: 2", ".yaml", ValidationError),
        ("unknown_key: 1", ".yaml", ValidationError),
        ("concurrency: 0", ".yaml", ValidationError),
        ("::invalid yaml: [", ".yaml", ValueError),
        ("- just\n- a list", ".yaml", TypeError),
        ("{not json", ".json", ValueError),
        ("concurrency = 3", ".toml", ValueError),
    ],
)
def test_load_config_variants(tmp_path, content, suffix, expect_exc):
    cfg_path = write_file(tmp_path, content, suffix)
    if expect_exc:
        with pytest.raises(expect_exc):
            load_config(cfg_path, environ={})
    else:
        cfg = load_config(cfg_path, environ={})
        assert isinstance(cfg, CrawlerConfig)
        assert (cfg.concurrency, cfg.shard_count, cfg.shard_index) == (3, 4, 2)


def test_defaults_without_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    cfg = load_config(None, environ={})
    assert cfg == CrawlerConfig()
    assert cfg.max_field_chars == 100
    assert cfg.retries == 2
    assert cfg.ttl_ms == 4 * 24 * 60 * 60 * 1000


def test_repository_default_yaml_is_valid():
    cfg = load_config(Path(__file__).resolve().parents[1] / "configs" / "default.yaml", environ={})
    assert cfg.domains_file == Path("crawler/domains.csv")
    assert cfg.shard_count == 1


def test_explicit_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_environment_overrides_file(tmp_path):
    cfg_path = write_file(tmp_path, "concurrency: 3\nrate_ms: 50", ".yaml")
    environ = {"CRAWL_CONCURRENCY": "8", "SHARD_COUNT": "3", "SHARD_INDEX": "1", "CRAWL_FORCE": "true", "CRAWL_RETRIES": ""}
    cfg = load_config(cfg_path, environ=environ)
    assert cfg.concurrency == 8
    assert cfg.rate_ms == 50
    assert (cfg.shard_index, cfg.shard_count) == (1, 3)
    assert cfg.force is True
    assert cfg.retries == 2


def test_env_overrides_ignores_unknown_and_empty():
    assert env_overrides({"CRAWL_RATE_MS": "10", "CRAWL_UNKNOWN": "1", "USER_AGENT": ""}) == {"rate_ms": "10"}


def test_config_is_frozen_and_overrides_revalidate():
    cfg = CrawlerConfig()
    with pytest.raises(ValidationError):
        cfg.concurrency = 10
    updated = cfg.with_overrides(concurrency=10, rate_ms=None)
    assert updated.concurrency == 10
    assert updated.rate_ms == cfg.rate_ms
    assert cfg.concurrency == 5
    assert cfg.with_overrides() is cfg
    with pytest.raises(ValidationError):
        cfg.with_overrides(shard_index=5)


def test_user_agent_is_stripped():
    assert CrawlerConfig(user_agent="  Bot/2.0 ").user_agent == "Bot/2.0"
