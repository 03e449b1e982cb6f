# === FILE: site_indexer/config.py ===
"""
Модуль для загрузки и валидации конфигурации SiteIndexer.
Используется Pydantic для описания схемы и проверки данных.

Порядок приоритета: значения по умолчанию < файл YAML/JSON < переменные
окружения (``CRAWL_*``) < явные опции командной строки.
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class CrawlerConfig(BaseModel):
    """Конфигурация одного запуска шарда или слияния."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    user_agent: str = Field("SiteIndexerBot/1.0", min_length=1, description="Заголовок User-Agent.")

    shard_index: int = Field(0, ge=0, description="Номер шарда этого процесса.")
    shard_count: int = Field(1, ge=1, description="Общее число шардов.")
    max_domains_per_shard: int = Field(3000, ge=1, description="Мягкий лимит доменов на шард.")
    max_total_pages: int = Field(30000, ge=1, description="Лимит сохранённых страниц за запуск.")

    concurrency: int = Field(5, ge=1, description="Число параллельных воркеров.")
    rate_ms: int = Field(200, ge=0, description="Пауза перед каждым запросом (мс).")
    fetch_timeout_ms: int = Field(12000, gt=0, description="Таймаут одного запроса (мс).")
    robots_timeout_ms: int = Field(6000, gt=0, description="Таймаут загрузки robots.txt (мс).")
    host_timeout_ms: int = Field(120000, gt=0, description="Таймаут обработки одного хоста (мс).")

    retries: int = Field(2, ge=0, description="Повторные попытки загрузки страницы.")
    retry_backoff_ms: int = Field(600, ge=0, description="Базовая задержка backoff (мс).")
    max_backoff_ms: int = Field(20000, ge=0, description="Верхняя граница backoff (мс).")
    sitemap_retries: int = Field(1, ge=0, description="Повторные попытки загрузки sitemap.")

    max_pages_per_host: int = Field(10, ge=1, description="Лимит кандидатов на хост.")
    max_sitemaps_per_host: int = Field(50, ge=1, description="Лимит загружаемых sitemap на хост.")
    max_urls_per_host: int = Field(10000, ge=1, description="Лимит URL в журнале хоста.")
    max_field_chars: int = Field(100, ge=1, description="Лимит длины title/description/text.")
    max_text_chars: int = Field(120000, ge=1, description="Лимит текста абзацев до обрезки.")

    days_no_check: float = Field(4, ge=0, description="Не обходить хост повторно N дней.")
    force: bool = Field(False, description="Игнорировать days_no_check.")
    strict_extraction: bool = Field(True, description="Отбрасывать страницы без title/description/text.")
    respect_robots: bool = Field(True, description="Учитывать Disallow/Allow из robots.txt.")

    domains_file: Optional[Path] = Field(None, description="Файл со списком доменов (CSV).")
    artifacts_dir: Path = Field(Path("shard_artifacts"), description="Каталог артефактов шардов.")
    index_path: Path = Field(Path("site/index.json"), description="Канонический индекс.")
    state_path: Path = Field(Path("site/last_indexed.json"), description="Журнал обхода хостов.")

    @field_validator("user_agent", mode="before")
    def _strip_user_agent(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @model_validator(mode="after")
    def _check_shard_bounds(self) -> CrawlerConfig:
        if self.shard_index >= self.shard_count:
            raise ValueError(
                f"shard_index {self.shard_index} out of range for shard_count {self.shard_count}"
            )
        return self

    @property
    def ttl_ms(self) -> int:
        return int(self.days_no_check * 24 * 60 * 60 * 1000)

    def with_overrides(self, **overrides: Any) -> CrawlerConfig:
        """Возвращает новую проверенную конфигурацию; ``None`` значения пропускаются."""
        updates = {k: v for k, v in overrides.items() if v is not None}
        if not updates:
            return self
        return CrawlerConfig(**{**self.model_dump(), **updates})


_DEFAULT_CFG = Path("configs/default.yaml")

ENV_OVERRIDES: Mapping[str, str] = {
    "USER_AGENT": "user_agent",
    "SHARD_INDEX": "shard_index",
    "SHARD_COUNT": "shard_count",
    "CRAWL_CONCURRENCY": "concurrency",
    "CRAWL_RATE_MS": "rate_ms",
    "CRAWL_FETCH_TIMEOUT_MS": "fetch_timeout_ms",
    "CRAWL_PAGES_PER_DOMAIN": "max_pages_per_host",
    "CRAWL_DOMAINS_PER_RUN": "max_domains_per_shard",
    "CRAWL_MAX_TOTAL_PAGES": "max_total_pages",
    "CRAWL_MAX_TEXT_CHARS": "max_text_chars",
    "CRAWL_MAX_FIELD_CHARS": "max_field_chars",
    "CRAWL_RETRIES": "retries",
    "CRAWL_RETRY_BACKOFF_MS": "retry_backoff_ms",
    "CRAWL_DAYS_NO_CHECK": "days_no_check",
    "CRAWL_MAX_URLS_PER_HOST": "max_urls_per_host",
    "CRAWL_FORCE": "force",
}


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Неправильный YAML в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень YAML должен быть mapping, получено {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Неправильный JSON в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень JSON должен быть mapping, получено {type(data).__name__}")
    return data


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Собирает переопределения из переменных окружения (значения приводит Pydantic)."""
    env = os.environ if environ is None else environ
    return {field: env[name] for name, field in ENV_OVERRIDES.items() if env.get(name, "") != ""}


def load_config(
    path: Union[str, Path, None] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> CrawlerConfig:
    """
    Читает YAML или JSON и возвращает проверенный объект CrawlerConfig.
    Без пути использует configs/default.yaml, если он есть, иначе значения по умолчанию.
    Явно указанный, но отсутствующий файл - FileNotFoundError.
    """
    data: dict[str, Any] = {}
    if path is None:
        path_obj: Optional[Path] = _DEFAULT_CFG if _DEFAULT_CFG.is_file() else None
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    if path_obj is not None:
        suffix = path_obj.suffix.lower()
        if suffix in (".yaml", ".yml"):
            data = _read_yaml(path_obj)
        elif suffix == ".json":
            data = _read_json(path_obj)
        else:
            raise ValueError(f"Неподдерживаемый формат конфига: {suffix}")

    data.update(env_overrides(environ))
    return CrawlerConfig(**data)


__all__ = ["CrawlerConfig", "ENV_OVERRIDES", "env_overrides", "load_config"]
