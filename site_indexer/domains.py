# File: site_indexer/domains.py
"""site_indexer.domains: чтение списка доменов (CSV или по одному на строку)."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable, List, Union

from site_indexer.errors import InvalidUrlError
from site_indexer.logger import logger
from site_indexer.models import DomainEntry

__all__ = ["parse_domains", "load_domains"]


def _pick_value(row: List[str]) -> str:
    """Домен берётся из второй колонки, если она не пустая, иначе из первой."""
    if len(row) > 1 and row[1].strip():
        return row[1].strip()
    return row[0].strip() if row else ""


def parse_domains(lines: Iterable[str]) -> List[DomainEntry]:
    """Разбирает строки списка доменов; невалидные записи пропускаются с предупреждением."""
    entries: List[DomainEntry] = []
    hosts: set[str] = set()
    for row in csv.reader(lines):
        value = _pick_value(row)
        if not value or value.startswith("#"):
            continue
        try:
            entry = DomainEntry.from_raw(value)
        except InvalidUrlError as exc:
            logger.warning("Skipping invalid domain entry %r: %s", value, exc.reason)
            continue
        if entry.host in hosts:
            continue
        hosts.add(entry.host)
        entries.append(entry)
    return entries


def load_domains(path: Union[str, Path]) -> List[DomainEntry]:
    """Читает файл доменов. Отсутствие файла - фатальная ошибка (FileNotFoundError)."""
    p = Path(path).expanduser()
    if not p.is_file():
        logger.error("Domain list not found: %s", p)
        raise FileNotFoundError(f"Domain list not found: {p}")
    with p.open(encoding="utf-8", newline="") as fh:
        entries = parse_domains(fh)
    logger.info("Loaded %d domains from %s", len(entries), p)
    return entries
