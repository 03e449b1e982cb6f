# File: site_indexer/storage/__init__.py
"""site_indexer.storage: чтение и атомарная запись JSON-артефактов (индекс, журнал, шарды)."""

from __future__ import annotations

from .json_store import (
    AtomicJsonArrayWriter,
    iter_records,
    load_json,
    stage_json,
    write_json_atomic,
)

__all__ = ["AtomicJsonArrayWriter", "iter_records", "load_json", "stage_json", "write_json_atomic"]
