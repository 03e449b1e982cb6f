# site_indexer/storage/json_store.py

"""
JSON artifacts on disk.

Every file is produced in a temporary file next to its destination and then
moved into place with :func:`os.replace`, so readers see either the old or
the new file, never a partial one.

Record collections are JSON arrays written one record per line::

    [
    {"id": 1, "url": "https://a.example/", ...},
    {"id": 2, "url": "https://b.example/", ...}
    ]

which lets :func:`iter_records` stream them back without loading the whole
array. Legacy pretty-printed arrays and NDJSON files are read as well.
"""
from __future__ import annotations

import errno
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Iterator, Optional, TextIO, Union

from site_indexer.errors import MalformedArtifactError
from site_indexer.logger import logger

PathT = Union[str, Path]


def _open_temp(path: Path) -> tuple[TextIO, Path]:
    if path.is_dir():
        raise IsADirectoryError(errno.EISDIR, "destination is a directory", str(path))
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f"{path.name}.tmp.")
    # mkstemp creates the file with mode 0600
    os.chmod(tmp_name, 0o644)
    return os.fdopen(fd, "w", encoding="utf-8"), Path(tmp_name)


def _finish(fh: TextIO) -> None:
    fh.flush()
    os.fsync(fh.fileno())
    fh.close()


def _discard(tmp: Path) -> None:
    try:
        tmp.unlink()
    except FileNotFoundError:
        pass


def stage_json(path: PathT, obj: Any, *, indent: Optional[int] = 2) -> Path:
    """Serialize *obj* into a synced temp file next to *path*; returns the temp path.

    The caller moves it into place with :func:`os.replace` or removes it.
    """
    target = Path(path)
    fh, tmp = _open_temp(target)
    try:
        json.dump(obj, fh, ensure_ascii=False, indent=indent)
        fh.write("\n")
        _finish(fh)
    except BaseException:
        if not fh.closed:
            fh.close()
        _discard(tmp)
        raise
    return tmp


def write_json_atomic(path: PathT, obj: Any, *, indent: Optional[int] = 2) -> Path:
    """Serialize *obj* to *path* through a temp file + atomic rename."""
    target = Path(path)
    tmp = stage_json(target, obj, indent=indent)
    try:
        os.replace(tmp, target)
    except BaseException:
        _discard(tmp)
        raise
    return target


class AtomicJsonArrayWriter:
    """Streams records into a JSON array file that appears atomically.

    Use as a context manager; with ``auto_commit=False`` the caller decides
    when to :meth:`commit` (the merge commits index and ledger together).
    An exception inside the ``with`` block discards the temp file and leaves
    any existing destination untouched.
    """

    def __init__(self, path: PathT, *, auto_commit: bool = True) -> None:
        self.path = Path(path)
        self.auto_commit = auto_commit
        self.count = 0
        self._fh: Optional[TextIO] = None
        self._tmp: Optional[Path] = None
        self._closed = False

    def __enter__(self) -> AtomicJsonArrayWriter:
        self._fh, self._tmp = _open_temp(self.path)
        self._fh.write("[")
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.abort()
            return
        self.close()
        if self.auto_commit:
            self.commit()

    def write(self, obj: Any) -> None:
        if self._fh is None or self._closed:
            raise RuntimeError("writer is not open")
        self._fh.write(",\n" if self.count else "\n")
        self._fh.write(json.dumps(obj, ensure_ascii=False))
        self.count += 1

    def close(self) -> None:
        if self._fh is None or self._closed:
            return
        self._fh.write("\n]\n")
        _finish(self._fh)
        self._closed = True

    def commit(self) -> Path:
        if self._tmp is None or not self._closed:
            raise RuntimeError("writer must be closed before commit")
        os.replace(self._tmp, self.path)
        self._tmp = None
        return self.path

    def abort(self) -> None:
        if self._fh is not None and not self._fh.closed:
            self._fh.close()
        if self._tmp is not None:
            _discard(self._tmp)
            self._tmp = None


def load_json(path: PathT, default: Any = None) -> Any:
    """Read a JSON file; a missing or corrupt file yields *default*."""
    p = Path(path)
    try:
        return json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return default
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.warning("Cannot read %s: %s", p, exc)
        return default


def _first_char(path: Path) -> str:
    with path.open(encoding="utf-8") as fh:
        for line in fh:
            stripped = line.strip()
            if stripped:
                return stripped[0]
    return ""


def _line_items(path: Path) -> Iterator[Any]:
    with path.open(encoding="utf-8") as fh:
        for line in fh:
            s = line.strip()
            if s in ("", "[", "]"):
                continue
            s = s.rstrip(",")
            if s.startswith("["):
                s = s[1:]
            if s.endswith("]"):
                s = s[:-1]
            if not s:
                continue
            item = json.loads(s)
            if not isinstance(item, dict):
                raise ValueError("not a record per line")
            yield item


_BAD_LINE = object()


def _ndjson_items(path: Path) -> Iterator[Any]:
    with path.open(encoding="utf-8") as fh:
        for line in fh:
            s = line.strip()
            if not s:
                continue
            try:
                yield json.loads(s)
            except json.JSONDecodeError:
                yield _BAD_LINE


def iter_records(path: PathT) -> Iterator[Any]:
    """Yield the items of a record collection file.

    The whole file is checked before the first item is yielded: a damaged
    array or bytes that are not UTF-8 raise :class:`MalformedArtifactError`,
    so a consumer never sees part of a bad file. NDJSON lines that are valid
    text but not JSON are skipped.

    Pretty-printed arrays (the layout of indexes written before records were
    kept one per line) cannot be read line by line and are decoded in one
    piece. That happens once per legacy index: the next merge rewrites it in
    the streamable layout.
    """
    p = Path(path)
    try:
        head = _first_char(p)
    except UnicodeDecodeError as exc:
        raise MalformedArtifactError(p, str(exc)) from exc
    if not head:
        return

    if head == "[":
        try:
            for _ in _line_items(p):
                pass
        except (ValueError, UnicodeDecodeError):
            try:
                data = json.loads(p.read_text(encoding="utf-8"))
            except (ValueError, UnicodeDecodeError) as exc:
                raise MalformedArtifactError(p, f"invalid JSON array: {exc}") from exc
            if not isinstance(data, list):
                raise MalformedArtifactError(p, "top level is not an array")
            logger.info("Read %s as a legacy array (%d items, loaded at once)", p, len(data))
            yield from data
            return
        yield from _line_items(p)
        return

    bad = 0
    try:
        for item in _ndjson_items(p):
            if item is _BAD_LINE:
                bad += 1
    except UnicodeDecodeError as exc:
        raise MalformedArtifactError(p, f"not UTF-8: {exc}") from exc
    for item in _ndjson_items(p):
        if item is not _BAD_LINE:
            yield item
    if bad:
        logger.warning("Skipped %d undecodable lines in %s", bad, p)


__all__ = ["AtomicJsonArrayWriter", "iter_records", "load_json", "stage_json", "write_json_atomic"]
