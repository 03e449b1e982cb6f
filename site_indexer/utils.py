# File: site_indexer/utils.py
"""site_indexer.utils: Канонизация URL, стабильный хеш и мелкие вспомогательные функции.

Всё, что здесь вычисляется (канонический URL, ``stable_hash``), попадает в
артефакты на диске и сравнивается между процессами и запусками, поэтому
результат обязан быть детерминированным.
"""

from __future__ import annotations

import ipaddress
import re
from typing import Collection, Iterable, List, Optional, Sequence
from urllib.parse import quote, urlsplit, urlunsplit

from site_indexer.errors import InvalidUrlError
from site_indexer.logger import logger

__all__: Sequence[str] = (
    "canonicalize",
    "is_canonical_url",
    "origin_of",
    "hostname_of",
    "stable_hash",
    "record_id",
    "truncate",
    "host_matches",
    "is_sitemap_url",
    "remove_duplicates",
)

_MARKDOWN_LINK_RE = re.compile(r"^\[[^\]]*\]\(\s*([^)\s]+)\s*\)$")
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
_LABEL_RE = re.compile(r"^[a-z0-9_](?:[a-z0-9_-]*[a-z0-9_])?$")
_DEFAULT_PORTS = {"http": 80, "https": 443}
_PATH_SAFE = "/%:@!$&'()*+,;="
_QUERY_SAFE = _PATH_SAFE + "?"

_HASH_SEED = 5381
_HASH_MASK = 0xFFFFFFFF


def _unwrap(raw: str) -> str:
    """Снимает обёртки ``[text](url)`` и ``<url>``."""
    s = raw.strip()
    match = _MARKDOWN_LINK_RE.match(s)
    if match:
        s = match.group(1)
    if s.startswith("<") and s.endswith(">"):
        s = s[1:-1].strip()
    return s


def _canonical_host(hostname: str, raw: str) -> str:
    if ":" in hostname:
        try:
            return f"[{ipaddress.IPv6Address(hostname).compressed}]"
        except ValueError as exc:
            raise InvalidUrlError(raw, "bad IPv6 host") from exc
    try:
        ascii_host = hostname.encode("idna").decode("ascii")
    except UnicodeError as exc:
        raise InvalidUrlError(raw, "bad host name") from exc
    labels = ascii_host.rstrip(".").split(".")
    if not all(_LABEL_RE.match(label) for label in labels):
        raise InvalidUrlError(raw, "bad host name")
    return ascii_host


def canonicalize(raw: object) -> str:
    """Приводит URL/домен к каноническому абсолютному виду.

    Принимает голые домены, строки без схемы, ``<url>`` и Markdown-ссылки
    ``[text](url)``. Без схемы подставляется ``https``. Схема и хост
    приводятся к нижнему регистру, порт по умолчанию и фрагмент удаляются,
    пустой путь становится ``/``. Функция идемпотентна.

    Raises:
        InvalidUrlError: если строку не удаётся разобрать как http(s) URL.
    """
    if raw is None:
        raise InvalidUrlError(raw, "empty")
    s = _unwrap(str(raw))
    if not s:
        raise InvalidUrlError(raw, "empty")
    if not _SCHEME_RE.match(s):
        s = "https://" + s.lstrip("/")

    try:
        parts = urlsplit(s)
        port = parts.port
    except ValueError as exc:
        raise InvalidUrlError(raw, str(exc)) from exc

    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS:
        raise InvalidUrlError(raw, f"unsupported scheme {scheme!r}")
    if not parts.hostname or any(ch.isspace() for ch in parts.netloc):
        raise InvalidUrlError(raw, "missing host")

    netloc = _canonical_host(parts.hostname, s)
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"

    path = quote(parts.path or "/", safe=_PATH_SAFE)
    query = quote(parts.query, safe=_QUERY_SAFE)
    return urlunsplit((scheme, netloc, path, query, ""))


def is_canonical_url(value: str) -> bool:
    """True, если *value* уже в канонической форме."""
    try:
        return canonicalize(value) == value
    except InvalidUrlError:
        return False


def origin_of(url: str) -> str:
    """Возвращает ``scheme://host[:port]`` для абсолютного URL."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def hostname_of(url: str) -> Optional[str]:
    """Имя хоста без порта либо ``None``."""
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None


def stable_hash(value: str) -> int:
    """DJB2 над UTF-8 байтами строки, 32-битное беззнаковое целое.

    Используется и для распределения по шардам, и для ``id`` записей:
    значение не должно меняться между процессами и версиями.
    """
    h = _HASH_SEED
    for byte in value.encode("utf-8"):
        h = ((h << 5) + h + byte) & _HASH_MASK
    return h


def record_id(canonical_url: str) -> int:
    return stable_hash(canonical_url)


def truncate(value: object, limit: int) -> str:
    """Обрезает значение до *limit* символов; ``None`` превращается в ``""``."""
    if value is None:
        return ""
    text = str(value)
    return text if len(text) <= limit else text[:limit]


def host_matches(hostname: str, allowed: Iterable[str]) -> bool:
    """Хост совпадает с одним из разрешённых или является их поддоменом."""
    host = hostname.lower().rstrip(".")
    return any(host == a or host.endswith("." + a) for a in allowed)


def is_sitemap_url(url: str) -> bool:
    path = urlsplit(url).path.lower()
    return path.endswith(".xml") or path.endswith(".xml.gz")


def remove_duplicates(urls: Collection[str]) -> List[str]:
    """Удаляет дубликаты из списка URL, сохраняя порядок."""
    unique = list(dict.fromkeys(urls))
    removed = len(urls) - len(unique)
    if removed:
        logger.debug("Removed %d duplicate URLs", removed)
    return unique
