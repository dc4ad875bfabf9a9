from __future__ import annotations

import re
from typing import Optional

from .bro_nodes import SourceLocation

_FRAMEWORK_SEGMENT = re.compile(r"^(.*)\.(framework|lib)$")
_CONST_RE = re.compile(r"\s*\bconst\b\s*")
_RECORD_PREFIX_RE = re.compile(r"^(struct|union|enum)\s*")
_NULLABILITY_RE = re.compile(r"\s*_(nonnull|nullable|null_unspecified)\b\s*", re.IGNORECASE)
_GENERIC_ARGS_RE = re.compile(r"<.*>")
_PROTOCOL_QUALIFIED_RE = re.compile(r"^(id|NSObject)<.*>$")


def location_to_id(location: SourceLocation) -> str:
    return f"{location.file}:{location.offset}"


def location_to_s(location: Optional[SourceLocation]) -> str:
    if location is None:
        return "?"
    return f"{location.file}:{location.line}:{location.column}"


def framework_from_path(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    for segment in reversed(path.replace("\\", "/").split("/")):
        match = _FRAMEWORK_SEGMENT.match(segment)
        if match:
            return match.group(1)
    return None


def _strip_const(name: str) -> str:
    return _CONST_RE.sub(" ", name).strip()


def _normalize_spelling(name: str) -> str:
    name = _strip_const(name)
    return _RECORD_PREFIX_RE.sub("", name, count=1)


def _strip_nullability(name: str) -> str:
    return re.sub(r"\s+", " ", _NULLABILITY_RE.sub(" ", name)).strip()


def _generic_free_name(name: str) -> str:
    if _PROTOCOL_QUALIFIED_RE.match(name):
        return name
    return _strip_nullability(_GENERIC_ARGS_RE.sub("", name))


def _cache_spelling(spelling: str) -> str:
    return re.sub(r"\s+", " ", _strip_nullability(_strip_const(spelling)))


def _upcase_first(name: str) -> str:
    return name[:1].upper() + name[1:]


def _downcase_first(name: str) -> str:
    return name[:1].lower() + name[1:]


def _camelize(name: str) -> str:
    return "".join(_upcase_first(part) for part in re.split(r"[_\s]+", name) if part)


def _underscore(name: str) -> str:
    out = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    out = re.sub(r"([a-z\d])([A-Z])", r"\1_\2", out)
    return out.replace("-", "_").lower()


def _escape_leading_digit(name: str) -> str:
    if name and name[0].isdigit():
        return "_" + name
    return name


def _shared_prefix(names: list[str]) -> str:
    if not names:
        return ""
    low, high = min(names), max(names)
    idx = 0
    while idx < len(low) and low[idx] == high[idx]:
        idx += 1
    return low[:idx]
