from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional, Union

import yaml

from .bro_attributes import DEFAULT_IGNORED_ATTRIBUTES, Version, parse_version
from .bro_errors import ConfigError
from .bro_nodes import NodeKind
from .bro_utils import _camelize, _downcase_first, _underscore, _upcase_first

_PLACEHOLDER_RE = re.compile(r"#\{\s*(?:g|captures)\[(\d+)\]((?:\.\w+)*)\s*\}")

TEMPLATE_FILTERS = {
    "camelize": _camelize,
    "underscore": _underscore,
    "upcase": str.upper,
    "downcase": str.lower,
    "capitalize": str.capitalize,
    "upcase_first": _upcase_first,
    "downcase_first": _downcase_first,
    "to_s": str,
}


@dataclass(frozen=True)
class _Literal:
    text: str


@dataclass(frozen=True)
class _CaptureRef:
    index: int
    filters: tuple[str, ...] = ()


@dataclass(frozen=True)
class Template:
    """A parsed `#{g[N]}` template.

    Rendering walks the parts and never evaluates configuration text.
    """

    parts: tuple[Union[_Literal, _CaptureRef], ...]

    @classmethod
    def parse(cls, text: str) -> "Template":
        parts: list[Union[_Literal, _CaptureRef]] = []
        pos = 0
        for match in _PLACEHOLDER_RE.finditer(text):
            if match.start() > pos:
                parts.append(_Literal(text[pos:match.start()]))
            filters = tuple(name for name in match.group(2).split(".") if name)
            for name in filters:
                if name not in TEMPLATE_FILTERS:
                    raise ConfigError(f"unknown template filter '{name}' in '{text}'")
            parts.append(_CaptureRef(int(match.group(1)), filters))
            pos = match.end()
        if "#{" in text[pos:]:
            raise ConfigError(f"unsupported template expression in '{text}'")
        if pos < len(text):
            parts.append(_Literal(text[pos:]))
        return cls(tuple(parts))

    def render(self, captures: tuple[Optional[str], ...]) -> str:
        out: list[str] = []
        for part in self.parts:
            if isinstance(part, _Literal):
                out.append(part.text)
                continue
            if part.index >= len(captures):
                raise ConfigError(f"template refers to capture {part.index} but only {len(captures)} captured")
            value = captures[part.index] or ""
            for name in part.filters:
                value = TEMPLATE_FILTERS[name](value)
            out.append(value)
        return "".join(out)


def _is_templated(value: Any) -> bool:
    return isinstance(value, str) and "#{" in value


@dataclass
class _PatternEntry:
    key: str
    pattern: re.Pattern
    value: Any
    templates: dict[str, Template] = field(default_factory=dict)
    value_template: Optional[Template] = None


def _compile_key(key: str) -> re.Pattern:
    pattern = key
    if pattern.startswith("+"):
        pattern = "\\" + pattern
    if pattern.startswith("^"):
        pattern = pattern[1:]
    if pattern.endswith("$") and not pattern.endswith("\\$"):
        pattern = pattern[:-1]
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigError(f"invalid configuration pattern '{key}': {exc}") from exc


class PatternTable:
    """Name-keyed configuration table with full-match regex fallback."""

    def __init__(self, table: Optional[dict[str, Any]] = None, label: str = "") -> None:
        if table is not None and not isinstance(table, dict):
            raise ConfigError(f"'{label}' must be a mapping")
        self.table: dict[str, Any] = dict(table or {})
        self.label = label
        self._entries: Optional[list[_PatternEntry]] = None

    def _compiled(self) -> list[_PatternEntry]:
        if self._entries is None:
            entries = []
            for key, value in self.table.items():
                entry = _PatternEntry(key=str(key), pattern=_compile_key(str(key)), value=value)
                if isinstance(value, dict):
                    for vkey, vvalue in value.items():
                        if _is_templated(vvalue):
                            entry.templates[vkey] = Template.parse(vvalue)
                elif _is_templated(value):
                    entry.value_template = Template.parse(value)
                entries.append(entry)
            self._entries = entries
        return self._entries

    def __contains__(self, name: str) -> bool:
        return name in self.table

    def __len__(self) -> int:
        return len(self.table)

    def items(self):
        return self.table.items()

    def match(self, name: str) -> tuple[Optional[_PatternEntry], tuple[Optional[str], ...]]:
        for entry in self._compiled():
            match = entry.pattern.fullmatch(name)
            if match is not None:
                return entry, match.groups()
        return None, ()

    def find_matching(self, name: str) -> Optional[Any]:
        entry, captures = self.match(name)
        if entry is None:
            return None
        if not captures or not isinstance(entry.value, dict):
            return entry.value
        specialized = dict(entry.value)
        for key, template in entry.templates.items():
            specialized[key] = template.render(captures)
        return specialized

    def get(self, name: str) -> Optional[Any]:
        value = self.table.get(name)
        if value is not None:
            return value
        return self.find_matching(name)

    def match_value(self, name: str) -> Optional[Any]:
        """Looks up a scalar entry, rendering its template with the captures."""
        entry, captures = self.match(name)
        if entry is None:
            return None
        if captures and entry.value_template is not None:
            return entry.value_template.render(captures)
        return entry.value


ENTITY_KIND_NAMES = (
    "struct",
    "function",
    "property",
    "class",
    "protocol",
    "category",
    "global_value",
    "enum",
)


def _as_mapping(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def _version_value(value: Any, key: str) -> Optional[Version]:
    if value is None:
        return None
    version = parse_version(str(value))
    if version is None:
        raise ConfigError(f"'{key}' is not a version: {value!r}")
    return version


@dataclass
class BindingConfig:
    raw: dict[str, Any] = field(default_factory=dict, repr=False)
    typedefs: dict[str, str] = field(default_factory=dict)
    structdefs: dict[str, str] = field(default_factory=dict)
    enums: PatternTable = field(default_factory=PatternTable)
    functions: PatternTable = field(default_factory=PatternTable)
    values: PatternTable = field(default_factory=PatternTable)
    constants: PatternTable = field(default_factory=PatternTable)
    classes: PatternTable = field(default_factory=PatternTable)
    protocols: PatternTable = field(default_factory=PatternTable)
    categories: PatternTable = field(default_factory=PatternTable)
    framework: Optional[str] = None
    internal_frameworks: list[str] = field(default_factory=list)
    path_match: Optional[re.Pattern] = None
    target_platform: str = "ios"
    platform_version: Optional[Version] = (11, 0, 0)
    deprecated_version: Version = (6, 0, 0)
    ignored_attributes: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORED_ATTRIBUTES))
    enum_markers: tuple[str, ...] = ("CF_ENUM", "NS_ENUM")
    options_markers: tuple[str, ...] = ("CF_OPTIONS", "NS_OPTIONS")
    ignored_cursor_kinds: dict[str, frozenset[NodeKind]] = field(default_factory=dict)
    default_class: str = "Functions"

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "BindingConfig":
        data = dict(data or {})
        config = cls(raw=data)
        config.typedefs = {str(k): str(v) for k, v in _as_mapping(data, "typedefs").items()}
        config.structdefs = {str(k): str(v) for k, v in _as_mapping(data, "structdefs").items()}
        for key in ("enums", "functions", "values", "constants", "classes", "protocols", "categories"):
            setattr(config, key, PatternTable(_as_mapping(data, key), key))
        config.framework = data.get("framework")
        config.internal_frameworks = list(data.get("internal_frameworks") or [])
        if data.get("path_match"):
            try:
                config.path_match = re.compile(str(data["path_match"]))
            except re.error as exc:
                raise ConfigError(f"invalid path_match: {exc}") from exc
        config.target_platform = str(data.get("target_platform", config.target_platform))
        if "platform_version" in data:
            config.platform_version = _version_value(data["platform_version"], "platform_version")
        if "deprecated_version" in data:
            config.deprecated_version = _version_value(data["deprecated_version"], "deprecated_version")
        config.ignored_attributes.extend(str(p) for p in data.get("ignored_attributes") or [])
        markers = _as_mapping(data, "enum_markers")
        if markers:
            config.enum_markers = tuple(markers.get("enum", config.enum_markers))
            config.options_markers = tuple(markers.get("options", config.options_markers))
        for entity_kind, kinds in _as_mapping(data, "ignored_cursor_kinds").items():
            if entity_kind not in ENTITY_KIND_NAMES:
                raise ConfigError(f"ignored_cursor_kinds: unknown entity kind '{entity_kind}'")
            resolved = set()
            for kind in kinds or []:
                name = str(kind).upper()
                if name not in NodeKind.__members__:
                    raise ConfigError(f"ignored_cursor_kinds: unknown cursor kind '{kind}'")
                resolved.add(NodeKind[name])
            config.ignored_cursor_kinds[entity_kind] = frozenset(resolved)
        config.default_class = str(data.get("default_class") or data.get("framework") or "Functions")
        return config

    def is_included(self, entity) -> bool:
        location = getattr(entity, "location", None)
        path = location.file if location is not None else None
        if self.path_match is not None and path and self.path_match.search(path):
            return True
        framework = getattr(entity, "framework", None)
        if self.framework and framework == self.framework:
            return True
        return bool(framework) and framework in self.internal_frameworks

    def extra_ignored_kinds(self, entity_kind: str) -> frozenset[NodeKind]:
        return self.ignored_cursor_kinds.get(entity_kind, frozenset())

    def get_class_conf(self, name: str):
        return self.classes.get(name)

    def get_protocol_conf(self, name: str):
        return self.protocols.get(name)

    def get_category_conf(self, name: str):
        return self.categories.get(name)

    def get_function_conf(self, name: str):
        return self.functions.get(name)

    def get_value_conf(self, name: str):
        return self.values.get(name)

    def get_constant_conf(self, name: str):
        return self.constants.get(name)

    def get_enum_conf(self, name: str):
        return self.enums.get(name)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


# Catch-all entries of an included unit stay with that unit.
_CATCH_ALL_NAMES = {
    "functions": "Function__#{g[0]}",
    "values": "Value__#{g[0]}",
    "constants": "Constant__#{g[0]}",
}


def _excluded(table: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in table.items():
        value = dict(value or {})
        value["exclude"] = True
        out[key] = value
    return out


def _find_include(name: str, base_dir: Path, include_dirs: Iterable[Path]) -> Path:
    if "." in name:
        candidate = base_dir / name
        if candidate.exists():
            return candidate
    for directory in include_dirs:
        for candidate in (Path(directory) / name, Path(directory) / f"{name}.yaml"):
            if candidate.exists():
                return candidate
    raise ConfigError(f"cannot find included configuration '{name}'")


def merge_config(
    conf: dict[str, Any],
    global_conf: Optional[dict[str, Any]] = None,
    includes: Iterable[dict[str, Any]] = (),
) -> dict[str, Any]:
    global_conf = global_conf or {}
    merged = {**global_conf, **conf}
    merged["typedefs"] = {
        **(global_conf.get("typedefs") or {}),
        **(conf.get("typedefs") or {}),
        **(conf.get("private_typedefs") or {}),
    }
    merged["structdefs"] = {
        **(global_conf.get("structdefs") or {}),
        **(conf.get("structdefs") or {}),
        **(conf.get("private_structdefs") or {}),
    }
    for included in includes:
        for key in ("classes", "protocols", "enums"):
            merged[key] = {**_excluded(included.get(key) or {}), **(merged.get(key) or {})}
        merged["typedefs"] = {**(included.get("typedefs") or {}), **merged["typedefs"]}
        merged["structdefs"] = {**(included.get("structdefs") or {}), **merged["structdefs"]}
        merged["annotations"] = [*(included.get("annotations") or []), *(merged.get("annotations") or [])]
        if merged.get("merge_vals_consts_functs"):
            for key, catch_all in _CATCH_ALL_NAMES.items():
                table = {
                    k: v
                    for k, v in (included.get(key) or {}).items()
                    if not (isinstance(v, dict) and v.get("name") == catch_all)
                }
                merged[key] = {**_excluded(table), **(merged.get(key) or {})}
    return merged


def load_config(
    path: Union[str, Path],
    global_path: Optional[Union[str, Path]] = None,
    include_dirs: Iterable[Union[str, Path]] = (),
) -> BindingConfig:
    path = Path(path)
    conf = _read_yaml(path)
    base_dir = path.parent
    if global_path is None and conf.get("global"):
        global_path = base_dir / str(conf["global"])
    global_conf = _read_yaml(Path(global_path)) if global_path is not None else {}
    search_dirs = [base_dir, *(Path(d) for d in include_dirs)]
    includes = [
        _read_yaml(_find_include(str(name), base_dir, search_dirs))
        for name in conf.get("include") or []
    ]
    return BindingConfig.from_dict(merge_config(conf, global_conf, includes))
