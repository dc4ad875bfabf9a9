from __future__ import annotations

from typing import Any, Optional

import yaml

from .bro_attributes import format_version, is_available, since
from .bro_entities import BindingModel, Declaration, Enum, ObjCClass, ObjCProtocol, Struct, Typedef, find_named
from .bro_utils import _shared_prefix

PREFIX_INVALID = "!Prefix invalid!"


class MissingConfigReport:
    """Declarations that look bindable but have no configuration entry.

    Configured classes and protocols land here too when some of their
    methods would get `$`-joined names, so a maintainer can pick better ones.
    """

    def __init__(self, platform: str = "ios", platform_version=None) -> None:
        self.platform = platform
        self.platform_version = platform_version
        self._entries: list[tuple[Declaration, Optional[list[tuple[str, str]]]]] = []
        self._index: dict[int, int] = {}

    def add(self, entity: Declaration, suggestion: Optional[tuple[str, str]] = None) -> None:
        idx = self._index.get(id(entity))
        if idx is None:
            self._index[id(entity)] = len(self._entries)
            self._entries.append((entity, [suggestion] if suggestion else None))
            return
        if suggestion:
            owner, suggestions = self._entries[idx]
            if suggestions is None:
                suggestions = []
                self._entries[idx] = (owner, suggestions)
            suggestions.append(suggestion)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entity) -> bool:
        return id(entity) in self._index

    def _of_type(self, kind) -> list[tuple[Any, Optional[list[tuple[str, str]]]]]:
        return [(entity, data) for entity, data in self._entries if isinstance(entity, kind)]

    def _since(self, entity: Declaration) -> Optional[str]:
        return format_version(since(entity.attributes, self.platform))

    def _enum_entry(self, enum: Enum) -> dict[str, Any]:
        params: dict[str, Any] = {}
        members = [value.name for value in enum.values]
        notes = []
        if members:
            if len(members) == 1 and enum.name:
                members.append(enum.name)
            if len(members) == 1:
                prefix = members[0]
                notes.append(PREFIX_INVALID)
            else:
                prefix = _shared_prefix(members)
            if enum.name and prefix.startswith(enum.name):
                prefix = ""
            if prefix:
                params["prefix"] = prefix
            if not enum.name:
                params["first"] = members[0]
        version = self._since(enum)
        if version:
            params["since"] = version
        if notes:
            params["warning"] = ", ".join(notes)
        return params

    def _bad_methods(self, host) -> list[tuple[str, str]]:
        bad = []
        for method in [*host.instance_methods, *host.class_methods]:
            if not is_available(method.attributes, self.platform, self.platform_version):
                continue
            if method.name.count(":") > 1:
                bad.append((method.full_name, method.name.replace(":", "$")))
        return bad

    def _host_entry(self, host, suggestions) -> dict[str, Any]:
        entry: dict[str, Any] = {}
        bad = suggestions if suggestions is not None else self._bad_methods(host)
        if bad:
            entry["methods"] = {full_name: {"name": name} for full_name, name in bad}
        version = self._since(host)
        if version:
            entry["since"] = version
        return entry

    def to_dict(self, model: Optional[BindingModel] = None) -> dict[str, Any]:
        out: dict[str, Any] = {}
        enums: dict[str, Any] = {}
        for enum, _ in self._of_type(Enum):
            key = enum.name or "UNNAMED"
            if key in enums:
                key = f"{key}_{len(enums) + 1}"
            enums[key] = self._enum_entry(enum)
        if enums:
            out["enums"] = enums
        structs = {
            struct.name: ({"since": self._since(struct)} if self._since(struct) else {})
            for struct, _ in self._of_type(Struct)
        }
        if structs:
            out["structs"] = structs
        typedefs: dict[str, Any] = {}
        for typedef, _ in self._of_type(Typedef):
            struct = typedef.struct
            if struct is not None and struct.is_opaque and model is not None:
                struct = find_named(model.structs, struct.name) or struct
            if struct is None or struct.is_opaque:
                continue
            version = self._since(typedef)
            typedefs[typedef.name] = {"since": version} if version else {}
        if typedefs:
            out["typedefs"] = typedefs
        for title, kind in (("classes", ObjCClass), ("protocols", ObjCProtocol)):
            hosts = {host.name: self._host_entry(host, data) for host, data in self._of_type(kind)}
            if hosts:
                out[title] = hosts
        return out

    def render(self, model: Optional[BindingModel] = None) -> str:
        data = self.to_dict(model)
        if not data:
            return ""
        header = "# potentially missing configuration entries\n"
        return header + yaml.safe_dump(data, sort_keys=False, default_flow_style=False)
