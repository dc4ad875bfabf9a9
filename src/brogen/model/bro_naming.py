from __future__ import annotations

import re
from typing import Any, Optional

from .bro_config import BindingConfig, PatternTable
from .bro_diagnostics import Diagnostics
from .bro_entities import (
    Array,
    Block,
    Builtin,
    Declaration,
    Enum,
    EnumValue,
    GenericInstance,
    ObjCClass,
    ObjCId,
    ObjCMethod,
    ObjCProtocol,
    Pointer,
    Struct,
    Typedef,
)
from .bro_nodes import TypeShape
from .bro_utils import _escape_leading_digit, _upcase_first, location_to_s

PRIMITIVE_NAMES = ("byte", "short", "char", "int", "long", "float", "double", "void")

_MACHINE_PTR_NAMES = {
    "MachineUInt": "MachineSizedUIntPtr",
    "MachineSInt": "MachineSizedSIntPtr",
    "MachineFloat": "MachineSizedFloatPtr",
    "Pointer": "VoidPtr.VoidPtrPtr",
}

_BOXED_BLOCK_TYPES = {
    "boolean": "Boolean",
    "byte": "Byte",
    "short": "Short",
    "char": "Character",
    "int": "Integer",
    "long": "Long",
    "float": "Float",
    "double": "Double",
    "@MachineSizedUInt long": "Long",
    "@MachineSizedSInt long": "Long",
    "@MachineSizedFloat double": "Double",
}

_MACHINE_BLOCK_MARKS = {
    "@MachineSizedUInt long": "@MachineSizedUInt",
    "@MachineSizedSInt long": "@MachineSizedSInt",
    "@MachineSizedFloat double": "@MachineSizedFloat",
}

_MAX_BLOCK_PARAMS = 6

# Property names that already read as a predicate keep their name as the getter.
BOOLEAN_GETTER_PREFIXES = (
    r"is\p{Lu}", r"has\p{Lu}", r"can\p{Lu}", r"may\p{Lu}",
    "should", "adjusts", "allows", "always", "animates", "appends", "applies",
    "apportions", "are", "autoenables", "automatically", "autoresizes",
    "autoreverses", "bounces", "cancels", "casts", "checks", "clears", "clips",
    "collapses", "contains", "creates", "defers", "defines", "delays", "depends",
    "did", "dims", "disables", "disconnects", "displays", "does", "draws",
    "embeds", "enables", "enumerates", "evicts", "expects", "fixes", "fills",
    "flattens", "flips", "generates", "groups", "hides", "ignores", "includes",
    "infers", "installs", "invalidates", "keeps", "locks", "marks", "masks",
    "merges", "migrates", "needs", "normalizes", "notifies", "obscures", "opens",
    "overrides", "pauses", "performs", "prefers", "preloads", "presents",
    "preserves", "propagates", "provides", "reads", "receives", "recognizes",
    "remembers", "removes", "requests", "requires", "resets", "resumes",
    "returns", "reverses", "scrolls", "searches", "sends", "shows", "simulates",
    "sorts", "supports", "suppresses", "tracks", "translates", "uses", "wants",
    "writes",
)

_BOOLEAN_GETTER_RE = re.compile(
    "^(?:" + "|".join(p.replace(r"\p{Lu}", "[A-Z]") for p in BOOLEAN_GETTER_PREFIXES) + ")"
)

# Keys of an enum configuration that describe the enum rather than one of its values.
ENUM_CONF_KEYS = frozenset(
    {
        "name", "prefix", "suffix", "first", "merge_with", "type", "bits", "ignore",
        "marshaler", "skip_none", "nserror", "exclude", "visibility", "annotations",
    }
)


def is_byval(entity) -> bool:
    if isinstance(entity, Struct):
        return True
    if isinstance(entity, Typedef):
        if entity.is_struct:
            return True
        return entity.typedef_type is not None and entity.typedef_type.kind == TypeShape.RECORD
    return False


def declared_target_name(config: Optional[BindingConfig], entity: Declaration) -> str:
    if not entity.name:
        return ""
    conf = None
    if config is not None:
        if isinstance(entity, ObjCProtocol):
            conf = config.get_protocol_conf(entity.name)
        elif isinstance(entity, Enum):
            conf = config.get_enum_conf(entity.name)
        else:
            conf = config.get_class_conf(entity.name)
    if isinstance(conf, dict) and conf.get("name"):
        return str(conf["name"])
    return entity.name


def target_name(entity, config: Optional[BindingConfig] = None) -> str:
    if isinstance(entity, Builtin):
        return entity.target_name
    if isinstance(entity, Pointer):
        return _pointer_target_name(entity.pointee, config)
    if isinstance(entity, Array):
        return _array_target_name(entity.base_type, config)
    if isinstance(entity, Block):
        annotation, name = block_target_name(entity, config)
        return f"{annotation} {name}".strip()
    if isinstance(entity, ObjCId):
        return " & ".join(target_name(prot, config) for prot in entity.protocols)
    if isinstance(entity, GenericInstance):
        args = ", ".join(target_name(arg, config) for arg in entity.arguments)
        return f"{target_name(entity.base, config)}<{args}>"
    if isinstance(entity, Declaration):
        return entity.target_name or declared_target_name(config, entity)
    raise TypeError(f"no target name for {type(entity).__name__}")


def _nested_ptr(entity, config) -> str:
    name = target_name(entity, config)
    return f"{name}.{name}Ptr"


def _pointer_target_name(pointee, config) -> str:
    if isinstance(pointee, Builtin):
        if pointee.name in PRIMITIVE_NAMES:
            return f"{pointee.name.capitalize()}Ptr"
        if pointee.name in _MACHINE_PTR_NAMES:
            return _MACHINE_PTR_NAMES[pointee.name]
        return _nested_ptr(pointee, config)
    if isinstance(pointee, (Struct, ObjCClass, ObjCProtocol)) or (
        isinstance(pointee, Typedef) and pointee.struct is not None
    ):
        return target_name(pointee, config)
    return _nested_ptr(pointee, config)


def _array_target_name(base, config) -> str:
    if isinstance(base, Builtin):
        if base.name in PRIMITIVE_NAMES:
            return f"{base.name.capitalize()}Buffer"
        if base.name in _MACHINE_PTR_NAMES:
            return _MACHINE_PTR_NAMES[base.name]
        return _nested_ptr(base, config)
    if isinstance(base, Struct) or (isinstance(base, Typedef) and base.is_struct):
        return target_name(base, config)
    return _nested_ptr(base, config)


def _block_param_name(entity, config) -> str:
    if isinstance(entity, Block):
        return block_target_name(entity, config)[1]
    name = target_name(entity, config)
    return _BOXED_BLOCK_TYPES.get(name, name)


def _block_marks(block: Block, config) -> str:
    marks = []
    for param in block.param_types:
        if is_byval(param):
            marks.append("@ByVal")
        elif isinstance(param, Block):
            marks.append("@Block")
        elif isinstance(param, Builtin):
            marks.append(_MACHINE_BLOCK_MARKS.get(param.target_name, ""))
        else:
            marks.append("")
    joined = ",".join(marks)
    if not joined.replace(",", ""):
        return "@Block"
    return f'@Block("({joined})")'


def block_target_name(block: Block, config: Optional[BindingConfig] = None) -> tuple[str, str]:
    """Returns the (annotation, type) pair used to marshal a block."""
    params = block.param_types
    ret = block.return_type
    if isinstance(ret, Builtin) and ret.name == "void":
        if not params:
            return "@Block", "Runnable"
        if len(params) == 1 and isinstance(params[0], Builtin) and params[0].name in _BOXED_BLOCK_TYPES:
            return "@Block", f"Void{params[0].name.capitalize()}Block"
        if len(params) <= _MAX_BLOCK_PARAMS:
            args = ", ".join(_block_param_name(p, config) for p in params)
            return _block_marks(block, config), f"VoidBlock{len(params)}<{args}>"
        return "", "ObjCBlock"
    if not params and isinstance(ret, Builtin) and ret.name in _BOXED_BLOCK_TYPES:
        return "@Block", f"{ret.name.capitalize()}Block"
    if len(params) <= _MAX_BLOCK_PARAMS:
        args = ", ".join([*(_block_param_name(p, config) for p in params), _block_param_name(ret, config)])
        return _block_marks(block, config), f"Block{len(params)}<{args}>"
    return "", "ObjCBlock"


def target_type(entity, config: Optional[BindingConfig] = None) -> str:
    if is_byval(entity):
        return f"@ByVal {target_name(entity, config)}"
    if isinstance(entity, Array):
        dims = ", ".join(str(dim) for dim in entity.dimensions)
        return f"@Array({{{dims}}}) {target_name(entity, config)}"
    return target_name(entity, config)


def getter_for_name(name: str, type_name: str, omit_prefix: bool = False) -> str:
    if omit_prefix:
        return name
    if type_name == "boolean":
        if _BOOLEAN_GETTER_RE.match(name):
            return name
        return f"is{_upcase_first(name)}"
    return f"get{_upcase_first(name)}"


def setter_for_name(name: str, omit_prefix: bool = False) -> str:
    if omit_prefix:
        return name
    return f"set{_upcase_first(name)}"


def method_target_name(
    method: ObjCMethod,
    conf: Optional[dict[str, Any]],
    return_type_name: str = "",
) -> tuple[str, Optional[tuple[str, str]]]:
    """Derives the binding name of a method from its selector.

    Returns the name and, when the name still carries `$` separators that a
    maintainer should review, a `(full_name, name)` suggestion.
    """
    conf = conf or {}
    if conf.get("name"):
        return str(conf["name"]), None
    selector = method.name
    suggestion = None
    if selector.endswith(":") and selector.count(":") == 1:
        name = selector[:-1]
    else:
        name = selector.replace(":", "$")
        if not conf.get("trim_after_first_colon") and "$" in name:
            suggestion = (method.full_name, name)
    returns_void = method.return_type is not None and method.return_type.kind == TypeShape.VOID
    if not method.parameters and not returns_void and conf.get("property"):
        name = getter_for_name(name, return_type_name)
    elif selector.startswith("set") and len(selector) > 3 and len(method.parameters) == 1 and returns_void:
        name = re.sub(r"\$$", "", name)
    elif conf.get("trim_after_first_colon"):
        name = re.sub(r"\$.*", "", name)
    return name, suggestion


def find_enum_conf(config: BindingConfig, enum: Enum) -> Optional[dict[str, Any]]:
    """Finds an enum's configuration by name, by its first value, then by pattern."""
    first = enum.values[0].name if enum.values else None
    exact = config.enums.table.get(enum.name) if enum.name else None
    if isinstance(exact, dict):
        return exact
    for key, value in config.enums.items():
        if not isinstance(value, dict):
            continue
        if (enum.name and key == enum.name) or (first is not None and value.get("first") == first):
            return value
    if enum.name:
        conf = config.enums.find_matching(enum.name)
        if isinstance(conf, dict):
            return conf
    return None


def enum_name_from_first(config: BindingConfig, enum: Enum) -> Optional[str]:
    if not enum.values:
        return None
    first = enum.values[0].name
    for key, value in config.enums.items():
        if isinstance(value, dict) and value.get("first") == first:
            return str(key)
    return None


def derive_prefix(enum: Enum, diagnostics: Optional[Diagnostics] = None) -> str:
    prefix = enum.enum_conf.get("prefix")
    if prefix is not None:
        return str(prefix)
    if len(enum.values) > 1:
        candidate = enum.values[0].name
        for value in enum.values[1:]:
            if value.enum is not enum:
                continue
            other = value.name
            if len(other) < len(candidate):
                candidate = candidate[: len(other)]
            while not other.startswith(candidate):
                candidate = candidate[:-1]
        return candidate
    if diagnostics is not None:
        first = enum.values[0].name if enum.values else "?"
        diagnostics.warn(
            f"Failed to determine prefix for enum {enum.name} with first {first} at {location_to_s(enum.location)}"
        )
    return ""


def _configured_value_name(enum: Enum, name: str) -> Optional[str]:
    value_table = {
        key: value
        for key, value in enum.enum_conf.items()
        if key not in ENUM_CONF_KEYS and isinstance(value, str)
    }
    if name in value_table:
        return value_table[name]
    if not value_table:
        return None
    result = PatternTable(value_table, f"enum {enum.name}").match_value(name)
    return str(result) if result is not None else None


def enum_value_name(value: EnumValue) -> str:
    enum = value.enum
    if enum is None:
        return _escape_leading_digit(value.name)
    configured = _configured_value_name(enum, value.name)
    if configured is not None:
        return configured
    name = value.name
    prefix = enum.prefix or ""
    if prefix and name.startswith(prefix):
        name = name[len(prefix):]
    if enum.suffix and name.endswith(enum.suffix):
        name = name[: len(name) - len(enum.suffix)]
    return _escape_leading_digit(name)
