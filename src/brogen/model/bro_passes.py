from __future__ import annotations

from typing import Optional

from .bro_config import BindingConfig
from .bro_diagnostics import Diagnostics, Log, channel_logger
from .bro_entities import (
    BindingModel,
    Function,
    GlobalValue,
    GlobalValueDictionaryWrapper,
    GlobalValueEnumeration,
)
from .bro_errors import MergeTargetError
from .bro_naming import derive_prefix, enum_name_from_first, find_enum_conf
from .bro_utils import location_to_s

# Grouping tags shared by fewer values than this stay plain global values.
MIN_GROUP_SIZE = 2


def _opaque_last_unique(entities, is_opaque, log: Optional[Log], label: str):
    ordered = sorted(entities, key=lambda e: 1 if is_opaque(e) else 0)
    seen: set[str] = set()
    kept = []
    dropped = 0
    for entity in ordered:
        if entity.name and entity.name in seen:
            dropped += 1
            continue
        if entity.name:
            seen.add(entity.name)
        kept.append(entity)
    if log is not None:
        log(f"kept {len(kept)} {label}, dropped {dropped} duplicates")
    return sorted(kept, key=lambda e: e.name)


def _dedup_structs(model: BindingModel, config: BindingConfig, diagnostics: Diagnostics, log=None) -> None:
    model.structs = _opaque_last_unique(model.structs, lambda s: s.is_opaque, log, "structs")


def _dedup_classes(model: BindingModel, config: BindingConfig, diagnostics: Diagnostics, log=None) -> None:
    model.objc_classes = _opaque_last_unique(model.objc_classes, lambda c: c.opaque, log, "classes")


def _dedup_protocols(model: BindingModel, config: BindingConfig, diagnostics: Diagnostics, log=None) -> None:
    model.objc_protocols = _opaque_last_unique(model.objc_protocols, lambda p: p.opaque, log, "protocols")


def _name_enums(model: BindingModel, config: BindingConfig, diagnostics: Diagnostics, log=None) -> None:
    for enum in model.enums:
        name = enum_name_from_first(config, enum)
        if name is None and (enum.id in model.cfenums or enum.id in model.cfoptions):
            # A marker macro at this location: the typedef there names the enum.
            typedef = next((td for td in model.typedefs if td.id == enum.id), None)
            name = typedef.name if typedef is not None else None
        if name and name != enum.name:
            if log is not None:
                log(f"enum {enum.declared_name or '<anonymous>'} named {name}")
            enum.name = name
        conf = find_enum_conf(config, enum)
        enum.enum_conf = conf or {}
        enum.suffix = str(enum.enum_conf.get("suffix") or "")
        enum.is_options = enum.id in model.cfoptions
        report = diagnostics if (conf is not None or config.is_included(enum)) else None
        enum.prefix = derive_prefix(enum, report)


def _merge_enums(model: BindingModel, config: BindingConfig, diagnostics: Diagnostics, log=None) -> None:
    kept = []
    for enum in model.enums:
        target_name = enum.merge_with
        if not target_name:
            kept.append(enum)
            continue
        other = next((e for e in model.enums if e.name == target_name), None)
        if other is None:
            raise MergeTargetError(
                f"Cannot find other enum '{target_name}' to merge enum {enum.name} "
                f"at {location_to_s(enum.location)} with"
            )
        other.values.extend(enum.values)
        if log is not None:
            log(f"merged {len(enum.values)} values of {enum.name} into {other.name}")
    model.enums = kept


def _function_rejection(function: Function) -> Optional[str]:
    if function.is_variadic:
        return "variadic"
    if function.is_inline:
        return "inline"
    if function.takes_va_list:
        return "va_list"
    return None


def _filter_functions(model: BindingModel, config: BindingConfig, diagnostics: Diagnostics, log=None) -> None:
    kept = []
    for function in model.functions:
        if not config.is_included(function):
            continue
        reason = _function_rejection(function)
        if reason is not None:
            diagnostics.warn(f"Ignoring {reason} function '{function.definition()}'", function.location)
            continue
        kept.append(function)
    if log is not None:
        log(f"kept {len(kept)} of {len(model.functions)} functions")
    model.functions = kept


def _dedup_functions(model: BindingModel, config: BindingConfig, diagnostics: Diagnostics, log=None) -> None:
    seen: set[str] = set()
    kept = []
    for function in model.functions:
        if function.name in seen:
            diagnostics.warn(f"Ignoring duplicate function '{function.definition()}'", function.location)
            continue
        seen.add(function.name)
        kept.append(function)
    model.functions = kept


def _filter_values(model: BindingModel, config: BindingConfig, diagnostics: Diagnostics, log=None) -> None:
    before = len(model.global_values)
    model.global_values = [value for value in model.global_values if config.is_included(value)]
    if log is not None:
        log(f"kept {len(model.global_values)} of {before} global values")


def _dedup_values(model: BindingModel, config: BindingConfig, diagnostics: Diagnostics, log=None) -> None:
    seen: set[str] = set()
    kept = []
    for value in model.global_values:
        if value.name in seen:
            diagnostics.warn(f"Ignoring duplicate global value '{value.name}'", value.location)
            continue
        seen.add(value.name)
        kept.append(value)
    model.global_values = kept


def _tagged(values: list[GlobalValue], attr: str) -> dict[str, list[GlobalValue]]:
    groups: dict[str, list[GlobalValue]] = {}
    for value in values:
        tag = getattr(value, attr)
        if tag:
            groups.setdefault(tag, []).append(value)
    return {tag: members for tag, members in groups.items() if len(members) >= MIN_GROUP_SIZE}


def _group_values(model: BindingModel, config: BindingConfig, diagnostics: Diagnostics, log=None) -> None:
    grouped: set[int] = set()
    for tag, members in _tagged(model.global_values, "enum").items():
        first = members[0]
        vconf = config.get_value_conf(first.name) or {}
        model.global_value_enums[tag] = GlobalValueEnumeration(
            name=tag,
            location=first.location,
            framework=first.framework,
            type=first.type,
            values=list(members),
            java_type=vconf.get("type"),
            extends=vconf.get("enum_extends") or vconf.get("extends"),
        )
        grouped.update(id(member) for member in members)
        if log is not None:
            log(f"enum group {tag}: {', '.join(member.name for member in members)}")
    for tag, members in _tagged(model.global_values, "dictionary").items():
        first = members[0]
        vconf = config.get_value_conf(first.name) or {}
        mutable = vconf.get("mutable")
        model.global_value_dictionaries[tag] = GlobalValueDictionaryWrapper(
            name=tag,
            location=first.location,
            framework=first.framework,
            type=first.type,
            enum=model.global_value_enums.get(first.enum) if first.enum else None,
            values=list(members),
            java_type=vconf.get("type"),
            mutable=True if mutable is None else bool(mutable),
            methods=vconf.get("methods"),
            marshalers=vconf.get("marshalers", True) is not False,
            extends=vconf.get("dictionary_extends") or vconf.get("extends"),
            constructor_visibility=vconf.get("constructor_visibility"),
        )
        grouped.update(id(member) for member in members)
        if log is not None:
            log(f"dictionary group {tag}: {', '.join(member.name for member in members)}")
    model.global_values = [value for value in model.global_values if id(value) not in grouped]


def _filter_constants(model: BindingModel, config: BindingConfig, diagnostics: Diagnostics, log=None) -> None:
    before = len(model.constant_values)
    model.constant_values = [value for value in model.constant_values if config.is_included(value)]
    if log is not None:
        log(f"kept {len(model.constant_values)} of {before} constants")


PASSES = {
    "structs-dedup": _dedup_structs,
    "classes-dedup": _dedup_classes,
    "protocols-dedup": _dedup_protocols,
    "enum-names": _name_enums,
    "enums-merge": _merge_enums,
    "functions-filter": _filter_functions,
    "functions-dedup": _dedup_functions,
    "values-filter": _filter_values,
    "values-dedup": _dedup_values,
    "values-group": _group_values,
    "constants-filter": _filter_constants,
}


def apply_passes(
    model: BindingModel,
    config: BindingConfig,
    diagnostics: Diagnostics,
    disabled: Optional[set[str]] = None,
    verbose: Optional[set[str]] = None,
) -> None:
    disabled = disabled or set()
    for name, func in PASSES.items():
        if name in disabled:
            continue
        func(model, config, diagnostics, channel_logger(name, verbose))
