from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .bro_attributes import is_available, is_outdated
from .bro_builder import ModelBuilder
from .bro_clang import parse_header
from .bro_config import BindingConfig
from .bro_diagnostics import Diagnostics, channel_logger
from .bro_entities import (
    BindingModel,
    ConstantValue,
    Declaration,
    Enum,
    Function,
    GlobalValue,
    GlobalValueDictionaryWrapper,
    GlobalValueEnumeration,
    ObjCCategory,
    ObjCProtocol,
)
from .bro_errors import TypeResolutionError
from .bro_members import Composition, MemberComposer
from .bro_naming import declared_target_name, target_name
from .bro_nodes import load_tree_yaml
from .bro_report import MissingConfigReport
from .bro_resolve import TypeResolver
from .bro_utils import location_to_s

# Wrapper base used for dictionaries keyed by Core Foundation values.
CF_DICTIONARY_TYPES = ("CFType", "CFString", "CFNumber")


@dataclass
class BuildResult:
    model: BindingModel
    resolver: TypeResolver
    composition: Composition
    diagnostics: Diagnostics
    report: MissingConfigReport

    def counts(self) -> dict[str, int]:
        model = self.model
        return {
            "structs": len(model.structs),
            "typedefs": len(model.typedefs),
            "enums": len(model.enums),
            "functions": len(model.functions),
            "classes": len(model.objc_classes),
            "protocols": len(model.objc_protocols),
            "categories": len(model.objc_categories),
            "global values": len(model.global_values),
            "value enums": len(model.global_value_enums),
            "value dictionaries": len(model.global_value_dictionaries),
            "constants": len(model.constant_values),
            "hosts": len(self.composition.hosts),
        }


def _conf_for(config: BindingConfig, entity: Declaration) -> Optional[dict[str, Any]]:
    if isinstance(entity, Enum):
        return entity.enum_conf or None
    if isinstance(entity, ObjCProtocol):
        conf = config.get_protocol_conf(entity.name)
    elif isinstance(entity, ObjCCategory):
        conf = config.get_category_conf(f"{entity.name}@{entity.owner}") or config.get_category_conf(entity.name)
    elif isinstance(entity, Function):
        conf = config.get_function_conf(entity.name)
    elif isinstance(entity, (GlobalValue, GlobalValueEnumeration, GlobalValueDictionaryWrapper)):
        conf = config.get_value_conf(entity.name)
    elif isinstance(entity, ConstantValue):
        conf = config.get_constant_conf(entity.name)
    else:
        conf = config.get_class_conf(entity.name) if entity.name else None
    return conf if isinstance(conf, dict) else None


def annotate(model: BindingModel, config: BindingConfig) -> None:
    """Attaches configuration, target name and availability to every declaration."""
    platform = config.target_platform
    for entity in model.declarations():
        entity.conf = _conf_for(config, entity)
        if not entity.target_name:
            entity.target_name = declared_target_name(config, entity) or None
        entity.available = is_available(entity.attributes, platform, config.platform_version)
        entity.outdated = is_outdated(entity.attributes, platform, config.deprecated_version)


def fill_value_groups(model: BindingModel, resolver: TypeResolver) -> None:
    for group in model.global_value_enums.values():
        if not group.java_type:
            group.java_type = target_name(resolver.resolve(group.type), resolver.config)
    for group in model.global_value_dictionaries.values():
        if not group.java_type:
            group.java_type = target_name(resolver.resolve(group.type), resolver.config)
        if not group.extends:
            cf_keyed = group.java_type in CF_DICTIONARY_TYPES
            group.extends = "CFDictionaryWrapper" if cf_keyed else "NSDictionaryWrapper"


def _resolve_for(resolver: TypeResolver, entity: Declaration, native, allow_arrays: bool = False):
    try:
        return resolver.resolve(native, allow_arrays)
    except TypeResolutionError as exc:
        if exc.location is not None:
            raise
        raise TypeResolutionError(exc.spelling, exc.kind, location_to_s(entity.location)) from exc


def resolve_declarations(model: BindingModel, resolver: TypeResolver) -> None:
    """Resolves the native types of C declarations.

    Raises TypeResolutionError on the first type that maps to nothing, so a
    model is never returned half resolved.
    """
    config = resolver.config
    structs = [*model.structs, *(typedef.struct for typedef in model.typedefs if typedef.struct is not None)]
    for struct in structs:
        if config.is_included(struct):
            for member in struct.members:
                member.resolved = _resolve_for(resolver, struct, member.type, allow_arrays=True)
    for typedef in model.typedefs:
        if typedef.is_callback and config.is_included(typedef):
            for parameter in typedef.parameters:
                parameter.resolved = _resolve_for(resolver, typedef, parameter.type)
    for function in model.functions:
        function.resolved_return = _resolve_for(resolver, function, function.return_type)
        for parameter in function.parameters:
            parameter.resolved = _resolve_for(resolver, function, parameter.type)
    for value in model.global_values:
        value.resolved_type = _resolve_for(resolver, value, value.type)


def collect_missing(model: BindingModel, config: BindingConfig, report: MissingConfigReport) -> None:
    for struct in model.structs:
        if (
            struct.name
            and config.get_class_conf(struct.name) is None
            and config.is_included(struct)
            and not struct.outdated
        ):
            report.add(struct)
    for typedef in model.typedefs:
        if typedef.struct is not None and config.get_class_conf(typedef.name) is None and config.is_included(typedef):
            report.add(typedef)


def build_binding_model(
    config: BindingConfig,
    root,
    disabled_passes: Optional[set[str]] = None,
    verbose: Optional[set[str]] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> BuildResult:
    """Runs the whole pipeline over an already parsed syntax tree."""
    diagnostics = diagnostics or Diagnostics()
    builder = ModelBuilder(config, diagnostics, disabled_passes, verbose)
    model = builder.process(root)
    resolver = TypeResolver(model, config, diagnostics=diagnostics)
    annotate(model, config)
    resolve_declarations(model, resolver)
    fill_value_groups(model, resolver)
    report = MissingConfigReport(config.target_platform, config.platform_version)
    collect_missing(model, config, report)
    composition = MemberComposer(model, config, resolver, diagnostics, report, verbose).compose()
    log = channel_logger("build", verbose)
    if log is not None:
        log(f"resolved {len(resolver.cache)} distinct types, {len(report)} missing entries")
    return BuildResult(model, resolver, composition, diagnostics, report)


def build_from_header(
    config: BindingConfig,
    header: str,
    clang_args: Iterable[str] = (),
    disabled_passes: Optional[set[str]] = None,
    verbose: Optional[set[str]] = None,
) -> BuildResult:
    diagnostics = Diagnostics()
    root = parse_header(header, clang_args, diagnostics)
    return build_binding_model(config, root, disabled_passes, verbose, diagnostics)


def build_from_tree_yaml(
    config: BindingConfig,
    text: str,
    disabled_passes: Optional[set[str]] = None,
    verbose: Optional[set[str]] = None,
) -> BuildResult:
    return build_binding_model(config, load_tree_yaml(text), disabled_passes, verbose)
