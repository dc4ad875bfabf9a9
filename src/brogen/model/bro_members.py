from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Optional

from .bro_attributes import is_available, is_outdated
from .bro_config import BindingConfig, PatternTable
from .bro_diagnostics import Diagnostics, channel_logger
from .bro_entities import (
    BindingModel,
    ConstantValue,
    Declaration,
    Enum,
    ObjCCategory,
    ObjCClass,
    ObjCMemberHost,
    ObjCMethod,
    ObjCProperty,
    ObjCProtocol,
    find_named,
    is_init,
    is_method_like_init,
)
from .bro_naming import getter_for_name, method_target_name, setter_for_name, target_name, target_type
from .bro_report import MissingConfigReport
from .bro_resolve import TypeResolver
from .bro_utils import location_to_s


@dataclass
class ComposedParameter:
    name: str
    type_name: str


@dataclass
class ComposedMethod:
    method: ObjCMethod
    name: str
    visibility: str
    is_static: bool
    return_type: str
    parameters: list[ComposedParameter] = field(default_factory=list)
    is_constructor: bool = False
    conf: dict[str, Any] = field(default_factory=dict, repr=False)
    suggestion: Optional[tuple[str, str]] = None

    @property
    def selector(self) -> str:
        return self.method.name


@dataclass
class ComposedProperty:
    prop: ObjCProperty
    name: str
    type_name: str
    getter: str
    setter: Optional[str]
    visibility: str
    is_static: bool
    conf: dict[str, Any] = field(default_factory=dict, repr=False)


@dataclass
class ComposedHost:
    owner: ObjCMemberHost
    name: str
    conf: dict[str, Any] = field(default_factory=dict, repr=False)
    protocols: list[ObjCProtocol] = field(default_factory=list)
    methods: list[ComposedMethod] = field(default_factory=list)
    properties: list[ComposedProperty] = field(default_factory=list)
    batches: list[tuple[list[Declaration], dict[str, Any]]] = field(default_factory=list, repr=False)
    seen: set[str] = field(default_factory=set, repr=False)

    @property
    def constructors(self) -> list[ComposedMethod]:
        return [method for method in self.methods if method.is_constructor]


@dataclass
class Composition:
    hosts: dict[str, ComposedHost] = field(default_factory=dict)
    enums: list[Enum] = field(default_factory=list)
    constants: dict[str, list[tuple[ConstantValue, dict[str, Any]]]] = field(default_factory=dict)
    # Protocols adopted through categories, keyed by the owning class name.
    category_protocols: dict[str, list[str]] = field(default_factory=dict)


def _table(conf: Optional[dict[str, Any]], key: str, label: str) -> PatternTable:
    return PatternTable((conf or {}).get(key) or {}, label)


class MemberComposer:
    """Assigns ObjC members to the binding classes that will carry them.

    Classes and configured protocols each get a host. Categories join their
    owner's host, protocol members are copied into every adopting class, and
    each member is then named, typed and de-duplicated by selector.
    """

    def __init__(
        self,
        model: BindingModel,
        config: BindingConfig,
        resolver: TypeResolver,
        diagnostics: Optional[Diagnostics] = None,
        report: Optional[MissingConfigReport] = None,
        verbose: Optional[set[str]] = None,
    ) -> None:
        self.model = model
        self.config = config
        self.resolver = resolver
        self.diagnostics = diagnostics or resolver.diagnostics
        self.report = report or MissingConfigReport(config.target_platform, config.platform_version)
        self._log = channel_logger("members", verbose)
        self._category_protocols: dict[str, list[str]] = {}

    def is_available(self, entity: Declaration) -> bool:
        return is_available(entity.attributes, self.config.target_platform, self.config.platform_version)

    def is_outdated(self, entity: Declaration) -> bool:
        return is_outdated(entity.attributes, self.config.target_platform, self.config.deprecated_version)

    def _usable(self, entity: Declaration) -> bool:
        return self.is_available(entity) and not self.is_outdated(entity)

    def _host_conf(self, host: ObjCMemberHost) -> Optional[dict[str, Any]]:
        if isinstance(host, ObjCProtocol):
            return self.config.get_protocol_conf(host.name)
        return self.config.get_class_conf(host.name)

    def all_protocols(self, cls: ObjCMemberHost, conf: Optional[dict[str, Any]]) -> list[tuple[ObjCProtocol, dict[str, Any]]]:
        """Flattens adopted protocols, superclass chain first, unique by name."""
        result = self._superclass_protocols(cls, conf, set())
        seen: set[str] = set()
        unique = []
        for prot, protc in result:
            if prot.name in seen:
                continue
            seen.add(prot.name)
            unique.append((prot, protc))
        return unique

    def _superclass_protocols(self, cls, conf, visiting: set[str]) -> list[tuple[ObjCProtocol, dict[str, Any]]]:
        inherited: list[tuple[ObjCProtocol, dict[str, Any]]] = []
        if isinstance(cls, ObjCClass) and cls.superclass and cls.superclass not in visiting:
            supercls = find_named(self.model.objc_classes, cls.superclass)
            if supercls is not None:
                super_conf = self.config.get_class_conf(supercls.name)
                inherited = self._superclass_protocols(supercls, super_conf, visiting | {cls.name})
        return inherited + self._adopted_protocols(cls, conf, set())

    def _adopted_protocols(self, cls, conf, visiting: set[str]) -> list[tuple[ObjCProtocol, dict[str, Any]]]:
        result: list[tuple[ObjCProtocol, dict[str, Any]]] = []
        if conf is None:
            return result
        if isinstance(conf, dict) and conf.get("protocols"):
            names = conf["protocols"]
        else:
            names = list(cls.protocols)
            if isinstance(cls, ObjCClass):
                names += self._category_protocols.get(cls.name, [])
        for name in names:
            if name in visiting:
                continue
            prot = find_named(self.model.objc_protocols, name)
            protc = self.config.get_protocol_conf(prot.name) if prot is not None else None
            if protc is not None:
                result.append((prot, protc))
                result.extend(self._adopted_protocols(prot, protc, visiting | {name}))
        return result

    def _host(self, composition: Composition, owner: ObjCMemberHost, name: str, conf: dict[str, Any]) -> ComposedHost:
        host = composition.hosts.get(name)
        if host is None:
            host = ComposedHost(owner=owner, name=name, conf=conf)
            composition.hosts[name] = host
        return host

    def compose(self) -> Composition:
        composition = Composition()
        self._category_protocols = composition.category_protocols
        self._collect_hosts(composition)
        self._assign_categories(composition)
        self._adopt_protocols(composition)
        for host in composition.hosts.values():
            for members, conf in host.batches:
                self._compose_batch(host, members, conf)
        self._collect_constants(composition)
        if self._log is not None:
            for host in composition.hosts.values():
                self._log(f"{host.name}: {len(host.methods)} methods, {len(host.properties)} properties")
        return composition

    def _collect_hosts(self, composition: Composition) -> None:
        for cls in [*self.model.objc_classes, *self.model.objc_protocols]:
            conf = self._host_conf(cls)
            if (
                conf is None
                and self.is_available(cls)
                and not cls.opaque
                and not self.is_outdated(cls)
                and self.config.is_included(cls)
            ):
                self.report.add(cls)
            if conf is None or conf.get("exclude") or not self._usable(cls):
                continue
            name = conf.get("name") or cls.name
            host = self._host(composition, cls, name, conf)
            host.batches.append((cls.members(), conf))

    def _category_conf(self, cat: ObjCCategory, by_owner: bool = False) -> Optional[dict[str, Any]]:
        keys = [f"{cat.name}@{cat.owner}", cat.name]
        if by_owner and cat.owner:
            keys.append(cat.owner)
        for key in keys:
            conf = self.config.get_category_conf(key)
            if conf is not None:
                return conf
        return None

    def _assign_categories(self, composition: Composition) -> None:
        unassigned: list[ObjCCategory] = []
        for cat in self.model.objc_categories:
            conf = self._category_conf(cat)
            owner_name = (conf or {}).get("owner") or cat.owner
            owner_cls = find_named(self.model.objc_classes, owner_name) if owner_name else None
            assigned = False
            if owner_cls is not None:
                owner_conf = self.config.get_class_conf(owner_cls.name)
                if owner_conf is not None and not owner_conf.get("exclude") and self._usable(owner_cls):
                    name = owner_conf.get("name") or owner_cls.name
                    host = self._host(composition, owner_cls, name, owner_conf)
                    host.batches.append((cat.members(), owner_conf))
                    composition.category_protocols.setdefault(owner_cls.name, []).extend(cat.protocols)
                    assigned = True
            if not assigned and self.config.is_included(cat):
                unassigned.append(cat)
        for cat in unassigned:
            conf = self._category_conf(cat, by_owner=True)
            if conf is not None and not conf.get("exclude"):
                name = conf.get("name") or cat.name
                host = self._host(composition, cat, name, conf)
                host.batches.append((cat.members(), conf))
            else:
                self.diagnostics.warn(f"Skipping category {cat.name} for {cat.owner}", cat.location)

    def _adopt_protocols(self, composition: Composition) -> None:
        for cls in self.model.objc_classes:
            if cls.opaque:
                continue
            conf = self.config.get_class_conf(cls.name)
            if conf is None or conf.get("exclude") or not self._usable(cls):
                continue
            protocols = self.all_protocols(cls, conf)
            if cls.superclass:
                supercls = find_named(self.model.objc_classes, cls.superclass)
                if supercls is not None:
                    inherited = {p.name for p, _ in self.all_protocols(supercls, self.config.get_class_conf(supercls.name))}
                    protocols = [(p, c) for p, c in protocols if p.name not in inherited]
            if not protocols:
                continue
            host = self._host(composition, cls, conf.get("name") or cls.name, conf)
            for prot, protc in protocols:
                host.protocols.append(prot)
                host.batches.append((prot.members(), protc))

    def _compose_batch(self, host: ComposedHost, members: list[Declaration], conf: dict[str, Any]) -> None:
        methods_conf = _table(conf, "methods", "methods")
        properties_conf = _table(conf, "properties", "properties")
        for member in members:
            if isinstance(member, ObjCProperty):
                composed = self.compose_property(host, member, properties_conf)
                if composed is not None:
                    host.properties.append(composed)
            elif isinstance(member, ObjCMethod):
                composed = self.compose_method(host, member, methods_conf)
                if composed is not None:
                    host.methods.append(composed)
                    if composed.suggestion is not None:
                        self.report.add(host.owner, composed.suggestion)

    def _visibility(self, host: ComposedHost, conf: dict[str, Any], init: bool = False) -> str:
        if conf.get("visibility"):
            return str(conf["visibility"])
        owner = host.owner
        if isinstance(owner, ObjCClass):
            return "protected" if init else "public"
        if isinstance(owner, ObjCCategory):
            return "public"
        if isinstance(owner, ObjCProtocol) and (self.config.get_protocol_conf(owner.name) or {}).get("class"):
            return "public"
        return ""

    def _type_name(self, native, owner, configured: Optional[str]) -> str:
        if configured:
            return str(configured)
        return target_type(self.resolver.resolve(native, False, owner), self.config)

    def compose_method(self, host: ComposedHost, method: ObjCMethod, methods_conf: PatternTable) -> Optional[ComposedMethod]:
        owner = host.owner
        if self.is_outdated(method) or not self.is_available(method):
            return None
        if isinstance(owner, ObjCProtocol) and (method.is_static or is_method_like_init(owner.name, method)):
            return None
        full_name = method.full_name
        if full_name == "-init":
            return None
        conf = methods_conf.get(full_name) or {}
        if method.is_static and method.is_class_property:
            return None
        if full_name in host.seen:
            return None
        if method.is_variadic or method.takes_va_list:
            params = [p.type.spelling for p in method.parameters]
            if method.is_variadic:
                params.append("...")
            self.diagnostics.warn(
                f"Ignoring variadic method '{owner.name}.{method.name}({', '.join(params)})'",
                method.location,
            )
            return None
        if conf.get("exclude"):
            return None
        host.seen.add(full_name)

        init = is_init(owner, method)
        if init:
            return_type = self.resolver.builtin("Pointer").target_name
        else:
            return_type = self._type_name(method.return_type, owner, conf.get("return_type"))
        params_conf = conf.get("parameters") or {}
        parameters = []
        for index, param in enumerate(method.parameters):
            pconf = params_conf.get(param.name) or params_conf.get(index) or {}
            parameters.append(
                ComposedParameter(
                    str(pconf.get("name") or param.name),
                    self._type_name(param.type, owner, pconf.get("type")),
                )
            )
        name, suggestion = method_target_name(method, conf, return_type)
        is_static = method.is_static or isinstance(owner, ObjCCategory)
        static_constructor = conf.get("constructor") is True and is_static
        return ComposedMethod(
            method=method,
            name=name,
            visibility=self._visibility(host, conf, init),
            is_static=is_static,
            return_type=return_type,
            parameters=parameters,
            is_constructor=isinstance(owner, ObjCClass)
            and conf.get("constructor") is not False
            and (init or static_constructor),
            conf=conf,
            suggestion=suggestion,
        )

    def _property_conf(self, prop: ObjCProperty, properties_conf: PatternTable) -> dict[str, Any]:
        conf = properties_conf.get("+" + prop.name) if prop.is_static else None
        if conf and any(str(conf.get(key) or "").startswith("+") for key in ("getter", "setter", "name")):
            conf = None
        return conf or properties_conf.get(prop.name) or {}

    def compose_property(self, host: ComposedHost, prop: ObjCProperty, properties_conf: PatternTable) -> Optional[ComposedProperty]:
        if self.is_outdated(prop) or not self.is_available(prop):
            return None
        conf = self._property_conf(prop, properties_conf)
        if conf.get("exclude"):
            return None
        owner = host.owner
        name = str(conf.get("name") or prop.name)
        type_name = self._type_name(prop.type, owner, conf.get("type"))
        omit_prefix = bool(conf.get("omit_prefix"))
        is_static = isinstance(owner, ObjCCategory) or prop.is_static
        marker = "+" if is_static else "-"
        getter_key = f"{marker}{prop.getter_name}"
        setter_key = f"{marker}{prop.setter_name}"
        getter = None
        if getter_key not in host.seen:
            getter = str(conf.get("getter") or getter_for_name(name, type_name, omit_prefix))
            host.seen.add(getter_key)
        setter = None
        if not prop.is_readonly and not conf.get("readonly") and setter_key not in host.seen:
            setter = str(conf.get("setter") or setter_for_name(name, omit_prefix))
            host.seen.add(setter_key)
        if getter is None and setter is None:
            return None
        return ComposedProperty(
            prop=prop,
            name=name,
            type_name=type_name,
            getter=getter or "",
            setter=setter,
            visibility=self._visibility(host, conf),
            is_static=is_static,
            conf=conf,
        )

    def _collect_constants(self, composition: Composition) -> None:
        default_class = self.config.default_class
        for value in self.model.constant_values:
            vconf = self.config.get_constant_conf(value.name)
            if vconf is not None and not vconf.get("exclude"):
                owner = vconf.get("class") or default_class
                composition.constants.setdefault(owner, []).append((value, vconf))
        for enum in self.model.enums:
            if not self._usable(enum):
                continue
            conf = enum.enum_conf or self.config.get_enum_conf(enum.name)
            if conf is not None and not conf.get("exclude"):
                composition.enums.append(enum)
            elif self.config.is_included(enum) and not (conf or {}).get("exclude"):
                self.report.add(enum)
                self._demote_enum(composition, enum)

    def _demote_enum(self, composition: Composition, enum: Enum) -> None:
        if enum.name:
            first = enum.values[0].name if enum.values else "?"
            self.diagnostics.warn(
                f"Turning the enum {enum.name} with first value {first} into constants",
                enum.location,
            )
        underlying = target_name(self.resolver.enum_underlying_type(enum), self.config)
        type_name = "long" if re.search(r"\blong$", underlying) else "int"
        for value in enum.values:
            vconf = self.config.get_constant_conf(value.name)
            if vconf is None or vconf.get("exclude"):
                continue
            text = str(value.value) + ("L" if type_name == "long" else "")
            constant = ConstantValue(
                id=value.id,
                location=value.location,
                name=value.name,
                framework=value.framework,
                value=text,
                type=type_name,
            )
            owner = vconf.get("class") or self.config.default_class
            composition.constants.setdefault(owner, []).append((constant, vconf))
        if self._log is not None:
            self._log(f"demoted enum {enum.name or '<anonymous>'} at {location_to_s(enum.location)}")
