from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Optional

from .bro_attributes import Attribute
from .bro_nodes import NativeType, SourceLocation, TypeShape


class Entity:
    def pointer(self) -> "Pointer":
        return Pointer(pointee=self)


@dataclass(eq=False)
class Builtin(Entity):
    name: str
    type_kinds: tuple[TypeShape, ...] = ()
    target_name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.target_name is None:
            self.target_name = self.name


@dataclass(eq=False)
class Pointer(Entity):
    pointee: Entity

    @property
    def name(self) -> str:
        return f"{getattr(self.pointee, 'name', '?')} *"


@dataclass(eq=False)
class Array(Entity):
    base_type: Entity
    dimensions: list[int] = field(default_factory=list)

    @property
    def name(self) -> str:
        dims = "".join(f"[{dim}]" for dim in self.dimensions)
        return f"{getattr(self.base_type, 'name', '?')}{dims}"


@dataclass(eq=False)
class Block(Entity):
    return_type: Entity
    param_types: list[Entity] = field(default_factory=list)


@dataclass(eq=False)
class ObjCId(Entity):
    protocols: list[Entity] = field(default_factory=list)

    @property
    def name(self) -> str:
        return " & ".join(getattr(prot, "name", "?") for prot in self.protocols)


@dataclass(eq=False)
class GenericInstance(Entity):
    base: Entity
    arguments: list[Entity] = field(default_factory=list)


@dataclass(eq=False)
class Declaration(Entity):
    id: Optional[str] = None
    location: Optional[SourceLocation] = None
    name: str = ""
    framework: Optional[str] = None
    attributes: list[Attribute] = field(default_factory=list)
    # Filled in by the annotation step once the model is complete.
    conf: Optional[dict[str, Any]] = field(default=None, repr=False)
    target_name: Optional[str] = None
    available: bool = True
    outdated: bool = False


@dataclass(eq=False)
class StructMember:
    name: str
    type: NativeType
    resolved: Optional[Entity] = field(default=None, repr=False)


@dataclass(eq=False)
class Struct(Declaration):
    members: list[StructMember] = field(default_factory=list)
    children: list["Struct"] = field(default_factory=list)
    parent: Optional["Struct"] = field(default=None, repr=False)
    is_union: bool = False

    @property
    def is_opaque(self) -> bool:
        return not self.members


@dataclass(eq=False)
class CallbackParameter:
    name: str
    type: NativeType
    resolved: Optional[Entity] = field(default=None, repr=False)


@dataclass(eq=False)
class Typedef(Declaration):
    typedef_type: Optional[NativeType] = None
    parameters: list[CallbackParameter] = field(default_factory=list)
    struct: Optional[Struct] = None
    enum: Optional["Enum"] = None
    is_structdef: bool = False

    @property
    def is_callback(self) -> bool:
        return bool(self.parameters)

    @property
    def is_struct(self) -> bool:
        return self.struct is not None or self.is_structdef

    @property
    def is_enum(self) -> bool:
        return self.enum is not None


@dataclass(eq=False)
class FunctionParameter:
    name: str
    type: NativeType
    resolved: Optional[Entity] = field(default=None, repr=False)


@dataclass(eq=False)
class Function(Declaration):
    type: Optional[NativeType] = None
    return_type: Optional[NativeType] = None
    parameters: list[FunctionParameter] = field(default_factory=list)
    is_variadic: bool = False
    is_inline: bool = False
    resolved_return: Optional[Entity] = field(default=None, repr=False)

    @property
    def takes_va_list(self) -> bool:
        return bool(self.parameters) and self.parameters[-1].type.spelling == "va_list"

    def definition(self) -> str:
        spelling = self.type.spelling if self.type is not None else "()"
        return spelling.replace("(", f"{self.name}(", 1)


@dataclass(eq=False)
class ObjCMethod(Function):
    owner: Optional["ObjCMemberHost"] = field(default=None, repr=False)
    is_static: bool = False
    is_class_property: bool = False

    @property
    def full_name(self) -> str:
        return ("+" if self.is_static else "-") + self.name


_PROPERTY_ATTRS_RE = re.compile(r"@property\s*(\((?:[^)]+)\))")


def parse_property_attrs(source: str) -> dict[str, Any]:
    match = _PROPERTY_ATTRS_RE.search(source)
    if not match:
        return {}
    attrs: dict[str, Any] = {}
    for item in re.split(r",\s*", match.group(1).strip()[1:-1]):
        if not item:
            continue
        pair = re.split(r"\s*=\s*", item.strip())
        attrs[pair[0]] = pair[1] if len(pair) > 1 else True
    return attrs


@dataclass(eq=False)
class ObjCProperty(Declaration):
    type: Optional[NativeType] = None
    owner: Optional["ObjCMemberHost"] = field(default=None, repr=False)
    getter: Optional[ObjCMethod] = None
    setter: Optional[ObjCMethod] = None
    attrs: dict[str, Any] = field(default_factory=dict)

    @property
    def getter_name(self) -> str:
        return self.attrs.get("getter") or self.name

    @property
    def setter_name(self) -> str:
        return self.attrs.get("setter") or f"set{self.name[:1].upper()}{self.name[1:]}:"

    @property
    def is_static(self) -> bool:
        return bool(self.attrs.get("class"))

    @property
    def is_readonly(self) -> bool:
        return self.setter is None and bool(self.attrs.get("readonly"))


def _same_position(a: Declaration, b: Declaration) -> bool:
    if a.location is None or not a.location.file:
        return False
    return a.id == b.id


@dataclass(eq=False)
class ObjCMemberHost(Declaration):
    instance_methods: list[ObjCMethod] = field(default_factory=list)
    class_methods: list[ObjCMethod] = field(default_factory=list)
    properties: list[ObjCProperty] = field(default_factory=list)

    def resolve_property_accessors(self) -> None:
        # Properties also appear as instance methods; fold them into the property.
        kept: list[ObjCMethod] = []
        for method in self.instance_methods:
            prop = next(
                (
                    p
                    for p in self.properties
                    if _same_position(p, method) or p.getter_name == method.name or p.setter_name == method.name
                ),
                None,
            )
            if prop is None:
                kept.append(method)
                continue
            if method.name.endswith(":"):
                prop.setter = method
            else:
                prop.getter = method
        self.instance_methods = kept

    def members(self) -> list[Declaration]:
        return [*self.instance_methods, *self.class_methods, *self.properties]


@dataclass(eq=False)
class ObjCClass(ObjCMemberHost):
    superclass: Optional[str] = None
    protocols: list[str] = field(default_factory=list)
    opaque: bool = False
    def_constructor: bool = True


@dataclass(eq=False)
class ObjCProtocol(ObjCMemberHost):
    protocols: list[str] = field(default_factory=list)
    owner: Optional[str] = None
    opaque: bool = False

    @property
    def is_informal(self) -> bool:
        return self.owner is not None


@dataclass(eq=False)
class ObjCCategory(ObjCMemberHost):
    owner: Optional[str] = None
    protocols: list[str] = field(default_factory=list)


@dataclass(eq=False)
class EnumValue(Declaration):
    value: int = 0
    type: Optional[NativeType] = None
    enum: Optional["Enum"] = field(default=None, repr=False)
    special: Optional[str] = None


@dataclass(eq=False)
class Enum(Declaration):
    values: list[EnumValue] = field(default_factory=list)
    type: Optional[NativeType] = None
    enum_type: Optional[NativeType] = None
    declared_name: str = ""
    enum_conf: dict[str, Any] = field(default_factory=dict, repr=False)
    prefix: Optional[str] = None
    suffix: str = ""
    is_options: bool = False

    @property
    def merge_with(self) -> Optional[str]:
        return self.enum_conf.get("merge_with")


@dataclass(eq=False)
class GlobalValue(Declaration):
    type: Optional[NativeType] = None
    enum: Optional[str] = None
    dictionary: Optional[str] = None
    resolved_type: Optional[Entity] = field(default=None, repr=False)

    @property
    def is_const(self) -> bool:
        return self.type is not None and re.search(r"\bconst\b", self.type.spelling) is not None


@dataclass(eq=False)
class ConstantValue(Declaration):
    value: str = ""
    type: str = "double"
    special: Optional[str] = None


@dataclass(eq=False)
class GlobalValueEnumeration(Declaration):
    type: Optional[NativeType] = None
    values: list[GlobalValue] = field(default_factory=list)
    java_type: Optional[str] = None
    extends: Optional[str] = None


@dataclass(eq=False)
class GlobalValueDictionaryWrapper(Declaration):
    type: Optional[NativeType] = None
    enum: Optional[GlobalValueEnumeration] = None
    values: list[GlobalValue] = field(default_factory=list)
    java_type: Optional[str] = None
    mutable: bool = True
    methods: Optional[dict[str, Any]] = None
    marshalers: bool = True
    extends: Optional[str] = None
    constructor_visibility: Optional[str] = None


@dataclass
class BindingModel:
    typedefs: list[Typedef] = field(default_factory=list)
    functions: list[Function] = field(default_factory=list)
    objc_classes: list[ObjCClass] = field(default_factory=list)
    objc_protocols: list[ObjCProtocol] = field(default_factory=list)
    objc_categories: list[ObjCCategory] = field(default_factory=list)
    global_values: list[GlobalValue] = field(default_factory=list)
    global_value_enums: dict[str, GlobalValueEnumeration] = field(default_factory=dict)
    global_value_dictionaries: dict[str, GlobalValueDictionaryWrapper] = field(default_factory=dict)
    constant_values: list[ConstantValue] = field(default_factory=list)
    structs: list[Struct] = field(default_factory=list)
    enums: list[Enum] = field(default_factory=list)
    cfenums: set[str] = field(default_factory=set)
    cfoptions: set[str] = field(default_factory=set)

    def declarations(self) -> list[Declaration]:
        return [
            *self.typedefs,
            *self.functions,
            *self.objc_classes,
            *self.objc_protocols,
            *self.objc_categories,
            *self.global_values,
            *self.global_value_enums.values(),
            *self.global_value_dictionaries.values(),
            *self.constant_values,
            *self.structs,
            *self.enums,
        ]


def find_named(entities, name: str):
    for entity in entities:
        if entity.name == name:
            return entity
    return None


def is_method_like_init(owner_name: str, method: ObjCMethod) -> bool:
    if method.is_static or not method.name.startswith("init"):
        return False
    spelling = method.return_type.spelling if method.return_type is not None else ""
    return (
        spelling == "id"
        or "instancetype" in spelling
        or re.search(rf"kindof\s+{re.escape(owner_name)}\s*\*", spelling) is not None
        or spelling == f"{owner_name} *"
    )


def is_init(owner, method: ObjCMethod) -> bool:
    return isinstance(owner, ObjCClass) and is_method_like_init(owner.name, method)
