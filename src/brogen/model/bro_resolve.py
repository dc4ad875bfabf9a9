from __future__ import annotations

import re
from typing import Callable, Optional

from .bro_builtins import BuiltinRegistry
from .bro_config import BindingConfig
from .bro_diagnostics import Diagnostics
from .bro_entities import (
    Array,
    BindingModel,
    Block,
    Builtin,
    Entity,
    Enum,
    GenericInstance,
    ObjCClass,
    ObjCId,
    Struct,
    Typedef,
    find_named,
)
from .bro_errors import BrogenError, TypeResolutionError
from .bro_nodes import NativeType, NodeKind, TypeShape
from .bro_utils import (
    _cache_spelling,
    _generic_free_name,
    _normalize_spelling,
    _strip_const,
    _strip_nullability,
    location_to_id,
    location_to_s,
)

_PROTOCOL_LIST_RE = re.compile(r"^(id|NSObject)\s*<(.*)>$")
_CLASS_PROTOCOL_RE = re.compile(r"^Class\s*<.*>$")
_GENERIC_RE = re.compile(r"(.*?)<(.*)>")
_MARSHAL_PREFIX_RE = re.compile(r"^(@ByVal|@Array\([^)]*\))\s+")

# Generic arguments that name a placeholder rather than a concrete type.
DISALLOWED_GENERIC_TOKENS = ("NSCopying", "KeyType", "ObjectType", "Class", "<", ">")

_ARRAY_BASE_NAMES = {
    "char": "byte",
    "unsigned char": "byte",
    "signed char": "byte",
    "short": "short",
    "unsigned short": "short",
    "unsigned int": "int",
    "long": "MachineSInt",
    "unsigned long": "MachineUInt",
    "long long": "long",
    "unsigned long long": "long",
}

Handler = Callable[["TypeResolver", NativeType, str, bool, Optional[Entity]], Optional[Entity]]


class TypeResolver:
    """Maps native types onto model entities.

    One resolver is bound to one model and configuration. Results are cached
    by normalized spelling, so resolving the same spelling twice returns the
    same entity instance. `instancetype` is never cached because it depends
    on the owner passed in.
    """

    def __init__(
        self,
        model: BindingModel,
        config: BindingConfig,
        builtins: Optional[BuiltinRegistry] = None,
        diagnostics: Optional[Diagnostics] = None,
    ) -> None:
        self.model = model
        self.config = config
        self.builtins = builtins or BuiltinRegistry()
        self.diagnostics = diagnostics or Diagnostics()
        self.cache: dict[str, Entity] = {}
        self._wildcard = Builtin("?")

    def builtin(self, name: str) -> Builtin:
        builtin = self.builtins.by_name(name)
        if builtin is None:
            raise KeyError(name)
        return builtin

    def cache_key(self, native: NativeType, allow_arrays: bool = False) -> str:
        declaration = native.declaration
        if (
            native.kind == TypeShape.TYPEDEF
            and declaration is not None
            and declaration.kind == NodeKind.TEMPLATE_TYPE_PARAMETER
            and find_named(self.model.typedefs, native.spelling) is None
        ):
            parent = declaration.lexical_parent
            scope = parent.spelling if parent is not None else ""
            return f"{scope}.{native.spelling}"
        key = _cache_spelling(native.spelling)
        if native.kind == TypeShape.CONSTANT_ARRAY and allow_arrays:
            key += " @Array"
        return key

    def resolve(
        self,
        native: Optional[NativeType],
        allow_arrays: bool = False,
        owner: Optional[Entity] = None,
    ) -> Entity:
        if native is None:
            return self.builtins.by_kind(TypeShape.VOID)
        key = self.cache_key(native, allow_arrays)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        entity = self._resolve0(native, allow_arrays, owner)
        if entity is None:
            declaration = native.declaration
            location = location_to_s(declaration.location) if declaration is not None else None
            raise TypeResolutionError(native.spelling, native.kind, location)
        if isinstance(entity, Typedef) and entity.is_callback:
            entity = self.builtin("FunctionPtr")
        if _cache_spelling(native.spelling) != "instancetype":
            self.cache[key] = entity
        return entity

    def resolve_by_name(self, name: str) -> Optional[Entity]:
        name = _MARSHAL_PREFIX_RE.sub("", name, count=1)
        original = name
        name = self.config.typedefs.get(name, name)
        model = self.model
        entity = (
            self.builtins.by_name(name)
            or model.global_value_enums.get(name)
            or model.global_value_dictionaries.get(name)
            or find_named(model.enums, name)
            or find_named(model.structs, name)
            or find_named(model.objc_classes, name)
            or find_named(model.objc_protocols, name)
            or find_named(model.typedefs, name)
        )
        if entity is None and original != name:
            # Aliases to names the model does not know are taken verbatim.
            return Builtin(name)
        return entity

    def enum_underlying_type(self, enum: Enum) -> Entity:
        configured = enum.enum_conf.get("type")
        if configured:
            entity = self.resolve_by_name(str(configured))
            if entity is not None:
                return entity
        if enum.enum_type is None:
            return self.builtin("int")
        if enum.enum_type.kind == TypeShape.ENUM:
            if enum.values and enum.values[0].type is not None:
                return self.resolve(enum.values[0].type.canonical)
            return self.builtin("int")
        return self.resolve(enum.enum_type)

    def _resolve0(self, native: NativeType, allow_arrays: bool, owner: Optional[Entity]) -> Optional[Entity]:
        name = _strip_nullability(_normalize_spelling(native.spelling))
        generic_free = _generic_free_name(name)
        typedefs = self.config.typedefs
        if native.kind != TypeShape.OBJC_OBJECT_POINTER and generic_free in typedefs:
            return self.resolve_by_name(generic_free)
        if name in typedefs:
            return self.resolve_by_name(name)
        if name in self.config.structdefs:
            return Typedef(name=self.config.structdefs[name], is_structdef=True)
        handler = _SHAPE_HANDLERS[native.kind]
        return handler(self, native, name, allow_arrays, owner)

    def _find_enum(self, name: str) -> Optional[Enum]:
        for enum in self.model.enums:
            if enum.name == name or (enum.declared_name and enum.declared_name == name):
                return enum
        return None

    def _rewrite_array(self, name: str) -> Optional[Entity]:
        name = name.replace("[]", "*")
        name = re.sub(r"^(id|NSObject)(<.*>)?\s*", "NSObject *", name, count=1)
        base = name.split("*", 1)[0].strip()
        entity = self.resolve_by_name(_ARRAY_BASE_NAMES.get(base, base))
        if entity is None:
            return None
        for _ in range(name.count("*")):
            entity = entity.pointer()
        return entity


def _resolve_pointer(resolver: TypeResolver, native, name, allow_arrays, owner):
    pointee = native.pointee
    if pointee is None:
        return None
    if pointee.kind in (TypeShape.FUNCTION_PROTO, TypeShape.FUNCTION_NO_PROTO):
        return resolver.builtin("FunctionPtr")
    if pointee.kind == TypeShape.UNEXPOSED and "(*)" in name:
        return resolver.builtin("FunctionPtr")
    if pointee.kind == TypeShape.TYPEDEF:
        declaration = pointee.declaration
        underlying = declaration.typedef_type if declaration is not None else None
        if underlying is not None and underlying.kind == TypeShape.FUNCTION_PROTO:
            return resolver.builtin("FunctionPtr")
    entity = resolver.resolve(pointee)
    enum = None
    if isinstance(entity, Enum):
        enum = entity
    elif isinstance(entity, Typedef) and entity.is_enum:
        enum = entity.enum
    if enum is None:
        return entity.pointer()
    # Pointers to enums are exposed as pointers to the enum's integer type.
    if pointee.canonical.kind == TypeShape.ENUM:
        return resolver.enum_underlying_type(enum).pointer()
    return resolver.resolve(pointee.canonical).pointer()


def _resolve_record(resolver: TypeResolver, native, name, allow_arrays, owner):
    struct = find_named(resolver.model.structs, name)
    if struct is None and native.declaration is not None:
        # Anonymous records only match by declaration position.
        decl_id = location_to_id(native.declaration.location)
        struct = next((s for s in resolver.model.structs if s.id == decl_id), None)
    return struct


def _resolve_protocol_list(resolver: TypeResolver, names: str) -> Optional[Entity]:
    protocols = [resolver.resolve_by_name(part.strip()) for part in names.split(",") if part.strip()]
    if not protocols or any(prot is None for prot in protocols):
        return None
    if len(protocols) == 1:
        return protocols[0]
    return ObjCId(protocols)


def _resolve_generic(resolver: TypeResolver, type_name: str, arguments: str, generic_free: str):
    arguments = arguments.replace("*", "").replace(" ", "").replace("__kindof", "", 1)
    arguments = re.sub(r"id<(.*)>", r"\1", arguments, count=1)
    base = resolver.resolve_by_name(type_name.strip())
    valid = False
    resolved: list[Entity] = []
    if base is not None:
        for argument in arguments.split(","):
            valid = not any(token in argument for token in DISALLOWED_GENERIC_TOKENS)
            if not valid:
                break
            if argument in ("id", "NSObject"):
                resolved.append(resolver._wildcard)
                continue
            entity = resolver.resolve_by_name(argument)
            valid = isinstance(entity, (ObjCClass, Typedef, Builtin))
            if not valid:
                break
            resolved.append(entity)
    if valid:
        return GenericInstance(base, resolved)
    if generic_free in resolver.config.typedefs:
        return resolver.resolve_by_name(generic_free)
    return base.pointer() if base is not None else None


def _resolve_objc_object_pointer(resolver: TypeResolver, native, name, allow_arrays, owner):
    if native.pointee is not None:
        pointee_name = native.pointee.spelling
    else:
        pointee_name = re.sub(r"\s*\*$", "", name)
    pointee_name = _strip_nullability(_strip_const(pointee_name))
    match = _PROTOCOL_LIST_RE.match(pointee_name)
    if match:
        return _resolve_protocol_list(resolver, match.group(2))
    if _CLASS_PROTOCOL_RE.match(pointee_name):
        return resolver.resolve_by_name("ObjCClass")
    match = _GENERIC_RE.match(pointee_name)
    if match:
        return _resolve_generic(resolver, match.group(1), match.group(2), _generic_free_name(name))
    entity = resolver.resolve_by_name(pointee_name)
    return entity.pointer() if entity is not None else None


def _resolve_objc_object(resolver: TypeResolver, native, name, allow_arrays, owner):
    match = _PROTOCOL_LIST_RE.match(name)
    if match:
        return _resolve_protocol_list(resolver, match.group(2))
    return resolver.resolve_by_name(_generic_free_name(name))


def _resolve_objc_type_param(resolver: TypeResolver, native, name, allow_arrays, owner):
    if native.canonical is not native:
        return resolver.resolve(native.canonical, allow_arrays, owner)
    return resolver.builtin("ObjCObject")


def _resolve_enum(resolver: TypeResolver, native, name, allow_arrays, owner):
    return resolver._find_enum(name)


def _resolve_incomplete_array(resolver: TypeResolver, native, name, allow_arrays, owner):
    return resolver._rewrite_array(name)


def _resolve_unexposed(resolver: TypeResolver, native, name, allow_arrays, owner):
    entity = find_named(resolver.model.structs, name) or resolver._find_enum(name)
    if entity is not None:
        return entity
    if name.endswith("[]"):
        return resolver._rewrite_array(name)
    if "(" in name:
        return resolver.builtin("FunctionPtr")
    return None


def _resolve_typedef(resolver: TypeResolver, native, name, allow_arrays, owner):
    if name == "instancetype":
        return owner if owner is not None else resolver.builtin("ObjCObject")
    typedef = find_named(resolver.model.typedefs, name)
    if typedef is None:
        declaration = native.declaration
        if declaration is not None and declaration.kind == NodeKind.TEMPLATE_TYPE_PARAMETER:
            bound = declaration.typedef_type
            if bound is None and native.canonical is not native:
                bound = native.canonical
            if bound is None:
                return resolver.builtin("ObjCObject")
            return resolver.resolve(bound)
        # Builtin typedefs such as va_list.
        return resolver.builtins.by_name(name)
    if typedef.typedef_type is not None and typedef.typedef_type.kind == TypeShape.BLOCK_POINTER:
        return resolver.resolve(typedef.typedef_type)
    if typedef.is_callback or typedef.is_struct or typedef.is_enum:
        return typedef
    if resolver.config.get_class_conf(typedef.name) is not None:
        return typedef
    for enum in resolver.model.enums:
        if enum.name == name or enum.id == typedef.id:
            return enum
    return resolver.resolve(typedef.typedef_type)


def _resolve_constant_array(resolver: TypeResolver, native, name, allow_arrays, owner):
    dimensions: list[int] = []
    base = native
    while base is not None and base.kind == TypeShape.CONSTANT_ARRAY:
        dimensions.append(base.array_size or 0)
        base = base.element_type
    entity = resolver.resolve(base)
    if allow_arrays:
        return Array(entity, dimensions)
    for _ in dimensions:
        entity = entity.pointer()
    return entity


def _resolve_block_pointer(resolver: TypeResolver, native, name, allow_arrays, owner):
    try:
        proto = native.pointee
        if proto is None:
            raise TypeResolutionError(native.spelling, native.kind, None)
        return_type = resolver.resolve(proto.result_type)
        param_types = [resolver.resolve(arg) for arg in proto.arg_types]
        return Block(return_type, param_types)
    except BrogenError as exc:
        resolver.diagnostics.warn(
            f"Unknown block type {native.spelling}. Using ObjCBlock. Failed to convert due: {exc}"
        )
        return resolver.builtins.by_kind(TypeShape.BLOCK_POINTER)


def _resolve_function(resolver: TypeResolver, native, name, allow_arrays, owner):
    return resolver.builtin("FunctionPtr")


def _resolve_sugar(resolver: TypeResolver, native, name, allow_arrays, owner):
    if native.named_type is not None and native.named_type is not native:
        return resolver.resolve(native.named_type, allow_arrays, owner)
    entity = resolver.resolve_by_name(name)
    if entity is None:
        resolver.diagnostics.warn(f"Unknown elaborated type {native.spelling}")
    return entity


def _resolve_fallback(resolver: TypeResolver, native, name, allow_arrays, owner):
    return (
        find_named(resolver.model.enums, name)
        or resolver.builtins.by_kind(native.kind)
        or find_named(resolver.model.typedefs, name)
    )


_SHAPE_HANDLERS: dict[TypeShape, Handler] = {
    TypeShape.INVALID: _resolve_fallback,
    TypeShape.UNEXPOSED: _resolve_unexposed,
    TypeShape.VOID: _resolve_fallback,
    TypeShape.BOOL: _resolve_fallback,
    TypeShape.CHAR_U: _resolve_fallback,
    TypeShape.UCHAR: _resolve_fallback,
    TypeShape.CHAR16: _resolve_fallback,
    TypeShape.CHAR32: _resolve_fallback,
    TypeShape.USHORT: _resolve_fallback,
    TypeShape.UINT: _resolve_fallback,
    TypeShape.ULONG: _resolve_fallback,
    TypeShape.ULONGLONG: _resolve_fallback,
    TypeShape.UINT128: _resolve_fallback,
    TypeShape.CHAR_S: _resolve_fallback,
    TypeShape.SCHAR: _resolve_fallback,
    TypeShape.WCHAR: _resolve_fallback,
    TypeShape.SHORT: _resolve_fallback,
    TypeShape.INT: _resolve_fallback,
    TypeShape.LONG: _resolve_fallback,
    TypeShape.LONGLONG: _resolve_fallback,
    TypeShape.INT128: _resolve_fallback,
    TypeShape.FLOAT: _resolve_fallback,
    TypeShape.DOUBLE: _resolve_fallback,
    TypeShape.LONGDOUBLE: _resolve_fallback,
    TypeShape.OBJC_ID: _resolve_fallback,
    TypeShape.OBJC_CLASS: _resolve_fallback,
    TypeShape.OBJC_SEL: _resolve_fallback,
    TypeShape.POINTER: _resolve_pointer,
    TypeShape.BLOCK_POINTER: _resolve_block_pointer,
    TypeShape.RECORD: _resolve_record,
    TypeShape.ENUM: _resolve_enum,
    TypeShape.TYPEDEF: _resolve_typedef,
    TypeShape.OBJC_INTERFACE: _resolve_objc_object,
    TypeShape.OBJC_OBJECT_POINTER: _resolve_objc_object_pointer,
    TypeShape.OBJC_OBJECT: _resolve_objc_object,
    TypeShape.OBJC_TYPE_PARAM: _resolve_objc_type_param,
    TypeShape.FUNCTION_NO_PROTO: _resolve_function,
    TypeShape.FUNCTION_PROTO: _resolve_function,
    TypeShape.CONSTANT_ARRAY: _resolve_constant_array,
    TypeShape.INCOMPLETE_ARRAY: _resolve_incomplete_array,
    TypeShape.VECTOR: _resolve_fallback,
    TypeShape.ELABORATED: _resolve_sugar,
    TypeShape.ATTRIBUTED: _resolve_sugar,
}

_unhandled = set(TypeShape) - set(_SHAPE_HANDLERS)
if _unhandled:
    raise RuntimeError(f"type shapes without a resolver: {sorted(shape.name for shape in _unhandled)}")
