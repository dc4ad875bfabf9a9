from __future__ import annotations

import re
from typing import Optional

from .bro_attributes import UnsupportedAttribute, is_available, parse_attribute
from .bro_cexpr import evaluate_c_constant
from .bro_config import BindingConfig
from .bro_diagnostics import Diagnostics
from .bro_entities import (
    BindingModel,
    CallbackParameter,
    ConstantValue,
    Declaration,
    Enum,
    EnumValue,
    Function,
    FunctionParameter,
    GlobalValue,
    ObjCCategory,
    ObjCClass,
    ObjCMemberHost,
    ObjCMethod,
    ObjCProperty,
    ObjCProtocol,
    Struct,
    StructMember,
    Typedef,
    find_named,
    is_init,
    parse_property_attrs,
)
from .bro_errors import UnexpectedNodeError
from .bro_nodes import NodeKind, TypeShape
from .bro_utils import _normalize_spelling, framework_from_path, location_to_id, location_to_s

K = NodeKind

ATTRIBUTE_KINDS = frozenset({K.UNEXPOSED_ATTR, K.ANNOTATE_ATTR, K.ASM_LABEL_ATTR})
STRUCT_ATTRIBUTE_KINDS = frozenset({K.UNEXPOSED_ATTR, K.PACKED_ATTR, K.ANNOTATE_ATTR})

# Child kinds each entity kind skips without complaint. Extended per run via
# the `ignored_cursor_kinds` configuration table.
IGNORED_CHILDREN: dict[str, frozenset[NodeKind]] = {
    "struct": frozenset({K.UNEXPOSED_EXPR}),
    "function": frozenset(
        {
            K.TYPE_REF,
            K.OBJC_CLASS_REF,
            K.OBJC_PROTOCOL_REF,
            K.UNEXPOSED_EXPR,
            K.IB_ACTION_ATTR,
            K.PURE_ATTR,
            K.CONST_ATTR,
            K.VISIBILITY_ATTR,
        }
    ),
    "property": frozenset(
        {
            K.TYPE_REF,
            K.PARM_DECL,
            K.OBJC_CLASS_REF,
            K.OBJC_PROTOCOL_REF,
            K.OBJC_INSTANCE_METHOD_DECL,
            K.IB_OUTLET_ATTR,
            K.ANNOTATE_ATTR,
            K.UNEXPOSED_EXPR,
            K.VISIBILITY_ATTR,
        }
    ),
    "class": frozenset(
        {
            K.UNEXPOSED_EXPR,
            K.STRUCT_DECL,
            K.TEMPLATE_TYPE_PARAMETER,
            K.TYPE_REF,
            K.VISIBILITY_ATTR,
            K.OBJC_IVAR_DECL,
        }
    ),
    "protocol": frozenset({K.UNEXPOSED_EXPR, K.VISIBILITY_ATTR}),
    "category": frozenset({K.UNEXPOSED_EXPR, K.TEMPLATE_TYPE_PARAMETER}),
    "global_value": frozenset(
        {
            K.TYPE_REF,
            K.INTEGER_LITERAL,
            K.FLOATING_LITERAL,
            K.STRING_LITERAL,
            K.CHARACTER_LITERAL,
            K.OBJC_STRING_LITERAL,
            K.ASM_LABEL_ATTR,
            K.OBJC_CLASS_REF,
            K.OBJC_PROTOCOL_REF,
            K.UNEXPOSED_EXPR,
            K.DECL_REF_EXPR,
            K.PAREN_EXPR,
            K.UNARY_OPERATOR,
            K.BINARY_OPERATOR,
            K.CALL_EXPR,
            K.STRUCT_DECL,
            K.INIT_LIST_EXPR,
            K.CSTYLE_CAST_EXPR,
            K.VISIBILITY_ATTR,
        }
    ),
    "enum": frozenset({K.PURE_ATTR, K.VISIBILITY_ATTR}),
}

_MACRO_NUMBER_RE = re.compile(
    r"^(([-+.0-9Ee]+[fF]?)|(~?0x[0-9a-fA-F]+[UL]*)|(~?[0-9]+[UL]*))$",
    re.IGNORECASE,
)
_MACRO_CAST_RE = re.compile(r"^\((long long|long|int)\)")
_STATIC_VALUE_RE = re.compile(r"=(.*?)$", re.DOTALL)
_NSINTEGER_MAX = 0x7FFFFFFFFFFFFFFF
_NSUINTEGER_MAX = 0xFFFFFFFFFFFFFFFF


def infer_constant_type(value: str) -> str:
    if value.endswith("L"):
        return "long"
    if value.endswith("F") or value.endswith("f"):
        return "float"
    if re.match(r"^[-~]?((0x[0-9a-f]+)|([0-9]+))$", value, re.IGNORECASE):
        return "int"
    return "double"


def _strip_number_suffix(value: str) -> str:
    value = re.sub(r"^((0x)?.*?)ULL$", r"\1L", value, flags=re.IGNORECASE)
    value = re.sub(r"^((0x)?.*?)LL$", r"\1L", value, flags=re.IGNORECASE)
    value = re.sub(r"^((0x)?.*?)UL$", r"\1", value, flags=re.IGNORECASE)
    value = re.sub(r"^((0x)?.*?)U$", r"\1", value, flags=re.IGNORECASE)
    return value


class DeclReader:
    """Builds entities from declaration nodes, one pass over immediate children."""

    def __init__(self, config: BindingConfig, diagnostics: Diagnostics, model: BindingModel) -> None:
        self.config = config
        self.diagnostics = diagnostics
        self.model = model

    def _init_decl(self, entity: Declaration, node) -> Declaration:
        location = node.location
        entity.id = location_to_id(location)
        entity.location = location
        entity.name = node.spelling or ""
        entity.framework = framework_from_path(location.file)
        return entity

    def _ignored(self, entity_kind: str) -> frozenset[NodeKind]:
        return IGNORED_CHILDREN.get(entity_kind, frozenset()) | self.config.extra_ignored_kinds(entity_kind)

    def _unexpected(self, child, label: str, entity: Declaration) -> UnexpectedNodeError:
        owner = f"{label} {entity.name}".strip()
        return UnexpectedNodeError(child.kind, owner, location_to_s(entity.location))

    def _add_attribute(self, entity: Declaration, node, label: str) -> None:
        attribute = parse_attribute(node.source_text, self.config.ignored_attributes)
        if isinstance(attribute, UnsupportedAttribute) and self.config.is_included(entity):
            self.diagnostics.warn(
                f"{label} {entity.name} has unsupported attribute '{attribute.source}'",
                entity.location,
            )
        entity.attributes.append(attribute)

    def _is_available(self, entity: Declaration) -> bool:
        return is_available(entity.attributes, self.config.target_platform, self.config.platform_version)

    def read_struct(self, node, parent: Optional[Struct] = None, is_union: bool = False) -> Struct:
        struct = self._init_decl(Struct(parent=parent, is_union=is_union), node)
        struct.name = _normalize_spelling(struct.name)
        label = "union" if is_union else "struct"
        ignored = self._ignored("struct")
        for child in node.iter_children():
            if child.kind in ignored:
                continue
            if child.kind == K.FIELD_DECL:
                struct.members.append(StructMember(child.spelling, child.type))
            elif child.kind in (K.STRUCT_DECL, K.UNION_DECL):
                nested = self.read_struct(child, struct, child.kind == K.UNION_DECL)
                self.model.structs.append(nested)
                struct.children.append(nested)
            elif child.kind in STRUCT_ATTRIBUTE_KINDS:
                if child.source_text != "?":
                    self._add_attribute(struct, child, label)
            else:
                raise self._unexpected(child, label, struct)
        return struct

    def read_typedef(self, node) -> Typedef:
        typedef = self._init_decl(Typedef(), node)
        typedef.typedef_type = node.typedef_type
        for child in node.iter_children():
            if child.kind == K.PARM_DECL:
                typedef.parameters.append(CallbackParameter(child.spelling, child.type))
            elif child.kind in (K.STRUCT_DECL, K.UNION_DECL):
                typedef.struct = self.read_struct(child, None, child.kind == K.UNION_DECL)
            elif child.kind == K.TYPE_REF:
                pointer = typedef.typedef_type is not None and typedef.typedef_type.kind == TypeShape.POINTER
                if child.type is not None and child.type.kind == TypeShape.RECORD and not pointer:
                    is_union = re.search(r"\bunion\b", child.spelling) is not None
                    typedef.struct = self.read_struct(child, None, is_union)
            elif child.kind == K.ENUM_DECL:
                typedef.enum = self.read_enum(child)
        return typedef

    def read_enum(self, node) -> Enum:
        enum = self._init_decl(Enum(), node)
        enum.declared_name = enum.name
        enum.type = node.type
        enum.enum_type = node.enum_type
        ignored = self._ignored("enum")
        for child in node.iter_children():
            if child.kind in ignored:
                continue
            if child.kind == K.ENUM_CONSTANT_DECL:
                enum.values.append(self.read_enum_value(child, enum))
            elif child.kind == K.UNEXPOSED_ATTR:
                self._add_attribute(enum, child, "enum")
            else:
                raise self._unexpected(child, "enum", enum)
        return enum

    def read_enum_value(self, node, enum: Enum) -> EnumValue:
        value = self._init_decl(EnumValue(enum=enum), node)
        value.value = node.enum_value if node.enum_value is not None else 0
        value.type = node.type
        spelling = node.type.spelling if node.type is not None else ""
        if spelling == "NSUInteger" and value.value in (-1, _NSUINTEGER_MAX):
            value.special = "NSUIntegerMax"
        elif spelling == "NSInteger" and value.value == _NSINTEGER_MAX:
            value.special = "NSIntegerMax"
        for child in node.iter_children():
            if child.kind == K.UNEXPOSED_ATTR:
                self._add_attribute(value, child, "enum value")
        return value

    def _read_function_into(self, function: Function, node, label: str) -> Function:
        function.type = node.type
        function.return_type = node.result_type
        function.is_variadic = bool(node.is_variadic)
        ignored = self._ignored("function")
        for child in node.iter_children():
            if child.kind in ignored:
                continue
            if child.kind == K.PARM_DECL:
                default_name = f"p{len(function.parameters)}"
                function.parameters.append(FunctionParameter(child.spelling or default_name, child.type))
            elif child.kind == K.COMPOUND_STMT:
                function.is_inline = True
            elif child.kind in ATTRIBUTE_KINDS:
                self._add_attribute(function, child, label)
            else:
                raise self._unexpected(child, label, function)
        return function

    def read_function(self, node) -> Function:
        return self._read_function_into(self._init_decl(Function(), node), node, "function")

    def read_method(self, node, owner: ObjCMemberHost) -> ObjCMethod:
        method = self._init_decl(ObjCMethod(owner=owner), node)
        method.is_static = node.kind == K.OBJC_CLASS_METHOD_DECL
        if method.is_static and node.source_text != "?":
            # Class properties are reported as class methods without a '+'.
            method.is_class_property = "+" not in node.source_text
        return self._read_function_into(method, node, "ObjC method")

    def read_property(self, node, owner: ObjCMemberHost) -> ObjCProperty:
        prop = self._init_decl(ObjCProperty(owner=owner), node)
        prop.type = node.type
        prop.attrs = parse_property_attrs(node.source_text)
        ignored = self._ignored("property")
        for child in node.iter_children():
            if child.kind in ignored:
                continue
            if child.kind == K.UNEXPOSED_ATTR:
                self._add_attribute(prop, child, "ObjC property")
            else:
                raise self._unexpected(child, "ObjC property", prop)
        return prop

    def _read_member(self, host: ObjCMemberHost, child, label: str) -> bool:
        if child.kind == K.OBJC_INSTANCE_METHOD_DECL:
            host.instance_methods.append(self.read_method(child, host))
        elif child.kind == K.OBJC_CLASS_METHOD_DECL:
            host.class_methods.append(self.read_method(child, host))
        elif child.kind == K.OBJC_PROPERTY_DECL:
            host.properties.append(self.read_property(child, host))
        elif child.kind == K.UNEXPOSED_ATTR:
            self._add_attribute(host, child, label)
        else:
            return False
        return True

    def read_class(self, node) -> ObjCClass:
        cls = self._init_decl(ObjCClass(), node)
        if node.kind == K.OBJC_CLASS_REF:
            cls.opaque = True
            return cls
        generic_fix = False
        ignored = self._ignored("class")
        for child in node.iter_children():
            if child.kind in ignored:
                continue
            if child.kind == K.OBJC_CLASS_REF:
                cls.opaque = False if generic_fix else cls.name == child.spelling
            elif child.kind == K.OBJC_SUPER_CLASS_REF:
                generic_fix = True
                cls.superclass = child.spelling
            elif child.kind == K.OBJC_PROTOCOL_REF:
                cls.protocols.append(child.spelling)
            elif self._read_member(cls, child, "ObjC class"):
                if child.kind == K.OBJC_INSTANCE_METHOD_DECL:
                    method = cls.instance_methods[-1]
                    if is_init(cls, method) and not self._is_available(method):
                        cls.def_constructor = False
            else:
                raise self._unexpected(child, "ObjC class", cls)
        cls.resolve_property_accessors()
        return cls

    def read_protocol(self, node) -> ObjCProtocol:
        prot = self._init_decl(ObjCProtocol(), node)
        if node.kind == K.OBJC_PROTOCOL_REF:
            prot.opaque = True
            return prot
        ignored = self._ignored("protocol")
        for child in node.iter_children():
            if child.kind in ignored:
                continue
            if child.kind == K.OBJC_PROTOCOL_REF:
                prot.opaque = prot.name == child.spelling
                prot.protocols.append(child.spelling)
            elif child.kind == K.OBJC_CLASS_REF:
                prot.owner = child.spelling
            elif not self._read_member(prot, child, "ObjC protocol"):
                raise self._unexpected(child, "ObjC protocol", prot)
        prot.resolve_property_accessors()
        return prot

    def read_category(self, node) -> ObjCCategory:
        cat = self._init_decl(ObjCCategory(), node)
        ignored = self._ignored("category")
        for child in node.iter_children():
            if child.kind in ignored:
                continue
            if child.kind == K.OBJC_CLASS_REF:
                cat.owner = child.spelling
            elif child.kind == K.OBJC_PROTOCOL_REF:
                cat.protocols.append(child.spelling)
            elif not self._read_member(cat, child, "ObjC category"):
                raise self._unexpected(child, "ObjC category", cat)
        cat.resolve_property_accessors()
        return cat

    def read_global_value(self, node) -> GlobalValue:
        value = self._init_decl(GlobalValue(), node)
        value.type = node.type
        conf = self.config.get_value_conf(value.name)
        if isinstance(conf, dict):
            value.enum = conf.get("enum")
            value.dictionary = conf.get("dictionary")
        ignored = self._ignored("global_value")
        for child in node.iter_children():
            if child.kind in ignored:
                continue
            if child.kind == K.UNEXPOSED_ATTR:
                self._add_attribute(value, child, "global value")
            else:
                raise self._unexpected(child, "global value", value)
        return value

    def constant(self, node, value: str, type_name: Optional[str] = None) -> ConstantValue:
        constant = self._init_decl(ConstantValue(), node)
        constant.value = value
        constant.type = type_name or infer_constant_type(value)
        if constant.type == "long" and value == "9223372036854775807L":
            constant.special = "NSIntegerMax"
        return constant

    def read_macro_constant(self, node) -> Optional[ConstantValue]:
        name = node.spelling or ""
        source = node.source_text
        if source == "?":
            return None
        body = source[len(name):].strip()
        while body.startswith("(") and body.endswith(")"):
            body = body[1:-1]
        body = _MACRO_CAST_RE.sub("", body, count=1)
        match = _MACRO_NUMBER_RE.match(body)
        if match:
            return self.constant(node, _strip_number_suffix(match.group(1)))
        other = find_named(self.model.constant_values, body)
        if other is not None:
            return self.constant(node, other.value, other.type)
        return None

    def demote_static_variable(self, node) -> Optional[ConstantValue]:
        match = _STATIC_VALUE_RE.search(node.source_text)
        if match is None:
            self.diagnostics.warn(f"Ignoring static global value {node.spelling} without value", node.location)
            return None
        expr = match.group(1).strip().rstrip(";").strip()
        constant = None
        try:
            constant = self.constant(node, evaluate_c_constant(expr))
        except ValueError:
            other = find_named(self.model.constant_values, expr)
            if other is not None:
                constant = self.constant(node, other.value, other.type)
        if constant is not None:
            self.diagnostics.warn(f"Turning the global value {node.spelling} into constants", node.location)
        else:
            self.diagnostics.warn(
                f"Failed to turning the global value {node.spelling} into constants (eval failed)",
                node.location,
            )
        return constant
