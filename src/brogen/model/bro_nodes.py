from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterator, Optional

import yaml

from .bro_errors import ConfigError


class NodeKind(enum.Enum):
    TRANSLATION_UNIT = enum.auto()
    UNEXPOSED_DECL = enum.auto()
    LINKAGE_SPEC = enum.auto()
    TYPEDEF_DECL = enum.auto()
    STRUCT_DECL = enum.auto()
    UNION_DECL = enum.auto()
    ENUM_DECL = enum.auto()
    ENUM_CONSTANT_DECL = enum.auto()
    FIELD_DECL = enum.auto()
    FUNCTION_DECL = enum.auto()
    PARM_DECL = enum.auto()
    VAR_DECL = enum.auto()
    OBJC_INTERFACE_DECL = enum.auto()
    OBJC_CATEGORY_DECL = enum.auto()
    OBJC_PROTOCOL_DECL = enum.auto()
    OBJC_PROPERTY_DECL = enum.auto()
    OBJC_IVAR_DECL = enum.auto()
    OBJC_INSTANCE_METHOD_DECL = enum.auto()
    OBJC_CLASS_METHOD_DECL = enum.auto()
    OBJC_SUPER_CLASS_REF = enum.auto()
    OBJC_PROTOCOL_REF = enum.auto()
    OBJC_CLASS_REF = enum.auto()
    TYPE_REF = enum.auto()
    TEMPLATE_TYPE_PARAMETER = enum.auto()
    MACRO_DEFINITION = enum.auto()
    MACRO_INSTANTIATION = enum.auto()
    INCLUSION_DIRECTIVE = enum.auto()
    UNEXPOSED_EXPR = enum.auto()
    DECL_REF_EXPR = enum.auto()
    INTEGER_LITERAL = enum.auto()
    FLOATING_LITERAL = enum.auto()
    STRING_LITERAL = enum.auto()
    CHARACTER_LITERAL = enum.auto()
    OBJC_STRING_LITERAL = enum.auto()
    PAREN_EXPR = enum.auto()
    UNARY_OPERATOR = enum.auto()
    BINARY_OPERATOR = enum.auto()
    CSTYLE_CAST_EXPR = enum.auto()
    INIT_LIST_EXPR = enum.auto()
    CALL_EXPR = enum.auto()
    COMPOUND_STMT = enum.auto()
    UNEXPOSED_ATTR = enum.auto()
    IB_ACTION_ATTR = enum.auto()
    IB_OUTLET_ATTR = enum.auto()
    ANNOTATE_ATTR = enum.auto()
    ASM_LABEL_ATTR = enum.auto()
    PACKED_ATTR = enum.auto()
    PURE_ATTR = enum.auto()
    CONST_ATTR = enum.auto()
    VISIBILITY_ATTR = enum.auto()
    OTHER = enum.auto()


class TypeShape(enum.Enum):
    INVALID = enum.auto()
    UNEXPOSED = enum.auto()
    VOID = enum.auto()
    BOOL = enum.auto()
    CHAR_U = enum.auto()
    UCHAR = enum.auto()
    CHAR16 = enum.auto()
    CHAR32 = enum.auto()
    USHORT = enum.auto()
    UINT = enum.auto()
    ULONG = enum.auto()
    ULONGLONG = enum.auto()
    UINT128 = enum.auto()
    CHAR_S = enum.auto()
    SCHAR = enum.auto()
    WCHAR = enum.auto()
    SHORT = enum.auto()
    INT = enum.auto()
    LONG = enum.auto()
    LONGLONG = enum.auto()
    INT128 = enum.auto()
    FLOAT = enum.auto()
    DOUBLE = enum.auto()
    LONGDOUBLE = enum.auto()
    OBJC_ID = enum.auto()
    OBJC_CLASS = enum.auto()
    OBJC_SEL = enum.auto()
    POINTER = enum.auto()
    BLOCK_POINTER = enum.auto()
    RECORD = enum.auto()
    ENUM = enum.auto()
    TYPEDEF = enum.auto()
    OBJC_INTERFACE = enum.auto()
    OBJC_OBJECT_POINTER = enum.auto()
    OBJC_OBJECT = enum.auto()
    OBJC_TYPE_PARAM = enum.auto()
    FUNCTION_NO_PROTO = enum.auto()
    FUNCTION_PROTO = enum.auto()
    CONSTANT_ARRAY = enum.auto()
    INCOMPLETE_ARRAY = enum.auto()
    VECTOR = enum.auto()
    ELABORATED = enum.auto()
    ATTRIBUTED = enum.auto()


@dataclass(frozen=True)
class SourceLocation:
    file: Optional[str] = None
    line: int = 0
    column: int = 0
    offset: int = 0


@dataclass(eq=False)
class NativeType:
    """In-memory native type expression.

    Mirrors the accessors the resolver needs from a parser's type object. The
    `canonical` type defaults to the type itself.
    """

    kind: TypeShape
    spelling: str = ""
    pointee: Optional["NativeType"] = None
    result_type: Optional["NativeType"] = None
    arg_types: list["NativeType"] = field(default_factory=list)
    element_type: Optional["NativeType"] = None
    array_size: Optional[int] = None
    declaration: Optional["SyntaxNode"] = field(default=None, repr=False)
    canonical: Optional["NativeType"] = field(default=None, repr=False)
    named_type: Optional["NativeType"] = None

    def __post_init__(self) -> None:
        if self.canonical is None:
            self.canonical = self


@dataclass(eq=False)
class SyntaxNode:
    kind: NodeKind
    spelling: str = ""
    location: SourceLocation = field(default_factory=SourceLocation)
    source_text: str = "?"
    type: Optional[NativeType] = None
    typedef_type: Optional[NativeType] = None
    enum_type: Optional[NativeType] = None
    enum_value: Optional[int] = None
    result_type: Optional[NativeType] = None
    is_variadic: bool = False
    children: list["SyntaxNode"] = field(default_factory=list)
    lexical_parent: Optional["SyntaxNode"] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        for child in self.children:
            if child.lexical_parent is None:
                child.lexical_parent = self

    def iter_children(self) -> Iterator["SyntaxNode"]:
        return iter(self.children)


class _TreeLoader:
    def __init__(self) -> None:
        self._nodes: dict[int, SyntaxNode] = {}
        self._types: dict[int, NativeType] = {}

    def node(self, data) -> Optional[SyntaxNode]:
        if data is None:
            return None
        if not isinstance(data, dict):
            raise ConfigError(f"tree node must be a mapping, got {type(data).__name__}")
        memo = self._nodes.get(id(data))
        if memo is not None:
            return memo
        kind_name = str(data.get("kind", "")).upper()
        if kind_name not in NodeKind.__members__:
            raise ConfigError(f"unknown node kind '{data.get('kind')}'")
        node = SyntaxNode(kind=NodeKind[kind_name])
        self._nodes[id(data)] = node
        node.spelling = str(data.get("spelling") or "")
        loc = data.get("location") or {}
        node.location = SourceLocation(
            file=loc.get("file"),
            line=int(loc.get("line", 0)),
            column=int(loc.get("column", 0)),
            offset=int(loc.get("offset", 0)),
        )
        node.source_text = str(data.get("source", "?"))
        node.type = self.type(data.get("type"))
        node.typedef_type = self.type(data.get("typedef_type"))
        node.enum_type = self.type(data.get("enum_type"))
        node.enum_value = data.get("enum_value")
        node.result_type = self.type(data.get("result_type"))
        node.is_variadic = bool(data.get("variadic", False))
        for child_data in data.get("children") or []:
            child = self.node(child_data)
            if child.lexical_parent is None:
                child.lexical_parent = node
            node.children.append(child)
        return node

    def type(self, data) -> Optional[NativeType]:
        if data is None:
            return None
        memo = self._types.get(id(data))
        if memo is not None:
            return memo
        kind_name = str(data.get("kind", "")).upper()
        if kind_name not in TypeShape.__members__:
            raise ConfigError(f"unknown type kind '{data.get('kind')}'")
        type_ref = NativeType(kind=TypeShape[kind_name], spelling=str(data.get("spelling") or ""))
        self._types[id(data)] = type_ref
        type_ref.pointee = self.type(data.get("pointee"))
        type_ref.result_type = self.type(data.get("result"))
        type_ref.arg_types = [self.type(arg) for arg in data.get("args") or []]
        type_ref.element_type = self.type(data.get("element"))
        type_ref.array_size = data.get("size")
        type_ref.declaration = self.node(data.get("declaration"))
        canonical = self.type(data.get("canonical"))
        if canonical is not None:
            type_ref.canonical = canonical
        type_ref.named_type = self.type(data.get("named"))
        return type_ref


def load_tree_yaml(text: str) -> SyntaxNode:
    """Builds an in-memory syntax tree from a YAML dump.

    Shared declarations can be expressed with YAML anchors and aliases.
    """
    data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise ConfigError("tree document must be a mapping")
    return _TreeLoader().node(data)
