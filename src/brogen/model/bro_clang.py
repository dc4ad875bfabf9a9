from __future__ import annotations

import re
from functools import cached_property
from typing import Iterable, Iterator, Optional

import clang.cindex as ci

from .bro_diagnostics import Diagnostics
from .bro_errors import BrogenError
from .bro_nodes import NodeKind, SourceLocation, TypeShape

_TYPE_KINDS = {
    "INVALID": TypeShape.INVALID,
    "UNEXPOSED": TypeShape.UNEXPOSED,
    "VOID": TypeShape.VOID,
    "BOOL": TypeShape.BOOL,
    "CHAR_U": TypeShape.CHAR_U,
    "UCHAR": TypeShape.UCHAR,
    "CHAR16": TypeShape.CHAR16,
    "CHAR32": TypeShape.CHAR32,
    "USHORT": TypeShape.USHORT,
    "UINT": TypeShape.UINT,
    "ULONG": TypeShape.ULONG,
    "ULONGLONG": TypeShape.ULONGLONG,
    "UINT128": TypeShape.UINT128,
    "CHAR_S": TypeShape.CHAR_S,
    "SCHAR": TypeShape.SCHAR,
    "WCHAR": TypeShape.WCHAR,
    "SHORT": TypeShape.SHORT,
    "INT": TypeShape.INT,
    "LONG": TypeShape.LONG,
    "LONGLONG": TypeShape.LONGLONG,
    "INT128": TypeShape.INT128,
    "FLOAT": TypeShape.FLOAT,
    "DOUBLE": TypeShape.DOUBLE,
    "LONGDOUBLE": TypeShape.LONGDOUBLE,
    "OBJCID": TypeShape.OBJC_ID,
    "OBJCCLASS": TypeShape.OBJC_CLASS,
    "OBJCSEL": TypeShape.OBJC_SEL,
    "POINTER": TypeShape.POINTER,
    "BLOCKPOINTER": TypeShape.BLOCK_POINTER,
    "RECORD": TypeShape.RECORD,
    "ENUM": TypeShape.ENUM,
    "TYPEDEF": TypeShape.TYPEDEF,
    "OBJCINTERFACE": TypeShape.OBJC_INTERFACE,
    "OBJCOBJECTPOINTER": TypeShape.OBJC_OBJECT_POINTER,
    "OBJCOBJECT": TypeShape.OBJC_OBJECT,
    "OBJCTYPEPARAM": TypeShape.OBJC_TYPE_PARAM,
    "FUNCTIONNOPROTO": TypeShape.FUNCTION_NO_PROTO,
    "FUNCTIONPROTO": TypeShape.FUNCTION_PROTO,
    "CONSTANTARRAY": TypeShape.CONSTANT_ARRAY,
    "INCOMPLETEARRAY": TypeShape.INCOMPLETE_ARRAY,
    "VECTOR": TypeShape.VECTOR,
    "ELABORATED": TypeShape.ELABORATED,
    "ATTRIBUTED": TypeShape.ATTRIBUTED,
}

_POINTER_SHAPES = {TypeShape.POINTER, TypeShape.BLOCK_POINTER, TypeShape.OBJC_OBJECT_POINTER}
_FUNCTION_SHAPES = {TypeShape.FUNCTION_PROTO, TypeShape.FUNCTION_NO_PROTO}
_CALLABLE_KINDS = {
    NodeKind.FUNCTION_DECL,
    NodeKind.OBJC_INSTANCE_METHOD_DECL,
    NodeKind.OBJC_CLASS_METHOD_DECL,
}
_ANONYMOUS_RE = re.compile(r"\((anonymous|unnamed)\b")


class _SourceCache:
    def __init__(self) -> None:
        self._files: dict[str, bytes] = {}

    def text(self, extent) -> str:
        start, end = extent.start, extent.end
        if start.file is None or end.file is None or start.file.name != end.file.name:
            return "?"
        name = start.file.name
        data = self._files.get(name)
        if data is None:
            try:
                with open(name, "rb") as handle:
                    data = handle.read()
            except OSError:
                return "?"
            self._files[name] = data
        return data[start.offset:end.offset].decode("utf-8", errors="replace")


def _node_kind(cursor) -> NodeKind:
    try:
        name = cursor.kind.name
    except ValueError:
        # Cursor kinds newer than the installed bindings.
        return NodeKind.OTHER
    return NodeKind.__members__.get(name, NodeKind.OTHER)


class ClangType:
    """Lazy view of a `clang.cindex.Type` with the resolver's accessors."""

    def __init__(self, native, sources: _SourceCache) -> None:
        self._native = native
        self._sources = sources

    @cached_property
    def kind(self) -> TypeShape:
        return _TYPE_KINDS.get(self._native.kind.name, TypeShape.INVALID)

    @cached_property
    def spelling(self) -> str:
        return self._native.spelling

    def _wrap(self, native) -> Optional["ClangType"]:
        if native is None or native.kind == ci.TypeKind.INVALID:
            return None
        return ClangType(native, self._sources)

    @cached_property
    def pointee(self) -> Optional["ClangType"]:
        if self.kind not in _POINTER_SHAPES:
            return None
        return self._wrap(self._native.get_pointee())

    @cached_property
    def result_type(self) -> Optional["ClangType"]:
        if self.kind not in _FUNCTION_SHAPES:
            return None
        return self._wrap(self._native.get_result())

    @cached_property
    def arg_types(self) -> list["ClangType"]:
        if self.kind != TypeShape.FUNCTION_PROTO:
            return []
        return [ClangType(arg, self._sources) for arg in self._native.argument_types()]

    @cached_property
    def element_type(self) -> Optional["ClangType"]:
        if self.kind not in (TypeShape.CONSTANT_ARRAY, TypeShape.INCOMPLETE_ARRAY, TypeShape.VECTOR):
            return None
        return self._wrap(self._native.element_type)

    @cached_property
    def array_size(self) -> Optional[int]:
        if self.kind != TypeShape.CONSTANT_ARRAY:
            return None
        return self._native.element_count

    @cached_property
    def declaration(self) -> Optional["ClangNode"]:
        cursor = self._native.get_declaration()
        if cursor is None or cursor.kind == ci.CursorKind.NO_DECL_FOUND:
            return None
        return ClangNode(cursor, self._sources)

    @cached_property
    def canonical(self) -> "ClangType":
        canonical = self._native.get_canonical()
        if canonical == self._native:
            return self
        return ClangType(canonical, self._sources)

    @cached_property
    def named_type(self) -> Optional["ClangType"]:
        if self.kind == TypeShape.ELABORATED:
            return self._wrap(self._native.get_named_type())
        if self.kind == TypeShape.ATTRIBUTED:
            return self.canonical if self.canonical is not self else None
        return None


class ClangNode:
    """Lazy view of a `clang.cindex.Cursor` shaped like `SyntaxNode`."""

    def __init__(self, cursor, sources: _SourceCache) -> None:
        self._cursor = cursor
        self._sources = sources

    def _type(self, native) -> Optional[ClangType]:
        if native is None or native.kind == ci.TypeKind.INVALID:
            return None
        return ClangType(native, self._sources)

    @cached_property
    def kind(self) -> NodeKind:
        return _node_kind(self._cursor)

    @cached_property
    def spelling(self) -> str:
        spelling = self._cursor.spelling or ""
        if self.kind in (NodeKind.STRUCT_DECL, NodeKind.UNION_DECL, NodeKind.ENUM_DECL) and _ANONYMOUS_RE.search(spelling):
            return ""
        return spelling

    @cached_property
    def location(self) -> SourceLocation:
        loc = self._cursor.location
        return SourceLocation(
            file=loc.file.name if loc.file is not None else None,
            line=loc.line,
            column=loc.column,
            offset=loc.offset,
        )

    @cached_property
    def source_text(self) -> str:
        return self._sources.text(self._cursor.extent)

    @cached_property
    def type(self) -> Optional[ClangType]:
        return self._type(self._cursor.type)

    @cached_property
    def typedef_type(self) -> Optional[ClangType]:
        if self.kind not in (NodeKind.TYPEDEF_DECL, NodeKind.TEMPLATE_TYPE_PARAMETER):
            return None
        return self._type(self._cursor.underlying_typedef_type)

    @cached_property
    def enum_type(self) -> Optional[ClangType]:
        if self.kind != NodeKind.ENUM_DECL:
            return None
        return self._type(self._cursor.enum_type)

    @cached_property
    def enum_value(self) -> Optional[int]:
        if self.kind != NodeKind.ENUM_CONSTANT_DECL:
            return None
        return self._cursor.enum_value

    @cached_property
    def result_type(self) -> Optional[ClangType]:
        if self.kind not in _CALLABLE_KINDS:
            return None
        return self._type(self._cursor.result_type)

    @cached_property
    def is_variadic(self) -> bool:
        if self.kind == NodeKind.FUNCTION_DECL:
            native = self._cursor.type
            return native.kind == ci.TypeKind.FUNCTIONPROTO and native.is_function_variadic()
        if self.kind in _CALLABLE_KINDS:
            return re.search(r",\s*\.\.\.", self.source_text) is not None
        return False

    @cached_property
    def lexical_parent(self) -> Optional["ClangNode"]:
        parent = self._cursor.lexical_parent
        return ClangNode(parent, self._sources) if parent is not None else None

    def iter_children(self) -> Iterator["ClangNode"]:
        for child in self._cursor.get_children():
            yield ClangNode(child, self._sources)


def parse_header(
    path: str,
    clang_args: Iterable[str] = (),
    diagnostics: Optional[Diagnostics] = None,
) -> ClangNode:
    """Parses a header with libclang, keeping macro definitions and expansions."""
    try:
        tu = ci.Index.create().parse(
            path,
            args=list(clang_args),
            options=ci.TranslationUnit.PARSE_DETAILED_PROCESSING_RECORD,
        )
    except ci.TranslationUnitLoadError as exc:
        raise BrogenError(f"failed to parse {path}: {exc}") from exc
    fatal = []
    for diag in tu.diagnostics:
        if diag.severity >= ci.Diagnostic.Fatal:
            fatal.append(str(diag))
        elif diag.severity >= ci.Diagnostic.Error and diagnostics is not None:
            diagnostics.warn(f"clang: {diag.spelling}")
    if fatal:
        raise BrogenError("fatal parse errors:\n" + "\n".join(fatal))
    return ClangNode(tu.cursor, _SourceCache())
