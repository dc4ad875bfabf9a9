from __future__ import annotations

from typing import Optional

from .bro_entities import Builtin
from .bro_nodes import TypeShape


class BuiltinRegistry:
    """Fixed set of leaf types, indexed by name and by native type shape."""

    def __init__(self) -> None:
        self.builtins = [
            Builtin("boolean", (TypeShape.BOOL,)),
            Builtin("byte", (TypeShape.UCHAR, TypeShape.SCHAR, TypeShape.CHAR_S, TypeShape.CHAR_U)),
            Builtin("short", (TypeShape.USHORT, TypeShape.SHORT)),
            Builtin("char", (TypeShape.WCHAR, TypeShape.CHAR16)),
            Builtin("int", (TypeShape.UINT, TypeShape.INT, TypeShape.CHAR32)),
            Builtin("long", (TypeShape.ULONGLONG, TypeShape.LONGLONG)),
            Builtin("float", (TypeShape.FLOAT,)),
            Builtin("double", (TypeShape.DOUBLE,)),
            Builtin("MachineUInt", (TypeShape.ULONG,), "@MachineSizedUInt long"),
            Builtin("MachineSInt", (TypeShape.LONG,), "@MachineSizedSInt long"),
            Builtin("MachineFloat", (), "@MachineSizedFloat double"),
            Builtin("void", (TypeShape.VOID,)),
            Builtin("Pointer", (), "@Pointer long"),
            Builtin("String", (), "String"),
            Builtin("__builtin_va_list", (), "VaList"),
            Builtin("ObjCBlock", (TypeShape.BLOCK_POINTER,)),
            Builtin("FunctionPtr", (), "FunctionPtr"),
            Builtin("Selector", (TypeShape.OBJC_SEL,), "Selector"),
            Builtin("ObjCObject", (TypeShape.OBJC_ID,), "ObjCObject"),
            Builtin("ObjCClass", (TypeShape.OBJC_CLASS,), "ObjCClass"),
            Builtin("ObjCProtocol", (), "ObjCProtocol"),
            Builtin("BytePtr", (), "BytePtr"),
        ]
        self._by_name = {builtin.name: builtin for builtin in self.builtins}
        self._by_kind: dict[TypeShape, Builtin] = {}
        for builtin in self.builtins:
            for kind in builtin.type_kinds:
                self._by_kind[kind] = builtin

    def by_name(self, name: str) -> Optional[Builtin]:
        return self._by_name.get(name)

    def by_kind(self, kind: TypeShape) -> Optional[Builtin]:
        return self._by_kind.get(kind)
