import os
import sys
import unittest


REPO_ROOT = os.path.dirname(os.path.dirname(__file__))
SRC_ROOT = os.path.join(REPO_ROOT, "src")
sys.path.insert(0, SRC_ROOT)
sys.path.insert(0, os.path.dirname(__file__))


from brogen.model.bro_entities import (  # noqa: E402
    Array,
    BindingModel,
    Block,
    Builtin,
    CallbackParameter,
    Enum,
    EnumValue,
    GenericInstance,
    ObjCClass,
    ObjCId,
    ObjCProtocol,
    Pointer,
    Struct,
    StructMember,
    Typedef,
)
from brogen.model.bro_errors import TypeResolutionError  # noqa: E402
from brogen.model.bro_naming import target_name, target_type  # noqa: E402
from brogen.model.bro_nodes import SyntaxNode, NodeKind  # noqa: E402
from brogen.model.bro_resolve import TypeResolver  # noqa: E402
from tree_builders import config, int_t, ty, void_t  # noqa: E402


class TypeResolverTests(unittest.TestCase):
    def setUp(self) -> None:
        self.model = BindingModel()
        self.config = config(typedefs={"CFTimeInterval": "double"})
        self.resolver = TypeResolver(self.model, self.config)

    def _name(self, native, allow_arrays: bool = False) -> str:
        return target_type(self.resolver.resolve(native, allow_arrays), self.config)

    def test_builtins_by_kind(self) -> None:
        self.assertEqual(self._name(int_t()), "int")
        self.assertEqual(self._name(ty("ulong", "unsigned long")), "@MachineSizedUInt long")
        self.assertEqual(self._name(ty("bool", "BOOL")), "boolean")
        self.assertEqual(self._name(None), "void")

    def test_resolution_is_cached_by_normalized_spelling(self) -> None:
        first = self.resolver.resolve(ty("pointer", "const char * _Nonnull", pointee=ty("char_s", "const char")))
        second = self.resolver.resolve(ty("pointer", "char *", pointee=ty("char_s", "char")))

        self.assertIs(first, second)
        self.assertIn("char *", self.resolver.cache)
        self.assertEqual(target_name(first), "BytePtr")

    def test_configured_typedef_alias(self) -> None:
        self.assertEqual(self._name(ty("typedef", "CFTimeInterval")), "double")

    def test_model_typedef_resolves_through_underlying_type(self) -> None:
        self.model.typedefs.append(Typedef(name="NSInteger", typedef_type=ty("long", "long")))

        self.assertEqual(self._name(ty("typedef", "NSInteger")), "@MachineSizedSInt long")

    def test_callback_typedef_becomes_function_pointer(self) -> None:
        self.model.typedefs.append(
            Typedef(
                name="DemoHandler",
                typedef_type=ty("pointer", "void (*)(int)"),
                parameters=[CallbackParameter("code", int_t())],
            )
        )

        self.assertEqual(self._name(ty("typedef", "DemoHandler")), "FunctionPtr")

    def test_pointer_to_function(self) -> None:
        native = ty("pointer", "void (*)(int)", pointee=ty("function_proto", "void (int)"))

        self.assertEqual(self._name(native), "FunctionPtr")

    def test_pointer_to_enum_uses_integer_type(self) -> None:
        enum = Enum(name="DemoColor", enum_type=ty("uint", "unsigned int"))
        enum.values = [EnumValue(name="DemoColorRed", enum=enum)]
        self.model.enums.append(enum)

        native = ty("pointer", "enum DemoColor *", pointee=ty("enum", "enum DemoColor"))

        self.assertEqual(self._name(native), "IntPtr")

    def test_pointer_to_ns_enum_typedef_uses_integer_type(self) -> None:
        enum = Enum(name="DemoStyle", enum_type=ty("long", "long"))
        enum.values = [EnumValue(name="DemoStylePlain", enum=enum)]
        self.model.enums.append(enum)
        self.model.typedefs.append(Typedef(name="DemoStyle", typedef_type=ty("enum", "enum DemoStyle"), enum=enum))

        pointee = ty("typedef", "DemoStyle", canonical=ty("enum", "enum DemoStyle"))
        entity = self.resolver.resolve(ty("pointer", "DemoStyle *", pointee=pointee))

        self.assertIsInstance(entity, Pointer)
        self.assertIs(entity.pointee, self.resolver.builtin("MachineSInt"))

    def test_pointer_to_function_typedef(self) -> None:
        decl = SyntaxNode(NodeKind.TYPEDEF_DECL, "DemoWork", typedef_type=ty("function_proto", "void (int)"))
        native = ty("pointer", "DemoWork *", pointee=ty("typedef", "DemoWork", declaration=decl))

        self.assertIs(self.resolver.resolve(native), self.resolver.builtin("FunctionPtr"))

    def test_structdef_override(self) -> None:
        resolver = TypeResolver(BindingModel(), config(structdefs={"__DemoRecord": "DemoRecord"}))

        entity = resolver.resolve(ty("record", "struct __DemoRecord"))

        self.assertIsInstance(entity, Typedef)
        self.assertEqual(entity.name, "DemoRecord")
        self.assertTrue(entity.is_structdef)
        self.assertTrue(entity.is_struct)

    def test_class_with_protocols_is_objc_class(self) -> None:
        native = ty("objc_object_pointer", "Class<NSCopying>", pointee=ty("objc_object", "Class<NSCopying>"))

        self.assertIs(self.resolver.resolve(native), self.resolver.builtin("ObjCClass"))

    def test_unexposed_type_fallbacks(self) -> None:
        box = Struct(name="DemoBox", members=[StructMember("x", int_t())])
        both = Struct(name="DemoBoth", members=[StructMember("x", int_t())])
        mode = Enum(name="DemoMode", enum_type=int_t())
        self.model.structs.extend([box, both])
        self.model.enums.extend([mode, Enum(name="DemoBoth", enum_type=int_t())])

        self.assertIs(self.resolver.resolve(ty("unexposed", "DemoBox")), box)
        self.assertIs(self.resolver.resolve(ty("unexposed", "DemoMode")), mode)
        self.assertIs(self.resolver.resolve(ty("unexposed", "DemoBoth")), both)
        self.assertIs(self.resolver.resolve(ty("unexposed", "void (int)")), self.resolver.builtin("FunctionPtr"))
        with self.assertRaises(TypeResolutionError):
            self.resolver.resolve(ty("unexposed", "DemoUnknown"))

    def test_struct_values_are_by_val(self) -> None:
        self.model.structs.append(Struct(name="CGPoint", members=[StructMember("x", ty("double", "double"))]))

        self.assertEqual(self._name(ty("record", "struct CGPoint")), "@ByVal CGPoint")
        elaborated = ty("elaborated", "struct CGPoint", named_type=ty("record", "struct CGPoint"))
        self.assertEqual(self._name(elaborated), "@ByVal CGPoint")

    def test_constant_arrays(self) -> None:
        native = ty("constant_array", "float [4]", element_type=ty("float", "float"), array_size=4)

        as_array = self.resolver.resolve(native, allow_arrays=True)
        as_pointer = self.resolver.resolve(native)

        self.assertIsInstance(as_array, Array)
        self.assertEqual(as_array.dimensions, [4])
        self.assertIsInstance(as_pointer, Pointer)
        self.assertEqual(target_type(as_array), "@Array({4}) FloatBuffer")
        self.assertEqual(target_type(as_pointer), "FloatPtr")

    def test_incomplete_array_rewritten_as_pointer(self) -> None:
        self.assertEqual(self._name(ty("incomplete_array", "char []")), "BytePtr")

    def test_blocks(self) -> None:
        no_args = ty("block_pointer", "void (^)(void)", pointee=ty("function_proto", "void (void)", result_type=void_t()))
        one_flag = ty(
            "block_pointer",
            "void (^)(BOOL)",
            pointee=ty("function_proto", "void (BOOL)", result_type=void_t(), arg_types=[ty("bool", "BOOL")]),
        )

        self.assertIsInstance(self.resolver.resolve(no_args), Block)
        self.assertEqual(self._name(no_args), "@Block Runnable")
        self.assertEqual(self._name(one_flag), "@Block VoidBooleanBlock")

    def test_unknown_block_falls_back_to_objc_block(self) -> None:
        entity = self.resolver.resolve(ty("block_pointer", "void (^)(Mystery)"))

        self.assertIsInstance(entity, Builtin)
        self.assertEqual(entity.name, "ObjCBlock")
        self.assertTrue(self.resolver.diagnostics.messages()[0].startswith("Unknown block type void (^)(Mystery)"))

    def test_unresolvable_type_raises(self) -> None:
        with self.assertRaises(TypeResolutionError) as ctx:
            self.resolver.resolve(ty("record", "struct Missing"))

        self.assertIn("Failed to resolve type 'struct Missing' with kind RECORD", str(ctx.exception))
        self.assertIsInstance(ctx.exception, ValueError)

    def test_unknown_elaborated_type_warns_and_raises(self) -> None:
        with self.assertRaises(TypeResolutionError):
            self.resolver.resolve(ty("elaborated", "struct Nowhere"))

        self.assertIn("Unknown elaborated type struct Nowhere", self.resolver.diagnostics.messages())

    def test_instancetype_follows_owner_and_is_not_cached(self) -> None:
        widget = ObjCClass(name="NSWidget")
        native = ty("typedef", "instancetype")

        self.assertIs(self.resolver.resolve(native, owner=widget), widget)
        self.assertEqual(self.resolver.resolve(native).name, "ObjCObject")
        self.assertNotIn("instancetype", self.resolver.cache)

    def test_objc_object_pointers(self) -> None:
        self.model.objc_classes.extend([ObjCClass(name="NSString"), ObjCClass(name="NSArray")])
        self.model.objc_protocols.extend([ObjCProtocol(name="NSCopying"), ObjCProtocol(name="NSCoding")])

        string = ty("objc_object_pointer", "NSString *", pointee=ty("objc_interface", "NSString"))
        generic = ty("objc_object_pointer", "NSArray<NSString *> *", pointee=ty("objc_object", "NSArray<NSString *>"))
        placeholder = ty(
            "objc_object_pointer", "NSArray<ObjectType> *", pointee=ty("objc_object", "NSArray<ObjectType>")
        )
        one_protocol = ty("objc_object_pointer", "id<NSCopying>", pointee=ty("objc_object", "id<NSCopying>"))
        two_protocols = ty(
            "objc_object_pointer", "id<NSCopying, NSCoding>", pointee=ty("objc_object", "id<NSCopying, NSCoding>")
        )

        self.assertEqual(self._name(string), "NSString")
        self.assertIsInstance(self.resolver.resolve(generic), GenericInstance)
        self.assertEqual(self._name(generic), "NSArray<NSString>")
        self.assertEqual(self._name(placeholder), "NSArray")
        self.assertIs(self.resolver.resolve(one_protocol), self.model.objc_protocols[0])
        self.assertIsInstance(self.resolver.resolve(two_protocols), ObjCId)
        self.assertEqual(self._name(two_protocols), "NSCopying & NSCoding")

    def test_type_parameters_are_scoped_by_declaring_class(self) -> None:
        self.model.objc_classes.extend([ObjCClass(name="NSString"), ObjCClass(name="NSNumber")])

        def type_param(owner: str, bound: str) -> SyntaxNode:
            decl = SyntaxNode(
                NodeKind.TEMPLATE_TYPE_PARAMETER,
                "ObjectType",
                typedef_type=ty("objc_object_pointer", f"{bound} *", pointee=ty("objc_interface", bound)),
            )
            SyntaxNode(NodeKind.OBJC_INTERFACE_DECL, owner, children=[decl])
            return decl

        in_box = ty("typedef", "ObjectType", declaration=type_param("DemoBox", "NSString"))
        in_crate = ty("typedef", "ObjectType", declaration=type_param("DemoCrate", "NSNumber"))

        self.assertEqual(self._name(in_box), "NSString")
        self.assertEqual(self._name(in_crate), "NSNumber")
        self.assertIn("DemoBox.ObjectType", self.resolver.cache)
        self.assertIn("DemoCrate.ObjectType", self.resolver.cache)

    def test_configured_enum_type(self) -> None:
        enum = Enum(name="DemoSize", enum_type=int_t(), enum_conf={"type": "long"})

        self.assertEqual(self.resolver.enum_underlying_type(enum).name, "long")


if __name__ == "__main__":
    unittest.main()
