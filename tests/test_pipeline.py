import os
import re
import sys
import tempfile
import unittest
from pathlib import Path


REPO_ROOT = os.path.dirname(os.path.dirname(__file__))
SRC_ROOT = os.path.join(REPO_ROOT, "src")
sys.path.insert(0, SRC_ROOT)
sys.path.insert(0, os.path.dirname(__file__))


from brogen.model.bro import build_binding_model, build_from_header, build_from_tree_yaml  # noqa: E402
from brogen.model.bro_config import BindingConfig  # noqa: E402
from brogen.model.bro_entities import Array, Pointer  # noqa: E402
from brogen.model.bro_errors import ConfigError, TypeResolutionError  # noqa: E402
from brogen.model.bro_naming import target_type  # noqa: E402
from brogen.model.bro_nodes import NodeKind, TypeShape, load_tree_yaml  # noqa: E402
from tree_builders import HEADER, config, int_t, node, param, ty, unit, void_t  # noqa: E402


TREE = f"""
kind: translation_unit
children:
  - kind: struct_decl
    spelling: DemoPoint
    location: {{file: {HEADER}, line: 3, column: 1, offset: 40}}
    children:
      - {{kind: field_decl, spelling: x, type: &double {{kind: double, spelling: double}}}}
      - {{kind: field_decl, spelling: y, type: *double}}
  - kind: function_decl
    spelling: DemoDistance
    location: {{file: {HEADER}, line: 8, column: 1, offset: 120}}
    type: {{kind: function_proto, spelling: "double (DemoPoint, DemoPoint)"}}
    result_type: *double
    children:
      - {{kind: parm_decl, spelling: a, type: &point {{kind: record, spelling: DemoPoint}}}}
      - {{kind: parm_decl, spelling: b, type: *point}}
"""


class TreeYamlTests(unittest.TestCase):
    def test_anchors_share_types(self) -> None:
        root = load_tree_yaml(TREE)
        struct, function = root.children

        self.assertEqual(struct.kind, NodeKind.STRUCT_DECL)
        self.assertIs(struct.children[0].type, struct.children[1].type)
        self.assertIs(function.result_type, struct.children[0].type)
        self.assertEqual(function.children[0].type.kind, TypeShape.RECORD)
        self.assertIs(function.children[0].lexical_parent, function)
        self.assertEqual(function.location.offset, 120)

    def test_invalid_trees(self) -> None:
        for text in ("- a\n", "kind: no_such_kind\n", "kind: var_decl\ntype: {kind: bogus}\n"):
            with self.subTest(text=text):
                with self.assertRaises(ConfigError):
                    load_tree_yaml(text)


class PipelineTests(unittest.TestCase):
    def test_build_from_tree_yaml(self) -> None:
        result = build_from_tree_yaml(config(classes={"DemoPoint": {"name": "Point"}}), TREE)
        counts = result.counts()
        struct = result.model.structs[0]
        function = result.model.functions[0]

        self.assertEqual((counts["structs"], counts["functions"], counts["hosts"]), (1, 1, 0))
        self.assertEqual(struct.target_name, "Point")
        self.assertEqual(struct.conf, {"name": "Point"})
        self.assertTrue(struct.available)
        self.assertIsNone(function.conf)
        self.assertEqual(
            target_type(result.resolver.resolve(function.parameters[0].type), result.resolver.config),
            "@ByVal Point",
        )
        self.assertEqual(len(result.report), 0)

    def test_unconfigured_structs_are_reported(self) -> None:
        result = build_from_tree_yaml(config(), TREE)

        self.assertEqual(result.report.to_dict(result.model), {"structs": {"DemoPoint": {}}})

    def test_outdated_declarations_are_marked(self) -> None:
        tree = unit(
            node(
                "var_decl",
                "kDemoOld",
                node("unexposed_attr", source_text="availability(ios,introduced=2.0,deprecated=5.0)"),
                type=ty("int", "int"),
                source_text="extern int kDemoOld",
            )
        )

        value = build_binding_model(config(), tree).model.global_values[0]

        self.assertTrue(value.outdated)
        self.assertTrue(value.available)

    def test_dictionary_wrapper_base(self) -> None:
        def value(name: str, native):
            return node("var_decl", name, type=native, source_text=f"extern {native.spelling} {name}")

        def string_type():
            return ty("objc_object_pointer", "NSString *", pointee=ty("objc_interface", "NSString"))

        tree = unit(
            node("objc_class_ref", "NSString"),
            value("kDemoKeyA", string_type()),
            value("kDemoKeyB", string_type()),
            value("kDemoRefA", ty("typedef", "CFStringRef")),
            value("kDemoRefB", ty("typedef", "CFStringRef")),
        )
        conf = config(
            typedefs={"CFStringRef": "CFString"},
            values={
                "kDemoKey.*": {"dictionary": "DemoOptions"},
                "kDemoRef.*": {"dictionary": "DemoRefOptions"},
            },
        )

        groups = build_binding_model(conf, tree).model.global_value_dictionaries

        self.assertEqual((groups["DemoOptions"].java_type, groups["DemoOptions"].extends), ("NSString", "NSDictionaryWrapper"))
        self.assertEqual(
            (groups["DemoRefOptions"].java_type, groups["DemoRefOptions"].extends),
            ("CFString", "CFDictionaryWrapper"),
        )


def _record(name: str):
    return ty("record", f"struct {name}")


def _record_pointer(name: str):
    return ty("pointer", f"struct {name} *", pointee=_record(name))


class DeclarationResolutionTests(unittest.TestCase):
    def test_c_declarations_are_resolved(self) -> None:
        tree = unit(
            node(
                "struct_decl",
                "DemoPoint",
                node("field_decl", "x", type=ty("double", "double")),
                node("field_decl", "grid", type=ty("constant_array", "int [4]", element_type=int_t(), array_size=4)),
            ),
            node(
                "typedef_decl",
                "DemoCallback",
                param("code", int_t()),
                typedef_type=ty("pointer", "void (*)(int)", pointee=ty("function_proto", "void (int)")),
            ),
            node(
                "function_decl",
                "DemoMove",
                param("point", _record_pointer("DemoPoint")),
                type=ty("function_proto", "int (struct DemoPoint *)"),
                result_type=int_t(),
            ),
            node("var_decl", "kDemoOrigin", type=_record("DemoPoint"), source_text="extern struct DemoPoint kDemoOrigin"),
        )

        model = build_binding_model(config(), tree).model
        point = model.structs[0]
        x, grid = point.members
        function = model.functions[0]

        self.assertEqual(x.resolved.name, "double")
        self.assertIsInstance(grid.resolved, Array)
        self.assertEqual((grid.resolved.base_type.name, grid.resolved.dimensions), ("int", [4]))
        self.assertEqual(model.typedefs[0].parameters[0].resolved.name, "int")
        self.assertEqual(function.resolved_return.name, "int")
        self.assertIsInstance(function.parameters[0].resolved, Pointer)
        self.assertIs(function.parameters[0].resolved.pointee, point)
        self.assertIs(model.global_values[0].resolved_type, point)

    def test_unresolvable_c_types_are_fatal(self) -> None:
        trees = {
            "parameter": node(
                "function_decl",
                "DemoRun",
                param("x", _record_pointer("Missing")),
                type=ty("function_proto", "void (struct Missing *)"),
                result_type=void_t(),
            ),
            "member": node("struct_decl", "DemoS", node("field_decl", "m", type=_record("AlsoMissing"))),
            "value": node("var_decl", "kDemoThing", type=_record("Nope"), source_text="extern struct Nope kDemoThing"),
        }
        for label, declaration in trees.items():
            with self.subTest(label=label):
                with self.assertRaises(TypeResolutionError) as ctx:
                    build_binding_model(config(), unit(declaration))
                self.assertIn(f"defined at {HEADER}:", str(ctx.exception))

    def test_anonymous_member_record_matches_by_position(self) -> None:
        inner = node("struct_decl", "", node("field_decl", "a", type=int_t()))
        field_type = ty("record", "struct (unnamed struct at Demo.h:2:5)", declaration=inner)
        outer = node("struct_decl", "DemoOuter", inner, node("field_decl", "inner", type=field_type))

        model = build_binding_model(config(), unit(outer)).model
        outer_struct = next(s for s in model.structs if s.name == "DemoOuter")

        self.assertIs(outer_struct.members[0].resolved, outer_struct.children[0])


class ClangFrontendTests(unittest.TestCase):
    def test_parse_header(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            header = Path(tmp) / "demo.h"
            header.write_text(
                "#define DEMO_LIMIT 16\n"
                "struct DemoPoint { double x; double y; };\n"
                "enum DemoColor { DemoColorRed, DemoColorGreen };\n"
                "int DemoAdd(int a, int b);\n",
                encoding="utf-8",
            )
            conf = BindingConfig.from_dict({"path_match": re.escape(tmp)})

            result = build_from_header(conf, str(header))

        model = result.model
        structs = [s for s in model.structs if conf.is_included(s)]
        self.assertEqual([s.name for s in structs], ["DemoPoint"])
        self.assertEqual([m.name for m in structs[0].members], ["x", "y"])
        self.assertEqual([f.name for f in model.functions], ["DemoAdd"])
        self.assertEqual([p.name for p in model.functions[0].parameters], ["a", "b"])
        self.assertEqual([v.name for v in model.enums[0].values], ["DemoColorRed", "DemoColorGreen"])
        self.assertEqual(model.enums[0].prefix, "DemoColor")
        self.assertEqual([(c.name, c.value) for c in model.constant_values], [("DEMO_LIMIT", "16")])


if __name__ == "__main__":
    unittest.main()
