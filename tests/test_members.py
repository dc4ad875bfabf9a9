import os
import sys
import unittest

import yaml


REPO_ROOT = os.path.dirname(os.path.dirname(__file__))
SRC_ROOT = os.path.join(REPO_ROOT, "src")
sys.path.insert(0, SRC_ROOT)
sys.path.insert(0, os.path.dirname(__file__))


from brogen.model.bro_attributes import parse_attribute  # noqa: E402
from brogen.model.bro_builder import ModelBuilder  # noqa: E402
from brogen.model.bro_entities import BindingModel, Enum, EnumValue, Struct, StructMember, Typedef  # noqa: E402
from brogen.model.bro_members import MemberComposer  # noqa: E402
from brogen.model.bro_report import PREFIX_INVALID, MissingConfigReport  # noqa: E402
from brogen.model.bro_resolve import TypeResolver  # noqa: E402
from tree_builders import config, int_t, method, node, param, ty, unit, void_t  # noqa: E402


def instancetype():
    return ty("typedef", "instancetype")


def widget_tree(*extra):
    return unit(
        node("objc_class_ref", "NSString"),
        node("objc_interface_decl", "NSObject"),
        node("objc_protocol_decl", "DemoDrawing", method("redraw", void_t())),
        node(
            "objc_interface_decl",
            "NSWidget",
            node("objc_super_class_ref", "NSObject"),
            node("objc_protocol_ref", "DemoDrawing"),
            method("initWithFrame:", instancetype(), param("frame", ty("double", "CGFloat"))),
            method("init", instancetype()),
            method("drawInRect:withColor:", void_t(), param("rect", ty("double", "double")), param("color", int_t())),
            method("legacyDraw", void_t(), node("unexposed_attr", source_text="unavailable")),
            method("sharedWidget", instancetype(), static=True),
            node(
                "objc_property_decl",
                "enabled",
                type=ty("bool", "BOOL"),
                source_text="@property (nonatomic, getter=isEnabled) BOOL enabled",
            ),
            node(
                "objc_property_decl",
                "title",
                type=ty("objc_object_pointer", "NSString *", pointee=ty("objc_interface", "NSString")),
                source_text="@property (readonly, copy) NSString *title",
            ),
        ),
        node(
            "objc_category_decl",
            "Extras",
            node("objc_class_ref", "NSWidget"),
            method("shake", void_t()),
            method("redraw", void_t()),
        ),
        *extra,
    )


def compose(tree, **conf):
    conf.setdefault("classes", {"NSObject": {}, "NSWidget": {}})
    conf.setdefault("protocols", {"DemoDrawing": {}})
    binding_config = config(**conf)
    builder = ModelBuilder(binding_config)
    model = builder.process(tree)
    resolver = TypeResolver(model, binding_config, diagnostics=builder.diagnostics)
    composer = MemberComposer(model, binding_config, resolver)
    return composer, composer.compose()


class MemberComposerTests(unittest.TestCase):
    def test_class_members(self) -> None:
        _, composition = compose(widget_tree())
        host = composition.hosts["NSWidget"]
        methods = {m.selector: m for m in host.methods}

        self.assertEqual(
            list(methods),
            ["initWithFrame:", "drawInRect:withColor:", "sharedWidget", "shake", "redraw"],
        )
        self.assertEqual([p.name for p in host.protocols], ["DemoDrawing"])

    def test_init_becomes_protected_constructor(self) -> None:
        _, composition = compose(widget_tree())
        host = composition.hosts["NSWidget"]

        self.assertEqual(len(host.constructors), 1)
        ctor = host.constructors[0]
        self.assertEqual(ctor.name, "initWithFrame")
        self.assertEqual(ctor.visibility, "protected")
        self.assertEqual(ctor.return_type, "@Pointer long")
        self.assertEqual([(p.name, p.type_name) for p in ctor.parameters], [("frame", "double")])

    def test_static_instancetype_returns_owner(self) -> None:
        _, composition = compose(widget_tree())
        shared = next(m for m in composition.hosts["NSWidget"].methods if m.selector == "sharedWidget")

        self.assertTrue(shared.is_static)
        self.assertEqual(shared.return_type, "NSWidget")
        self.assertEqual(shared.visibility, "public")

    def test_properties(self) -> None:
        _, composition = compose(widget_tree())
        props = {p.name: p for p in composition.hosts["NSWidget"].properties}

        self.assertEqual((props["enabled"].getter, props["enabled"].setter), ("isEnabled", "setEnabled"))
        self.assertEqual(props["enabled"].type_name, "boolean")
        self.assertEqual((props["title"].getter, props["title"].setter), ("getTitle", None))
        self.assertEqual(props["title"].type_name, "NSString")

    def test_configured_names(self) -> None:
        _, composition = compose(
            widget_tree(),
            classes={
                "NSObject": {},
                "NSWidget": {
                    "name": "Widget",
                    "methods": {"-drawInRect:withColor:": {"name": "draw"}, "-shake": {"exclude": True}},
                    "properties": {"title": {"name": "caption"}},
                },
            },
        )
        host = composition.hosts["Widget"]
        names = [m.name for m in host.methods]

        self.assertIn("draw", names)
        self.assertNotIn("shake", names)
        self.assertEqual([p.getter for p in host.properties], ["isEnabled", "getCaption"])

    def test_protocol_host(self) -> None:
        _, composition = compose(widget_tree())
        host = composition.hosts["DemoDrawing"]

        self.assertEqual([(m.name, m.visibility) for m in host.methods], [("redraw", "")])

    def test_multi_part_selectors_are_reported(self) -> None:
        composer, _ = compose(widget_tree())

        data = composer.report.to_dict()

        self.assertEqual(
            data["classes"],
            {"NSWidget": {"methods": {"-drawInRect:withColor:": {"name": "drawInRect$withColor$"}}}},
        )

    def test_orphan_category_is_skipped(self) -> None:
        composer, composition = compose(
            widget_tree(node("objc_category_decl", "Orphan", node("objc_class_ref", "NSUnknown"), method("wave", void_t())))
        )

        self.assertIn("Skipping category Orphan for NSUnknown", " | ".join(composer.diagnostics.messages()))
        self.assertNotIn("Orphan", composition.hosts)

    def test_category_configured_by_owner_gets_own_host(self) -> None:
        _, composition = compose(
            widget_tree(node("objc_category_decl", "Orphan", node("objc_class_ref", "NSUnknown"), method("wave", void_t()))),
            categories={"NSUnknown": {"name": "UnknownExtensions"}},
        )
        host = composition.hosts["UnknownExtensions"]

        self.assertEqual([(m.name, m.is_static) for m in host.methods], [("wave", True)])

    def test_inherited_protocols_are_not_repeated(self) -> None:
        fancy = node(
            "objc_interface_decl",
            "NSFancyWidget",
            node("objc_super_class_ref", "NSWidget"),
            node("objc_protocol_ref", "DemoDrawing"),
            node("objc_protocol_ref", "DemoPrinting"),
        )
        printing = node("objc_protocol_decl", "DemoPrinting", method("printAll", void_t()))
        _, composition = compose(
            widget_tree(printing, fancy),
            classes={"NSObject": {}, "NSWidget": {}, "NSFancyWidget": {}},
            protocols={"DemoDrawing": {}, "DemoPrinting": {}},
        )
        host = composition.hosts["NSFancyWidget"]

        self.assertEqual([p.name for p in host.protocols], ["DemoPrinting"])
        self.assertEqual([m.name for m in host.methods], ["printAll"])

    def test_category_protocols_leave_the_model_untouched(self) -> None:
        printing = node("objc_protocol_decl", "DemoPrinting", method("printAll", void_t()))
        printable = node(
            "objc_category_decl",
            "Printable",
            node("objc_class_ref", "NSWidget"),
            node("objc_protocol_ref", "DemoPrinting"),
        )
        composer, first = compose(
            widget_tree(printing, printable),
            protocols={"DemoDrawing": {}, "DemoPrinting": {}},
        )
        second = composer.compose()
        widget = next(c for c in composer.model.objc_classes if c.name == "NSWidget")

        self.assertEqual(widget.protocols, ["DemoDrawing"])
        self.assertEqual(first.category_protocols, {"NSWidget": ["DemoPrinting"]})
        for composition in (first, second):
            host = composition.hosts["NSWidget"]
            self.assertEqual([p.name for p in host.protocols], ["DemoDrawing", "DemoPrinting"])

    def test_unconfigured_enum_is_demoted_to_constants(self) -> None:
        level = node(
            "enum_decl",
            "DemoLevel",
            node("enum_constant_decl", "DemoLevelLow", enum_value=0, type=int_t()),
            node("enum_constant_decl", "DemoLevelHigh", enum_value=1, type=int_t()),
            enum_type=int_t(),
        )
        composer, composition = compose(
            widget_tree(level),
            constants={"DemoLevel.*": {"class": "DemoConstants"}},
        )

        self.assertEqual(composition.enums, [])
        self.assertEqual(
            [(c.name, c.value, c.type) for c, _ in composition.constants["DemoConstants"]],
            [("DemoLevelLow", "0", "int"), ("DemoLevelHigh", "1", "int")],
        )
        self.assertTrue(
            any(
                m.startswith("Turning the enum DemoLevel with first value DemoLevelLow into constants")
                for m in composer.diagnostics.messages()
            )
        )
        self.assertEqual(composer.report.to_dict()["enums"], {"DemoLevel": {}})

    def test_configured_enum_is_kept(self) -> None:
        level = node(
            "enum_decl",
            "DemoLevel",
            node("enum_constant_decl", "DemoLevelLow", enum_value=0, type=int_t()),
            node("enum_constant_decl", "DemoLevelHigh", enum_value=1, type=int_t()),
            enum_type=int_t(),
        )
        _, composition = compose(widget_tree(level), enums={"DemoLevel": {}})

        self.assertEqual([e.name for e in composition.enums], ["DemoLevel"])
        self.assertEqual(composition.constants, {})


class MissingConfigReportTests(unittest.TestCase):
    def _enum(self, name: str, *values: str) -> Enum:
        enum = Enum(name=name)
        enum.values = [EnumValue(name=value, enum=enum) for value in values]
        return enum

    def test_enum_entries(self) -> None:
        report = MissingConfigReport()
        report.add(self._enum("", "DemoModeA", "DemoModeB"))
        report.add(self._enum("", "DemoOnlyValue"))
        report.add(self._enum("DemoSolo", "DemoSoloOne"))

        self.assertEqual(
            report.to_dict()["enums"],
            {
                "UNNAMED": {"prefix": "DemoMode", "first": "DemoModeA"},
                "UNNAMED_2": {"prefix": "DemoOnlyValue", "first": "DemoOnlyValue", "warning": PREFIX_INVALID},
                "DemoSolo": {},
            },
        )

    def test_structs_and_typedefs(self) -> None:
        report = MissingConfigReport()
        rect = Struct(
            name="DemoRect",
            members=[StructMember("x", int_t())],
            attributes=[parse_attribute("availability(ios,introduced=10.0)")],
        )
        report.add(rect)
        report.add(Typedef(name="DemoPair", struct=Struct(members=[StructMember("a", int_t())])))
        report.add(Typedef(name="DemoOpaque", struct=Struct(name="DemoOpaqueRef")))

        data = report.to_dict()

        self.assertEqual(data["structs"], {"DemoRect": {"since": "10.0"}})
        self.assertEqual(data["typedefs"], {"DemoPair": {}})

    def test_opaque_typedef_struct_is_looked_up_in_model(self) -> None:
        model = BindingModel(structs=[Struct(name="DemoOpaqueRef", members=[StructMember("a", int_t())])])
        report = MissingConfigReport()
        report.add(Typedef(name="DemoOpaque", struct=Struct(name="DemoOpaqueRef")))

        self.assertEqual(report.to_dict(model)["typedefs"], {"DemoOpaque": {}})

    def test_render_is_yaml(self) -> None:
        report = MissingConfigReport()
        report.add(self._enum("", "DemoModeA", "DemoModeB"))

        text = report.render()

        self.assertTrue(text.startswith("# potentially missing configuration entries\n"))
        self.assertEqual(yaml.safe_load(text), report.to_dict())
        self.assertEqual(MissingConfigReport().render(), "")

    def test_entities_are_added_once(self) -> None:
        report = MissingConfigReport()
        owner = Struct(name="DemoRect")
        report.add(owner)
        report.add(owner)

        self.assertEqual(len(report), 1)
        self.assertIn(owner, report)


if __name__ == "__main__":
    unittest.main()
