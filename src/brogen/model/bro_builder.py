from __future__ import annotations

from typing import Optional

from .bro_config import BindingConfig
from .bro_decls import DeclReader
from .bro_diagnostics import Diagnostics, channel_logger
from .bro_entities import BindingModel
from .bro_nodes import NodeKind
from .bro_passes import apply_passes
from .bro_utils import location_to_id

K = NodeKind


class ModelBuilder:
    """Walks a translation unit once and populates a BindingModel.

    After the walk the whole-model passes run in order. Any of them can be
    turned off by name through `disabled_passes`.
    """

    def __init__(
        self,
        config: BindingConfig,
        diagnostics: Optional[Diagnostics] = None,
        disabled_passes: Optional[set[str]] = None,
        verbose: Optional[set[str]] = None,
    ) -> None:
        self.config = config
        self.diagnostics = diagnostics or Diagnostics()
        self.disabled_passes = set(disabled_passes or ())
        self.verbose = set(verbose or ())
        self.model = BindingModel()
        self.reader = DeclReader(config, self.diagnostics, self.model)
        self._log = channel_logger("walk", self.verbose)

    def process(self, root) -> BindingModel:
        self._walk(root)
        if self._log is not None:
            model = self.model
            self._log(
                f"walked {len(model.structs)} structs, {len(model.enums)} enums, "
                f"{len(model.typedefs)} typedefs, {len(model.objc_classes)} classes, "
                f"{len(model.objc_protocols)} protocols, {len(model.functions)} functions"
            )
        apply_passes(self.model, self.config, self.diagnostics, self.disabled_passes, self.verbose)
        return self.model

    def _walk(self, node) -> None:
        model = self.model
        reader = self.reader
        for child in node.iter_children():
            kind = child.kind
            if kind == K.TYPEDEF_DECL:
                model.typedefs.append(reader.read_typedef(child))
            elif kind in (K.STRUCT_DECL, K.UNION_DECL):
                # Anonymous top-level records are reached through their typedef.
                if child.spelling:
                    model.structs.append(reader.read_struct(child, None, kind == K.UNION_DECL))
            elif kind == K.ENUM_DECL:
                enum = reader.read_enum(child)
                if enum.values:
                    model.enums.append(enum)
            elif kind == K.MACRO_DEFINITION:
                constant = reader.read_macro_constant(child)
                if constant is not None:
                    model.constant_values.append(constant)
            elif kind == K.MACRO_INSTANTIATION:
                self._record_marker(child)
            elif kind == K.FUNCTION_DECL:
                model.functions.append(reader.read_function(child))
            elif kind == K.VAR_DECL:
                self._read_variable(child)
            elif kind in (K.OBJC_INTERFACE_DECL, K.OBJC_CLASS_REF):
                model.objc_classes.append(reader.read_class(child))
            elif kind in (K.OBJC_PROTOCOL_DECL, K.OBJC_PROTOCOL_REF):
                model.objc_protocols.append(reader.read_protocol(child))
            elif kind == K.OBJC_CATEGORY_DECL:
                self._read_category(child)
            elif kind == K.INCLUSION_DIRECTIVE:
                continue
            else:
                self._walk(child)

    def _record_marker(self, node) -> None:
        if node.spelling in self.config.enum_markers:
            self.model.cfenums.add(location_to_id(node.location))
        elif node.spelling in self.config.options_markers:
            self.model.cfoptions.add(location_to_id(node.location))

    def _read_variable(self, node) -> None:
        source = node.source_text
        if source == "?" or not source.strip().startswith("static"):
            self.model.global_values.append(self.reader.read_global_value(node))
            return
        constant = self.reader.demote_static_variable(node)
        if constant is not None:
            self.model.constant_values.append(constant)

    def _read_category(self, node) -> None:
        category = self.reader.read_category(node)
        conf = self.config.get_category_conf(f"{category.name}@{category.owner}")
        if conf is None:
            conf = self.config.get_category_conf(category.name)
        if isinstance(conf, dict) and conf.get("protocol"):
            self.model.objc_protocols.append(self.reader.read_protocol(node))
        else:
            self.model.objc_categories.append(category)
