"""Module-level import and export bindings for TypeScript/JavaScript files."""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from tree_sitter import Node

from .extractor import SourceFile

# Pseudo export names
DEFAULT_EXPORT = 'default'
NAMESPACE_IMPORT = '*'
ASSIGNMENT_EXPORT = '='   # `export = x` / `module.exports = x`


@dataclass(frozen=True)
class ImportBinding:
    """A local name bound by an import statement or a top-level require()."""
    local_name: str
    source: str
    imported: str
    file_path: str
    type_only: bool = False


@dataclass(frozen=True)
class ExportEntry:
    """One exported name of a module.

    kind is 'local' (refers to ``local_name`` in the module scope),
    'reexport' (``imported`` from ``source``) or 'namespace' (all of ``source``).
    """
    exported: str
    kind: str
    local_name: Optional[str] = None
    source: Optional[str] = None
    imported: Optional[str] = None


@dataclass
class ModuleInterface:
    """Everything a module imports and exports at its top level."""
    imports: Dict[str, ImportBinding] = field(default_factory=dict)
    exports: Dict[str, ExportEntry] = field(default_factory=dict)
    star_exports: List[str] = field(default_factory=list)
    specifiers: List[str] = field(default_factory=list)

    def add_specifier(self, specifier: str):
        if specifier and specifier not in self.specifiers:
            self.specifiers.append(specifier)


def strip_quotes(text: str) -> str:
    return text.strip('"\'`')


def require_source(node: Optional[Node], source_file: SourceFile) -> Optional[str]:
    """Module specifier of a `require('x')` call, or None."""
    if node is None or node.type != 'call_expression':
        return None
    function_node = node.child_by_field_name('function')
    args_node = node.child_by_field_name('arguments')
    if (function_node is None or function_node.type != 'identifier'
            or source_file.text(function_node) != 'require'
            or args_node is None or args_node.named_child_count == 0):
        return None
    first_arg = args_node.named_children[0]
    if first_arg.type != 'string':
        return None
    return strip_quotes(source_file.text(first_arg))


class ImportTracker:
    """Map module-level local names to import sources and collect exports."""

    def __init__(self, source_file: SourceFile):
        self.source_file = source_file
        self.interface = ModuleInterface()

    def analyze(self) -> ModuleInterface:
        """Scan top-level statements of the file.

        Returns:
            ModuleInterface with imports, exports, star re-exports and specifiers
        """
        root = self.source_file.tree.root_node
        for node in root.named_children:
            if node.type == 'import_statement':
                self._handle_import(node)
            elif node.type == 'export_statement':
                self._handle_export(node)
            elif node.type in ('lexical_declaration', 'variable_declaration'):
                self._handle_require(node)
            elif node.type == 'expression_statement':
                self._handle_commonjs_export(node)
            elif node.type == 'ambient_declaration':
                self._handle_ambient(node)
        return self.interface

    def _text(self, node: Node) -> str:
        return self.source_file.text(node)

    def _bind(self, local_name: str, source: str, imported: str, type_only: bool = False):
        self.interface.imports[local_name] = ImportBinding(
            local_name=local_name,
            source=source,
            imported=imported,
            file_path=self.source_file.path,
            type_only=type_only,
        )

    def _handle_import(self, node: Node):
        source_node = node.child_by_field_name('source')
        type_only = any(child.type == 'type' for child in node.children)

        for child in node.named_children:
            if child.type == 'import_require_clause':
                # import x = require('mod')
                ident = next((c for c in child.named_children if c.type == 'identifier'), None)
                source = child.child_by_field_name('source')
                if source is None:
                    source = next((c for c in child.named_children if c.type == 'string'), None)
                if ident is not None and source is not None:
                    module_name = strip_quotes(self._text(source))
                    self.interface.add_specifier(module_name)
                    self._bind(self._text(ident), module_name, ASSIGNMENT_EXPORT)
                return

        if source_node is None:
            return
        module_name = strip_quotes(self._text(source_node))
        self.interface.add_specifier(module_name)

        import_clause = next((c for c in node.named_children if c.type == 'import_clause'), None)
        if import_clause is None:
            return

        for child in import_clause.named_children:
            # import x from 'mod'
            if child.type == 'identifier':
                self._bind(self._text(child), module_name, DEFAULT_EXPORT, type_only)
            # import * as ns from 'mod'
            elif child.type == 'namespace_import':
                for ns_child in child.named_children:
                    if ns_child.type == 'identifier':
                        self._bind(self._text(ns_child), module_name, NAMESPACE_IMPORT, type_only)
            # import { x, y as z } from 'mod'
            elif child.type == 'named_imports':
                for specifier in child.named_children:
                    if specifier.type != 'import_specifier':
                        continue
                    name_node = specifier.child_by_field_name('name')
                    alias_node = specifier.child_by_field_name('alias')
                    if name_node is None:
                        continue
                    original = strip_quotes(self._text(name_node))
                    local = self._text(alias_node) if alias_node is not None else original
                    specifier_type_only = type_only or any(c.type == 'type' for c in specifier.children)
                    self._bind(local, module_name, original, specifier_type_only)

    def _handle_export(self, node: Node):
        exports = self.interface.exports
        source_node = node.child_by_field_name('source')
        source = strip_quotes(self._text(source_node)) if source_node is not None else None
        if source:
            self.interface.add_specifier(source)

        declaration = node.child_by_field_name('declaration')
        is_default = any(child.type == 'default' for child in node.children)

        if declaration is not None:
            while declaration.type == 'ambient_declaration' and declaration.named_child_count:
                declaration = declaration.named_children[0]
            for name in self._declared_names(declaration):
                exported = DEFAULT_EXPORT if is_default else name
                exports[exported] = ExportEntry(exported, 'local', local_name=name)
            return

        value = node.child_by_field_name('value')
        if value is None and any(child.type == '=' for child in node.children):
            # export = name;
            value = next((c for c in node.named_children if c.type != 'comment'), None)
            if value is not None and value.type == 'identifier':
                exports[ASSIGNMENT_EXPORT] = ExportEntry(
                    ASSIGNMENT_EXPORT, 'local', local_name=self._text(value))
            return
        if value is not None:
            if is_default and value.type == 'identifier':
                exports[DEFAULT_EXPORT] = ExportEntry(
                    DEFAULT_EXPORT, 'local', local_name=self._text(value))
            return

        for child in node.named_children:
            if child.type == 'export_clause':
                for specifier in child.named_children:
                    if specifier.type != 'export_specifier':
                        continue
                    name_node = specifier.child_by_field_name('name')
                    alias_node = specifier.child_by_field_name('alias')
                    if name_node is None:
                        continue
                    original = strip_quotes(self._text(name_node))
                    exported = strip_quotes(self._text(alias_node)) if alias_node is not None else original
                    if source:
                        exports[exported] = ExportEntry(exported, 'reexport', source=source,
                                                        imported=original)
                    else:
                        exports[exported] = ExportEntry(exported, 'local', local_name=original)
                return
            if child.type == 'namespace_export' and source:
                # export * as ns from 'mod'
                name_node = next((c for c in child.named_children), None)
                if name_node is not None:
                    exported = strip_quotes(self._text(name_node))
                    exports[exported] = ExportEntry(exported, 'namespace', source=source)
                return

        if source and any(child.type == '*' for child in node.children):
            # export * from 'mod'
            if source not in self.interface.star_exports:
                self.interface.star_exports.append(source)

    def _handle_ambient(self, node: Node):
        # declare module 'x' { export ... } contributes nothing to this file's exports
        for child in node.named_children:
            if child.type == 'export_statement':
                self._handle_export(child)

    def _declared_names(self, declaration: Node) -> List[str]:
        if declaration.type in ('lexical_declaration', 'variable_declaration'):
            names = []
            for declarator in declaration.named_children:
                if declarator.type != 'variable_declarator':
                    continue
                name_node = declarator.child_by_field_name('name')
                if name_node is not None and name_node.type == 'identifier':
                    names.append(self._text(name_node))
            return names
        name_node = declaration.child_by_field_name('name')
        if name_node is None or name_node.type == 'string':
            return []
        if name_node.type == 'nested_identifier':
            name_node = name_node.named_children[0]
        return [self._text(name_node)]

    def _handle_require(self, node: Node):
        """const x = require('mod') / const { a, b: c } = require('mod')"""
        for declarator in node.named_children:
            if declarator.type != 'variable_declarator':
                continue
            name_node = declarator.child_by_field_name('name')
            module_name = require_source(declarator.child_by_field_name('value'), self.source_file)
            if name_node is None or module_name is None:
                continue
            self.interface.add_specifier(module_name)
            if name_node.type == 'identifier':
                self._bind(self._text(name_node), module_name, ASSIGNMENT_EXPORT)
            elif name_node.type == 'object_pattern':
                for prop in name_node.named_children:
                    if prop.type == 'shorthand_property_identifier_pattern':
                        name = self._text(prop)
                        self._bind(name, module_name, name)
                    elif prop.type == 'pair_pattern':
                        key = prop.child_by_field_name('key')
                        value = prop.child_by_field_name('value')
                        if key is not None and value is not None and value.type == 'identifier':
                            self._bind(self._text(value), module_name, strip_quotes(self._text(key)))

    def _handle_commonjs_export(self, node: Node):
        """module.exports = x / module.exports = { a, b } / exports.a = x"""
        expr = node.named_children[0] if node.named_child_count else None
        if expr is None or expr.type != 'assignment_expression':
            return
        left = expr.child_by_field_name('left')
        right = expr.child_by_field_name('right')
        if left is None or right is None or left.type != 'member_expression':
            return
        target = self._text(left)
        exports = self.interface.exports

        if target == 'module.exports':
            if right.type == 'identifier':
                exports[ASSIGNMENT_EXPORT] = ExportEntry(
                    ASSIGNMENT_EXPORT, 'local', local_name=self._text(right))
            elif right.type == 'object':
                for prop in right.named_children:
                    if prop.type == 'shorthand_property_identifier':
                        name = self._text(prop)
                        exports[name] = ExportEntry(name, 'local', local_name=name)
                    elif prop.type == 'pair':
                        key = prop.child_by_field_name('key')
                        value = prop.child_by_field_name('value')
                        if key is not None and value is not None and value.type == 'identifier':
                            name = strip_quotes(self._text(key))
                            exports[name] = ExportEntry(name, 'local', local_name=self._text(value))
            else:
                module_name = require_source(right, self.source_file)
                if module_name:
                    self.interface.add_specifier(module_name)
                    self.interface.star_exports.append(module_name)
            return

        for prefix in ('module.exports.', 'exports.'):
            if target.startswith(prefix) and right.type == 'identifier':
                name = target[len(prefix):]
                if name and '.' not in name:
                    exports[name] = ExportEntry(name, 'local', local_name=self._text(right))
                return
