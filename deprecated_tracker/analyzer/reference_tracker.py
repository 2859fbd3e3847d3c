"""Reference binder: maps every identifier occurrence to the symbol it denotes.

Binding is by symbol identity, never by name. Each file is walked with a
lexical scope chain (module, function, block, class); member accesses are
bound through a deliberately small type resolver that understands `new`,
annotations, `this`/`super`, property and return types, `await`, casts,
namespaces and class inheritance. Anything it cannot prove stays unresolved.
"""
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Iterator, List, Optional, Set, Tuple

import networkx as nx
from loguru import logger
from tree_sitter import Node

from .extractor import (
    CLASS_NODES, FIELD_MEMBER_NODES, FUNCTION_NODES, INTERFACE_BODY_NODES,
    METHOD_MEMBER_NODES, NAMESPACE_NODES, SourceFile, Symbol, has_token, object_literal,
)
from .import_tracker import ASSIGNMENT_EXPORT, ImportBinding, require_source

VALUE = 'value'
TYPE = 'type'
VALUE_ONLY = frozenset({VALUE})
TYPE_ONLY = frozenset({TYPE})
BOTH = frozenset({VALUE, TYPE})

SYMBOL_SPACES = {
    'class': BOTH,
    'enum': BOTH,
    'namespace': BOTH,
    'interface': TYPE_ONLY,
    'type_alias': TYPE_ONLY,
}

FUNCTION_LIKE = FUNCTION_NODES + (
    'function_expression', 'function', 'generator_function', 'arrow_function',
)
SKIP_NODES = frozenset({
    'comment', 'string', 'number', 'regex', 'import_statement', 'jsx_closing_element',
    'property_identifier', 'private_property_identifier', 'statement_identifier',
    'predefined_type', 'literal_type', 'this', 'super', 'true', 'false', 'null', 'undefined',
    'hash_bang_line', 'html_comment', 'jsx_text',
})
NULLISH_TYPES = frozenset({'null', 'undefined', 'void', 'never'})
PASSTHROUGH_GENERICS = frozenset({'Partial', 'Readonly', 'Required', 'NonNullable', 'Awaited'})
ARRAY_GENERICS = frozenset({'Array', 'ReadonlyArray', 'Set', 'ReadonlySet', 'Iterable', 'IterableIterator'})
PROMISE_GENERICS = frozenset({'Promise', 'PromiseLike'})

MAX_DEPTH = 24
_INHERIT = object()
_PENDING = object()


@dataclass(frozen=True)
class InstanceType:
    """Values that are instances of a class or implement an interface."""
    symbol: Symbol


@dataclass(frozen=True)
class StaticType:
    """The class constructor itself, or a namespace object."""
    symbol: Symbol


@dataclass(frozen=True)
class ObjectType:
    """An object literal whose methods and properties are members of ``symbol``."""
    symbol: Symbol


@dataclass(frozen=True)
class ModuleType:
    """A module namespace object (`import * as ns`, `require()`)."""
    path: str


@dataclass(frozen=True)
class ArrayType:
    element: object


@dataclass(frozen=True)
class PromiseType:
    inner: object


@dataclass(eq=False)
class LocalBinding:
    """A function/block-local name (parameter, variable, catch or loop binding).

    ``path`` walks from the bound value into a destructuring pattern: a str is a
    property key, an int an array index, '[]' a for-of element, None unknown.
    """
    name: str
    scope: 'Scope'
    spaces: FrozenSet[str] = VALUE_ONLY
    type_node: Optional[Node] = None
    value_node: Optional[Node] = None
    path: Tuple = ()


@dataclass(eq=False)
class Reference:
    """One syntactic occurrence bound to a declaring symbol."""
    symbol: Symbol
    source_file: SourceFile
    node: Node
    name: str
    line: int
    character: int
    import_source: Optional[str] = None
    enclosing: Tuple[Symbol, ...] = ()

    @property
    def file_path(self) -> str:
        return self.source_file.path


def binding_spaces(binding) -> FrozenSet[str]:
    if isinstance(binding, Symbol):
        return SYMBOL_SPACES.get(binding.kind, VALUE_ONLY)
    if isinstance(binding, LocalBinding):
        return binding.spaces
    if isinstance(binding, ImportBinding) and binding.type_only:
        return TYPE_ONLY
    return BOTH


class Scope:
    """Lexical scope: name -> bindings, linked to its parent."""

    def __init__(self, parent: Optional['Scope'] = None, record=None,
                 this_type=_INHERIT, class_symbol: Optional[Symbol] = None):
        self.parent = parent
        self.record = record if record is not None else (parent.record if parent else None)
        self.bindings: Dict[str, list] = {}
        self._this_type = this_type
        self._class_symbol = class_symbol

    @property
    def source_file(self) -> SourceFile:
        return self.record.source_file

    def declare(self, name: str, binding):
        existing = self.bindings.setdefault(name, [])
        if not any(b is binding for b in existing):
            existing.append(binding)

    def find(self, name: str, space: str):
        """Innermost binding of ``name`` usable in ``space`` ('value' or 'type')."""
        scope = self
        while scope is not None:
            for binding in scope.bindings.get(name, ()):
                if space in binding_spaces(binding):
                    return binding
            scope = scope.parent
        return None

    def this_type(self):
        scope = self
        while scope is not None:
            if scope._this_type is not _INHERIT:
                return scope._this_type
            scope = scope.parent
        return None

    def class_symbol(self) -> Optional[Symbol]:
        scope = self
        while scope is not None:
            if scope._class_symbol is not None:
                return scope._class_symbol
            scope = scope.parent
        return None


class InheritanceMap:
    """Tracks class/interface inheritance for member lookup.

    A networkx DiGraph with an edge child -> parent per `extends`/`implements`
    target. Parents are resolved lazily the first time a symbol is queried, so
    declaration files are only consulted for hierarchies actually in use.
    """

    def __init__(self, resolve_parents: Callable[[Symbol], List[Tuple[str, Symbol]]]):
        """Initialize the inheritance map.

        Args:
            resolve_parents: Returns (relation, parent symbol) pairs for a class/interface
        """
        self.graph = nx.DiGraph()
        self._resolve_parents = resolve_parents
        self._expanded: Set[Symbol] = set()

    def _expand(self, symbol: Symbol):
        if symbol in self._expanded:
            return
        self._expanded.add(symbol)
        self.graph.add_node(symbol)
        for order, (relation, parent) in enumerate(self._resolve_parents(symbol)):
            if parent is not symbol and not self.graph.has_edge(symbol, parent):
                self.graph.add_edge(symbol, parent, relation=relation, order=order)

    def parents(self, symbol: Symbol) -> List[Symbol]:
        """Direct parents in declaration order (extends before implements)."""
        self._expand(symbol)
        edges = sorted(self.graph.out_edges(symbol, data=True), key=lambda e: e[2]['order'])
        return [target for _, target, _ in edges]

    def base_class(self, symbol: Symbol) -> Optional[Symbol]:
        self._expand(symbol)
        for _, target, data in self.graph.out_edges(symbol, data=True):
            if data['relation'] == 'extends' and target.kind == 'class':
                return target
        return None

    def lineage(self, symbol: Symbol) -> Iterator[Symbol]:
        """The symbol followed by all ancestors, breadth first, without repeats."""
        seen = {symbol}
        queue = [symbol]
        while queue:
            current = queue.pop(0)
            yield current
            for parent in self.parents(current):
                if parent not in seen:
                    seen.add(parent)
                    queue.append(parent)

    def subclasses(self, symbol: Symbol) -> Set[Symbol]:
        """Known descendants (only hierarchies expanded so far)."""
        if symbol not in self.graph:
            return set()
        return set(nx.ancestors(self.graph, symbol))


def pattern_bindings(pattern: Node, source_file: SourceFile, path: Tuple = ()):
    """Yield (identifier node, destructuring path) for every name a pattern binds."""
    node_type = pattern.type
    if node_type == 'identifier':
        yield pattern, path
    elif node_type == 'object_pattern':
        for child in pattern.named_children:
            if child.type == 'shorthand_property_identifier_pattern':
                yield child, path + (source_file.text(child),)
            elif child.type == 'pair_pattern':
                key = child.child_by_field_name('key')
                value = child.child_by_field_name('value')
                key_name = None
                if key is not None and key.type in ('property_identifier', 'string', 'number'):
                    key_name = source_file.text(key).strip('"\'')
                if value is not None:
                    yield from pattern_bindings(value, source_file, path + (key_name,))
            elif child.type == 'object_assignment_pattern':
                left = child.child_by_field_name('left')
                if left is not None and left.type == 'shorthand_property_identifier_pattern':
                    yield left, path + (source_file.text(left),)
                elif left is not None:
                    yield from pattern_bindings(left, source_file, path + (None,))
            elif child.type == 'rest_pattern':
                for inner in child.named_children:
                    yield from pattern_bindings(inner, source_file, path + (None,))
    elif node_type == 'array_pattern':
        for index, child in enumerate(c for c in pattern.named_children if c.type != 'comment'):
            yield from pattern_bindings(child, source_file, path + (index,))
    elif node_type in ('assignment_pattern', 'object_assignment_pattern'):
        left = pattern.child_by_field_name('left')
        if left is not None:
            yield from pattern_bindings(left, source_file, path)
    elif node_type == 'rest_pattern':
        for inner in pattern.named_children:
            yield from pattern_bindings(inner, source_file, path + (None,))


def declare_pattern(pattern: Node, scope: Scope, type_node: Optional[Node] = None,
                    value_node: Optional[Node] = None, base_path: Tuple = ()):
    for ident, path in pattern_bindings(pattern, scope.source_file, base_path):
        scope.declare(scope.source_file.text(ident), LocalBinding(
            name=scope.source_file.text(ident), scope=scope,
            type_node=type_node, value_node=value_node, path=path,
        ))


def unwrap_declaration(statement: Node) -> Optional[Node]:
    """Strip export/declare wrappers from a statement."""
    node = statement
    while node is not None and node.type in ('export_statement', 'ambient_declaration'):
        if node.type == 'export_statement':
            node = node.child_by_field_name('declaration')
        else:
            node = next((c for c in node.named_children if c.type != 'comment'), None)
    return node


def hoist_declarations(container: Node, scope: Scope):
    """Declare every name a statement list introduces before walking it."""
    record = scope.record
    source_file = scope.source_file
    for statement in container.named_children:
        node = unwrap_declaration(statement)
        if node is None:
            continue
        node_type = node.type
        if node_type in ('lexical_declaration', 'variable_declaration'):
            for declarator in node.named_children:
                if declarator.type != 'variable_declarator':
                    continue
                name_node = declarator.child_by_field_name('name')
                if name_node is None:
                    continue
                symbol = record.by_name_start.get(name_node.start_byte)
                if symbol is not None and name_node.type == 'identifier':
                    scope.declare(symbol.name, symbol)
                else:
                    declare_pattern(name_node, scope,
                                    type_node=declarator.child_by_field_name('type'),
                                    value_node=declarator.child_by_field_name('value'))
        elif node_type in CLASS_NODES + FUNCTION_NODES + NAMESPACE_NODES + (
                'interface_declaration', 'type_alias_declaration', 'enum_declaration'):
            name_node = node.child_by_field_name('name')
            if name_node is None:
                continue
            symbol = record.by_name_start.get(name_node.start_byte)
            if symbol is not None:
                scope.declare(symbol.name, symbol)
            elif name_node.type == 'identifier' or name_node.type == 'type_identifier':
                spaces = TYPE_ONLY if node_type in ('interface_declaration', 'type_alias_declaration') else BOTH
                scope.declare(source_file.text(name_node), LocalBinding(
                    name=source_file.text(name_node), scope=scope, spaces=spaces))


def declare_type_parameters(node: Node, scope: Scope):
    params = node.child_by_field_name('type_parameters')
    if params is None:
        return
    for param in params.named_children:
        name_node = param.child_by_field_name('name')
        if name_node is None and param.named_child_count:
            name_node = param.named_children[0]
        if name_node is not None:
            name = scope.source_file.text(name_node)
            scope.declare(name, LocalBinding(name=name, scope=scope, spaces=TYPE_ONLY))


class TypeResolver:
    """Just enough type evaluation to bind member accesses to declarations."""

    def __init__(self, model):
        self.model = model
        self._declared: Dict[Symbol, object] = {}
        self._locals: Dict[LocalBinding, object] = {}
        self._expr_cache: Dict[tuple, object] = {}

    # -- bindings ---------------------------------------------------------

    def resolve_binding(self, binding, depth: int = 0):
        """Symbol, ModuleType, or None for opaque locals and unresolved imports."""
        if binding is None or depth > MAX_DEPTH:
            return None
        if isinstance(binding, Symbol):
            return binding
        if isinstance(binding, ImportBinding):
            return self.model.resolve_import(binding)
        if isinstance(binding, LocalBinding):
            return self._local_alias(binding, depth)
        return None

    def _local_alias(self, binding: LocalBinding, depth: int):
        # const { a } = require('./m') and const { a } = ns alias module exports
        if (len(binding.path) == 1 and isinstance(binding.path[0], str)
                and binding.value_node is not None and binding.type_node is None):
            source_type = self.infer(binding.value_node, binding.scope, depth + 1)
            if isinstance(source_type, ModuleType):
                return self.model.resolve_export(source_type.path, binding.path[0])
        return None

    # -- types of declarations ------------------------------------------------

    def type_of(self, resolved, depth: int = 0):
        """Type of the value a resolved binding denotes."""
        if resolved is None or depth > MAX_DEPTH:
            return None
        if isinstance(resolved, ModuleType):
            return resolved
        if not isinstance(resolved, Symbol):
            return None
        if resolved.kind in ('class', 'namespace', 'enum'):
            return StaticType(resolved)
        if resolved.kind in ('variable', 'property'):
            return self.declared_type(resolved, depth + 1)
        return None

    def declared_type(self, symbol: Symbol, depth: int = 0):
        cached = self._declared.get(symbol, None)
        if cached is _PENDING:
            return None
        if symbol in self._declared:
            return cached
        self._declared[symbol] = _PENDING
        scope = self.model.member_scope(symbol)
        result = None
        if symbol.type_node is not None:
            result = self.resolve_type(symbol.type_node, scope, depth + 1)
        elif object_literal(symbol.value_node) is not None:
            result = ObjectType(symbol)
        elif symbol.value_node is not None:
            result = self.infer(symbol.value_node, scope, depth + 1)
        self._declared[symbol] = result
        return result

    def return_type(self, symbol: Symbol, depth: int = 0):
        """Type produced by calling a function/method symbol."""
        if depth > MAX_DEPTH:
            return None
        scope = self.model.member_scope(symbol)
        type_node = symbol.type_node
        if type_node is not None:
            inner = self._unwrap_annotation(type_node)
            if inner is not None and inner.type == 'function_type':
                ret = inner.child_by_field_name('return_type')
                return self.resolve_type(ret, scope, depth + 1) if ret is not None else None
            return self.resolve_type(type_node, scope, depth + 1)
        value = symbol.value_node
        if value is not None and value.type == 'arrow_function':
            body = value.child_by_field_name('body')
            if body is not None and body.type != 'statement_block':
                return self.infer(body, scope, depth + 1)
        return None

    def _local_type(self, binding: LocalBinding, depth: int):
        cached = self._locals.get(binding, None)
        if cached is _PENDING:
            return None
        if binding in self._locals:
            return cached
        self._locals[binding] = _PENDING
        if binding.type_node is not None:
            current = self.resolve_type(binding.type_node, binding.scope, depth + 1)
        elif binding.value_node is not None:
            current = self.infer(binding.value_node, binding.scope, depth + 1)
        else:
            current = None
        for step in binding.path:
            if current is None:
                break
            if isinstance(step, str):
                current = self.type_of(self.member_of(current, step, depth + 1), depth + 1)
            elif step is not None:
                current = current.element if isinstance(current, ArrayType) else None
            else:
                current = None
        self._locals[binding] = current
        return current

    # -- members ----------------------------------------------------------

    def member_of(self, owner_type, name: str, depth: int = 0):
        """Resolve ``name`` on a value of ``owner_type`` to a Symbol or ModuleType."""
        if owner_type is None or depth > MAX_DEPTH:
            return None
        if isinstance(owner_type, ModuleType):
            return self.model.resolve_export(owner_type.path, name)
        if isinstance(owner_type, InstanceType):
            return self.lookup_member(owner_type.symbol, name, static=False)
        if isinstance(owner_type, StaticType):
            return self.lookup_member(owner_type.symbol, name, static=True)
        if isinstance(owner_type, ObjectType):
            return owner_type.symbol.members.get(name)
        return None

    def lookup_member(self, owner: Symbol, name: str, static: bool) -> Optional[Symbol]:
        if owner.kind == 'namespace':
            return owner.static_members.get(name)
        if owner.kind not in ('class', 'interface'):
            return None
        for ancestor in self.model.inheritance.lineage(owner):
            table = ancestor.static_members if static else ancestor.members
            member = table.get(name)
            if member is not None:
                return member
        return None

    def symbol_for(self, expr: Node, scope: Scope, depth: int = 0):
        """Symbol or module an expression names (identifier or member chain)."""
        if expr is None or depth > MAX_DEPTH:
            return None
        node_type = expr.type
        if node_type in ('parenthesized_expression', 'non_null_expression'):
            inner = expr.named_children[0] if expr.named_child_count else None
            return self.symbol_for(inner, scope, depth + 1)
        if node_type in ('identifier', 'type_identifier', 'shorthand_property_identifier'):
            space = TYPE if node_type == 'type_identifier' else VALUE
            return self.resolve_binding(scope.find(scope.source_file.text(expr), space), depth + 1)
        if node_type in ('member_expression', 'nested_identifier', 'nested_type_identifier'):
            owner, prop = self._member_parts(expr)
            if owner is None or prop is None:
                return None
            owner_type = self.infer(owner, scope, depth + 1)
            return self.member_of(owner_type, scope.source_file.text(prop), depth + 1)
        return None

    @staticmethod
    def _member_parts(expr: Node):
        if expr.type == 'member_expression':
            return expr.child_by_field_name('object'), expr.child_by_field_name('property')
        if expr.type == 'nested_type_identifier':
            return expr.child_by_field_name('module'), expr.child_by_field_name('name')
        children = [c for c in expr.named_children if c.type != 'comment']
        if len(children) >= 2:
            return children[0], children[-1]
        return None, None

    # -- expressions --------------------------------------------------------

    def infer(self, expr: Optional[Node], scope: Scope, depth: int = 0):
        """Best-effort static type of an expression."""
        if expr is None or depth > MAX_DEPTH:
            return None
        key = (scope.source_file.path, expr.start_byte, expr.end_byte, expr.type)
        if key in self._expr_cache:
            return self._expr_cache[key]
        result = self._infer(expr, scope, depth)
        self._expr_cache[key] = result
        return result

    def _infer(self, expr: Node, scope: Scope, depth: int):
        node_type = expr.type
        text = scope.source_file.text

        if node_type in ('identifier', 'shorthand_property_identifier'):
            binding = scope.find(text(expr), VALUE)
            if isinstance(binding, LocalBinding):
                alias = self._local_alias(binding, depth)
                if alias is not None:
                    return self.type_of(alias, depth + 1)
                return self._local_type(binding, depth + 1)
            return self.type_of(self.resolve_binding(binding, depth + 1), depth + 1)

        if node_type == 'this':
            return scope.this_type()

        if node_type == 'super':
            owner = scope.class_symbol()
            base = self.model.inheritance.base_class(owner) if owner is not None else None
            if base is None:
                return None
            return StaticType(base) if isinstance(scope.this_type(), StaticType) else InstanceType(base)

        if node_type in ('parenthesized_expression', 'non_null_expression', 'satisfies_expression'):
            inner = expr.named_children[0] if expr.named_child_count else None
            return self.infer(inner, scope, depth + 1)

        if node_type == 'await_expression':
            inner = self.infer(expr.named_children[0] if expr.named_child_count else None,
                               scope, depth + 1)
            return inner.inner if isinstance(inner, PromiseType) else inner

        if node_type in ('as_expression', 'type_assertion'):
            children = [c for c in expr.named_children if c.type != 'comment']
            if len(children) < 2:
                return None
            type_node = children[-1] if node_type == 'as_expression' else children[0]
            return self.resolve_type(type_node, scope, depth + 1)

        if node_type == 'new_expression':
            constructed = self.infer(expr.child_by_field_name('constructor'), scope, depth + 1)
            if isinstance(constructed, StaticType) and constructed.symbol.kind == 'class':
                return InstanceType(constructed.symbol)
            return None

        if node_type == 'call_expression':
            module_name = require_source(expr, scope.source_file)
            if module_name is not None:
                target = self.model.resolve_module_path(scope.source_file.path, module_name)
                if target is None:
                    return None
                exported = self.model.resolve_export(target, ASSIGNMENT_EXPORT)
                return self.type_of(exported, depth + 1) if exported is not None else ModuleType(target)
            callee = self.symbol_for(expr.child_by_field_name('function'), scope, depth + 1)
            if isinstance(callee, Symbol) and callee.kind in ('function', 'method', 'variable', 'property'):
                return self.return_type(callee, depth + 1)
            return None

        if node_type == 'member_expression':
            return self.type_of(self.symbol_for(expr, scope, depth + 1), depth + 1)

        if node_type == 'subscript_expression':
            owner = self.infer(expr.child_by_field_name('object'), scope, depth + 1)
            return owner.element if isinstance(owner, ArrayType) else None

        if node_type == 'assignment_expression':
            return self.infer(expr.child_by_field_name('right'), scope, depth + 1)

        if node_type == 'ternary_expression':
            return self.infer(expr.child_by_field_name('consequence'), scope, depth + 1)

        return None

    # -- type annotations -------------------------------------------------

    @staticmethod
    def _unwrap_annotation(node: Optional[Node]) -> Optional[Node]:
        while node is not None and node.type in ('type_annotation', 'parenthesized_type',
                                                 'asserts_annotation', 'opting_type_annotation',
                                                 'omitting_type_annotation', 'adding_type_annotation'):
            children = [c for c in node.named_children if c.type != 'comment']
            node = children[0] if children else None
        return node

    def resolve_type(self, node: Optional[Node], scope: Scope, depth: int = 0):
        """Evaluate a type annotation to InstanceType/ArrayType/PromiseType or None."""
        node = self._unwrap_annotation(node)
        if node is None or depth > MAX_DEPTH:
            return None
        node_type = node.type
        text = scope.source_file.text

        if node_type == 'type_identifier':
            resolved = self.resolve_binding(scope.find(text(node), TYPE), depth + 1)
            return self._type_from_symbol(resolved, depth + 1)

        if node_type == 'nested_type_identifier':
            return self._type_from_symbol(self.symbol_for(node, scope, depth + 1), depth + 1)

        if node_type == 'generic_type':
            name_node = node.child_by_field_name('name')
            args_node = node.child_by_field_name('type_arguments')
            args = [c for c in args_node.named_children if c.type != 'comment'] if args_node else []
            base = text(name_node) if name_node is not None else ''
            if base in PROMISE_GENERICS and args:
                return PromiseType(self.resolve_type(args[0], scope, depth + 1))
            if base in ARRAY_GENERICS and args:
                return ArrayType(self.resolve_type(args[0], scope, depth + 1))
            if base in PASSTHROUGH_GENERICS and args:
                return self.resolve_type(args[0], scope, depth + 1)
            return self.resolve_type(name_node, scope, depth + 1)

        if node_type == 'array_type':
            inner = node.named_children[0] if node.named_child_count else None
            return ArrayType(self.resolve_type(inner, scope, depth + 1))

        if node_type == 'readonly_type':
            inner = node.named_children[0] if node.named_child_count else None
            return self.resolve_type(inner, scope, depth + 1)

        if node_type == 'union_type':
            candidates = []
            for member in self._flatten_union(node):
                if member.type in ('predefined_type', 'literal_type') and text(member) in NULLISH_TYPES:
                    continue
                candidates.append(self.resolve_type(member, scope, depth + 1))
            distinct = []
            for candidate in candidates:
                if candidate not in distinct:
                    distinct.append(candidate)
            return distinct[0] if len(distinct) == 1 else None

        if node_type == 'type_query':
            inner = node.named_children[0] if node.named_child_count else None
            return self.infer(inner, scope, depth + 1)

        return None

    def _flatten_union(self, node: Node) -> List[Node]:
        members = []
        for child in node.named_children:
            if child.type == 'union_type':
                members.extend(self._flatten_union(child))
            elif child.type != 'comment':
                members.append(child)
        return members

    def _type_from_symbol(self, resolved, depth: int):
        if not isinstance(resolved, Symbol):
            return None
        if resolved.kind in ('class', 'interface'):
            return InstanceType(resolved)
        if resolved.kind == 'type_alias' and resolved.value_node is not None:
            return self.resolve_type(resolved.value_node, self.model.member_scope(resolved), depth + 1)
        return None


class ReferenceBinder:
    """Walk one file and bind each reference to its declaring symbol."""

    def __init__(self, model, record):
        """Initialize binder.

        Args:
            model: SymbolModel providing module scopes and cross-file resolution
            record: ModuleRecord of the file to bind
        """
        self.model = model
        self.types: TypeResolver = model.types
        self.record = record
        self.source_file: SourceFile = record.source_file
        self.references: List[Reference] = []
        self._seen: Set[int] = set()
        self._handlers = {
            'statement_block': self._visit_block,
            'class_static_block': self._visit_static_block,
            'for_statement': self._visit_for,
            'for_in_statement': self._visit_for_in,
            'catch_clause': self._visit_catch,
            'interface_declaration': self._visit_interface,
            'type_alias_declaration': self._visit_type_alias,
            'enum_declaration': self._visit_enum,
            'variable_declarator': self._visit_declarator,
            'export_statement': self._visit_export,
            'member_expression': self._visit_member,
            'identifier': self._visit_identifier,
            'shorthand_property_identifier': self._visit_identifier,
            'type_identifier': self._visit_type_identifier,
            'nested_type_identifier': self._visit_nested_type,
            'jsx_opening_element': self._visit_jsx,
            'jsx_self_closing_element': self._visit_jsx,
            'pair': self._visit_pair,
            'method_definition': self._visit_object_method,
            'labeled_statement': self._visit_labeled,
            'index_signature': self._visit_index_signature,
            'type_parameter': self._visit_type_parameter,
            'required_parameter': self._visit_parameter,
            'optional_parameter': self._visit_parameter,
        }
        for node_type in CLASS_NODES + ('class',):
            self._handlers[node_type] = self._visit_class
        for node_type in FUNCTION_LIKE:
            self._handlers[node_type] = self._visit_function_node
        for node_type in NAMESPACE_NODES:
            self._handlers[node_type] = self._visit_namespace

    def bind(self) -> List[Reference]:
        """Walk the file once.

        Returns:
            References sorted by source position
        """
        root = self.source_file.tree.root_node
        scope = self.model.module_scope(self.source_file.path)
        stack: List[Tuple[Node, Scope, Tuple[Symbol, ...]]] = [(root, scope, ())]

        while stack:
            node, scope, enclosing = stack.pop()
            handler = self._handlers.get(node.type)
            if handler is not None:
                handler(node, scope, enclosing, stack)
            elif node.type not in SKIP_NODES:
                self._push(stack, node.named_children, scope, enclosing)

        self.references.sort(key=lambda ref: ref.node.start_byte)
        return self.references

    # -- helpers ----------------------------------------------------------

    @staticmethod
    def _push(stack, nodes, scope, enclosing):
        for node in reversed([n for n in nodes if n is not None]):
            stack.append((node, scope, enclosing))

    def _text(self, node: Node) -> str:
        return self.source_file.text(node)

    def _symbol_at(self, name_node: Optional[Node]) -> Optional[Symbol]:
        if name_node is None:
            return None
        return self.record.by_name_start.get(name_node.start_byte)

    def _record(self, node: Node, resolved, enclosing, binding=None):
        if not isinstance(resolved, Symbol) or node.start_byte in self._seen:
            return
        self._seen.add(node.start_byte)
        line, character = self.source_file.position(node)
        import_source = binding.source if isinstance(binding, ImportBinding) else None
        self.references.append(Reference(
            symbol=resolved,
            source_file=self.source_file,
            node=node,
            name=self._text(node),
            line=line,
            character=character,
            import_source=import_source,
            enclosing=enclosing,
        ))

    def _push_pattern_parts(self, pattern: Optional[Node], scope, enclosing, stack):
        """Walk default values and computed keys of a binding pattern, not its names."""
        if pattern is None:
            return
        pending = [pattern]
        while pending:
            node = pending.pop()
            if node.type in ('assignment_pattern', 'object_assignment_pattern'):
                left = node.child_by_field_name('left')
                right = node.child_by_field_name('right')
                if left is not None:
                    pending.append(left)
                if right is not None:
                    stack.append((right, scope, enclosing))
            elif node.type in ('object_pattern', 'array_pattern', 'rest_pattern'):
                pending.extend(node.named_children)
            elif node.type == 'pair_pattern':
                key = node.child_by_field_name('key')
                value = node.child_by_field_name('value')
                if key is not None and key.type == 'computed_property_name':
                    stack.append((key, scope, enclosing))
                if value is not None:
                    pending.append(value)

    def _declare_parameters(self, params: Optional[Node], scope: Scope, enclosing, stack):
        if params is None:
            return
        if params.type == 'identifier':
            scope.declare(self._text(params), LocalBinding(name=self._text(params), scope=scope))
            return
        for param in params.named_children:
            if param.type in ('required_parameter', 'optional_parameter'):
                pattern = param.child_by_field_name('pattern')
                type_node = param.child_by_field_name('type')
                default = param.child_by_field_name('value')
                if pattern is not None and pattern.type != 'this':
                    declare_pattern(pattern, scope, type_node=type_node, value_node=default)
                    self._push_pattern_parts(pattern, scope, enclosing, stack)
                for child in param.named_children:
                    if child.type == 'decorator':
                        stack.append((child, scope, enclosing))
                self._push(stack, [type_node, default], scope, enclosing)
            elif param.type in ('identifier', 'object_pattern', 'array_pattern',
                                'assignment_pattern', 'rest_pattern'):
                value = param.child_by_field_name('right') if param.type == 'assignment_pattern' else None
                declare_pattern(param, scope, value_node=value)
                self._push_pattern_parts(param, scope, enclosing, stack)

    # -- scopes -----------------------------------------------------------

    def _visit_block(self, node, scope, enclosing, stack):
        block_scope = Scope(scope)
        hoist_declarations(node, block_scope)
        self._push(stack, node.named_children, block_scope, enclosing)

    def _visit_static_block(self, node, scope, enclosing, stack):
        owner = scope.class_symbol()
        static_scope = Scope(scope, this_type=StaticType(owner) if owner is not None else None)
        self._push(stack, node.named_children, static_scope, enclosing)

    def _visit_for(self, node, scope, enclosing, stack):
        loop_scope = Scope(scope)
        initializer = node.child_by_field_name('initializer')
        if initializer is not None and initializer.type in ('lexical_declaration', 'variable_declaration'):
            for declarator in initializer.named_children:
                name_node = declarator.child_by_field_name('name')
                if declarator.type == 'variable_declarator' and name_node is not None:
                    declare_pattern(name_node, loop_scope,
                                    type_node=declarator.child_by_field_name('type'),
                                    value_node=declarator.child_by_field_name('value'))
        self._push(stack, node.named_children, loop_scope, enclosing)

    def _visit_for_in(self, node, scope, enclosing, stack):
        loop_scope = Scope(scope)
        left = node.child_by_field_name('left')
        right = node.child_by_field_name('right')
        body = node.child_by_field_name('body')
        is_declaration = node.child_by_field_name('kind') is not None or any(
            c.type in ('const', 'let', 'var') for c in node.children)
        if left is not None and is_declaration:
            is_of = any(c.type == 'of' for c in node.children)
            declare_pattern(left, loop_scope, value_node=right if is_of else None,
                            base_path=('[]',) if is_of else (None,))
            self._push_pattern_parts(left, scope, enclosing, stack)
        elif left is not None:
            stack.append((left, scope, enclosing))
        self._push(stack, [right], scope, enclosing)
        self._push(stack, [body], loop_scope, enclosing)

    def _visit_catch(self, node, scope, enclosing, stack):
        catch_scope = Scope(scope)
        param = node.child_by_field_name('parameter')
        if param is not None:
            declare_pattern(param, catch_scope)
        self._push(stack, [node.child_by_field_name('body')], catch_scope, enclosing)

    def _visit_labeled(self, node, scope, enclosing, stack):
        self._push(stack, [c for c in node.named_children if c.type != 'statement_identifier'],
                   scope, enclosing)

    # -- declarations -------------------------------------------------------

    def _visit_function_node(self, node, scope, enclosing, stack):
        symbol = self._symbol_at(node.child_by_field_name('name')) if node.type in FUNCTION_NODES else None
        this_type = _INHERIT if node.type == 'arrow_function' else None
        self._visit_function(node, scope, enclosing + ((symbol,) if symbol else ()), stack, this_type)

    def _visit_function(self, node, scope, enclosing, stack, this_type=None):
        function_scope = Scope(scope, this_type=this_type)
        if node.type in ('function_expression', 'function', 'generator_function'):
            name_node = node.child_by_field_name('name')
            if name_node is not None:
                function_scope.declare(self._text(name_node),
                                       LocalBinding(name=self._text(name_node), scope=function_scope))
        declare_type_parameters(node, function_scope)
        type_params = node.child_by_field_name('type_parameters')
        if type_params is not None:
            stack.append((type_params, function_scope, enclosing))

        params = node.child_by_field_name('parameters') or node.child_by_field_name('parameter')
        self._push(stack, [node.child_by_field_name('body')], function_scope, enclosing)
        self._push(stack, [node.child_by_field_name('return_type')], function_scope, enclosing)
        self._declare_parameters(params, function_scope, enclosing, stack)

    def _visit_type_parameter(self, node, scope, enclosing, stack):
        self._push(stack, [node.child_by_field_name('constraint'), node.child_by_field_name('value')],
                   scope, enclosing)

    def _visit_parameter(self, node, scope, enclosing, stack):
        # Parameters of function types: only the annotation refers to anything
        self._push(stack, [node.child_by_field_name('type'), node.child_by_field_name('value')],
                   scope, enclosing)

    def _visit_object_method(self, node, scope, enclosing, stack):
        # Class methods are handled by _visit_class; this is an object literal method
        name_node = node.child_by_field_name('name')
        if name_node is not None and name_node.type == 'computed_property_name':
            stack.append((name_node, scope, enclosing))
        member_symbol = self._symbol_at(name_node)
        if member_symbol is None:
            self._visit_function(node, scope, enclosing, stack, this_type=None)
            return
        self._visit_function(node, scope, enclosing + (member_symbol,), stack,
                             this_type=ObjectType(member_symbol.container))

    def _visit_class(self, node, scope, enclosing, stack):
        symbol = self._symbol_at(node.child_by_field_name('name')) if node.type in CLASS_NODES else None
        inner = enclosing + ((symbol,) if symbol else ())
        class_scope = Scope(scope, class_symbol=symbol)
        declare_type_parameters(node, class_scope)

        instance_type = InstanceType(symbol) if symbol is not None else None
        static_type = StaticType(symbol) if symbol is not None else None
        body = node.child_by_field_name('body')

        work = []
        for child in node.named_children:
            if child.type == 'decorator':
                work.append((child, scope, inner))
            elif child.type in ('class_heritage', 'type_parameters'):
                work.append((child, class_scope, inner))

        if body is not None:
            for member in body.named_children:
                member_type = member.type
                if member_type in ('decorator',):
                    work.append((member, class_scope, inner))
                elif member_type in METHOD_MEMBER_NODES:
                    name_node = member.child_by_field_name('name')
                    member_symbol = self._symbol_at(name_node)
                    if name_node is not None and name_node.type == 'computed_property_name':
                        work.append((name_node, class_scope, inner))
                    is_static = has_token(member, 'static', name_node)
                    this_type = static_type if is_static else instance_type
                    member_enclosing = inner + ((member_symbol,) if member_symbol else ())
                    nested = []
                    self._visit_function(member, class_scope, member_enclosing, nested, this_type)
                    for child in member.named_children:
                        if child.type == 'decorator':
                            nested.append((child, class_scope, member_enclosing))
                    work.extend(reversed(nested))
                elif member_type in FIELD_MEMBER_NODES:
                    name_node = member.child_by_field_name('name') or member.child_by_field_name('property')
                    member_symbol = self._symbol_at(name_node)
                    is_static = has_token(member, 'static', name_node)
                    field_scope = Scope(class_scope, this_type=static_type if is_static else instance_type)
                    member_enclosing = inner + ((member_symbol,) if member_symbol else ())
                    if name_node is not None and name_node.type == 'computed_property_name':
                        work.append((name_node, class_scope, inner))
                    for child in member.named_children:
                        if child.type == 'decorator':
                            work.append((child, class_scope, member_enclosing))
                    for part in (member.child_by_field_name('type'), member.child_by_field_name('value')):
                        if part is not None:
                            work.append((part, field_scope, member_enclosing))
                elif member_type == 'class_static_block':
                    work.append((member, class_scope, inner))
                elif member_type != 'comment':
                    work.append((member, class_scope, inner))

        stack.extend(reversed(work))

    def _visit_interface(self, node, scope, enclosing, stack):
        symbol = self._symbol_at(node.child_by_field_name('name'))
        inner = enclosing + ((symbol,) if symbol else ())
        interface_scope = Scope(scope)
        declare_type_parameters(node, interface_scope)

        work = []
        body = node.child_by_field_name('body')
        for child in node.named_children:
            if child.type in ('extends_type_clause', 'type_parameters'):
                work.append((child, interface_scope, inner))
            elif body is None and child.type in INTERFACE_BODY_NODES:
                body = child
        if body is not None:
            for member in body.named_children:
                name_node = member.child_by_field_name('name')
                member_symbol = self._symbol_at(name_node)
                member_enclosing = inner + ((member_symbol,) if member_symbol else ())
                if member.type == 'property_signature':
                    type_node = member.child_by_field_name('type')
                    if type_node is not None:
                        work.append((type_node, interface_scope, member_enclosing))
                elif member.type == 'method_signature':
                    nested = []
                    self._visit_function(member, interface_scope, member_enclosing, nested, None)
                    work.extend(reversed(nested))
                elif member.type != 'comment':
                    work.append((member, interface_scope, inner))
        stack.extend(reversed(work))

    def _visit_type_alias(self, node, scope, enclosing, stack):
        symbol = self._symbol_at(node.child_by_field_name('name'))
        alias_scope = Scope(scope)
        declare_type_parameters(node, alias_scope)
        inner = enclosing + ((symbol,) if symbol else ())
        self._push(stack, [node.child_by_field_name('type_parameters'),
                           node.child_by_field_name('value')], alias_scope, inner)

    def _visit_enum(self, node, scope, enclosing, stack):
        body = node.child_by_field_name('body')
        if body is None:
            return
        for member in body.named_children:
            if member.type == 'enum_assignment':
                self._push(stack, [member.child_by_field_name('value')], scope, enclosing)

    def _visit_namespace(self, node, scope, enclosing, stack):
        name_node = node.child_by_field_name('name')
        symbol = self._symbol_at(name_node)
        if symbol is None and name_node is not None and name_node.type == 'nested_identifier':
            symbol = self._symbol_at(name_node.named_children[-1])
        inner = enclosing + ((symbol,) if symbol else ())
        self._push(stack, [node.child_by_field_name('body')], scope, inner)

    def _visit_declarator(self, node, scope, enclosing, stack):
        name_node = node.child_by_field_name('name')
        value = node.child_by_field_name('value')
        symbol = self._symbol_at(name_node) if name_node is not None and name_node.type == 'identifier' else None
        inner = enclosing + ((symbol,) if symbol else ())

        if name_node is not None and name_node.type == 'object_pattern' and value is not None:
            self._bind_destructured_keys(name_node, value, scope, inner)
        if name_node is not None and name_node.type != 'identifier':
            self._push_pattern_parts(name_node, scope, inner, stack)
        self._push(stack, [node.child_by_field_name('type'), value], scope, inner)

    def _bind_destructured_keys(self, pattern: Node, value: Node, scope: Scope, enclosing):
        """`const { m } = obj` accesses obj.m; record the key as a member reference."""
        value_type = self.types.infer(value, scope)
        if value_type is None or isinstance(value_type, ModuleType):
            # Destructured module exports behave like named imports
            return
        for child in pattern.named_children:
            key = None
            if child.type == 'shorthand_property_identifier_pattern':
                key = child
            elif child.type == 'pair_pattern':
                key = child.child_by_field_name('key')
            elif child.type == 'object_assignment_pattern':
                left = child.child_by_field_name('left')
                if left is not None and left.type == 'shorthand_property_identifier_pattern':
                    key = left
            if key is None or key.type not in ('shorthand_property_identifier_pattern', 'property_identifier'):
                continue
            member = self.types.member_of(value_type, self._text(key))
            self._record(key, member, enclosing)

    def _visit_export(self, node, scope, enclosing, stack):
        # Export clauses and `export default name` re-expose a binding, they do not use it
        parts = [child for child in node.named_children if child.type == 'decorator']
        declaration = node.child_by_field_name('declaration')
        value = node.child_by_field_name('value')
        if declaration is not None:
            parts.append(declaration)
        elif value is not None and value.type != 'identifier':
            parts.append(value)
        else:
            parts.extend(child for child in node.named_children
                         if child.type in CLASS_NODES + ('class',) + FUNCTION_LIKE)
        self._push(stack, parts, scope, enclosing)

    def _visit_index_signature(self, node, scope, enclosing, stack):
        name_node = node.child_by_field_name('name')
        self._push(stack, [c for c in node.named_children
                           if name_node is None or c.start_byte != name_node.start_byte],
                   scope, enclosing)

    # -- references ---------------------------------------------------------

    def _visit_identifier(self, node, scope, enclosing, stack):
        binding = scope.find(self._text(node), VALUE)
        if binding is None:
            return
        self._record(node, self.types.resolve_binding(binding), enclosing, binding)

    def _visit_type_identifier(self, node, scope, enclosing, stack):
        binding = scope.find(self._text(node), TYPE)
        if binding is None:
            return
        self._record(node, self.types.resolve_binding(binding), enclosing, binding)

    def _visit_nested_type(self, node, scope, enclosing, stack):
        owner, name_node = self.types._member_parts(node)
        if owner is None or name_node is None:
            return
        member = self.types.symbol_for(node, scope)
        self._record(name_node, member, enclosing)
        stack.append((owner, scope, enclosing))

    def _visit_member(self, node, scope, enclosing, stack):
        owner = node.child_by_field_name('object')
        prop = node.child_by_field_name('property')
        if owner is not None and prop is not None and prop.type in (
                'property_identifier', 'private_property_identifier'):
            owner_type = self.types.infer(owner, scope)
            if owner_type is not None:
                member = self.types.member_of(owner_type, self._text(prop))
                self._record(prop, member, enclosing)
        self._push(stack, [owner], scope, enclosing)

    def _visit_pair(self, node, scope, enclosing, stack):
        key = node.child_by_field_name('key')
        value = node.child_by_field_name('value')
        if key is not None and key.type == 'computed_property_name':
            stack.append((key, scope, enclosing))
        member_symbol = self._symbol_at(key)
        inner = enclosing + ((member_symbol,) if member_symbol else ())
        self._push(stack, [value], scope, inner)

    def _visit_jsx(self, node, scope, enclosing, stack):
        name_node = node.child_by_field_name('name')
        rest = [c for c in node.named_children if name_node is None or c.start_byte != name_node.start_byte]
        if name_node is not None:
            if name_node.type == 'identifier':
                # Lower-case tags are intrinsic elements, not bindings
                if self._text(name_node)[:1].isupper():
                    self._visit_identifier(name_node, scope, enclosing, stack)
            elif name_node.type in ('member_expression', 'nested_identifier'):
                if name_node.type == 'member_expression':
                    stack.append((name_node, scope, enclosing))
                else:
                    owner, prop = self.types._member_parts(name_node)
                    self._record(prop, self.types.symbol_for(name_node, scope), enclosing)
                    if owner is not None:
                        stack.append((owner, scope, enclosing))
        self._push(stack, rest, scope, enclosing)

    def __repr__(self):
        return f"ReferenceBinder({self.source_file.relative_path})"


def describe(reference: Reference) -> str:
    """Human-readable one-liner used in debug logs."""
    return (f"{reference.source_file.relative_path}:{reference.line}:{reference.character} "
            f"{reference.name} -> {reference.symbol.qualified_name}")


def log_references(references: List[Reference]):
    for reference in references:
        logger.debug(f"bound {describe(reference)}")
