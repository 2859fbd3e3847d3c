"""Declaration extraction from TypeScript/JavaScript syntax trees."""
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from tree_sitter import Node, Tree

CLASS_NODES = ('class_declaration', 'abstract_class_declaration')
FUNCTION_NODES = ('function_declaration', 'generator_function_declaration', 'function_signature')
FUNCTION_VALUE_NODES = ('arrow_function', 'function_expression', 'function', 'generator_function')
VARIABLE_NODES = ('lexical_declaration', 'variable_declaration')
NAMESPACE_NODES = ('internal_module', 'module')
WRAPPER_NODES = ('export_statement', 'ambient_declaration')

METHOD_MEMBER_NODES = ('method_definition', 'method_signature', 'abstract_method_signature')
FIELD_MEMBER_NODES = ('public_field_definition', 'field_definition')
INTERFACE_BODY_NODES = ('interface_body', 'object_type')
OBJECT_WRAPPER_NODES = ('parenthesized_expression', 'satisfies_expression', 'as_expression')

# Symbol kinds that never produce result items on their own
INTERNAL_KINDS = ('variable', 'enum', 'type_alias', 'namespace')


@dataclass(eq=False)
class SourceFile:
    """One parsed input file. Immutable for the lifetime of a scan."""
    path: str
    relative_path: str
    source: bytes
    tree: Tree
    language: str
    is_external: bool = False

    @property
    def display_name(self) -> str:
        return os.path.basename(self.path)

    @property
    def is_declaration_file(self) -> bool:
        return self.path.endswith(('.d.ts', '.d.mts', '.d.cts'))

    def text(self, node: Node) -> str:
        return self.source[node.start_byte:node.end_byte].decode('utf-8', errors='replace')

    def position(self, node: Node) -> Tuple[int, int]:
        """1-based line and 0-based character column of a node's start."""
        row, byte_column = node.start_point
        line_start = node.start_byte - byte_column
        prefix = self.source[line_start:node.start_byte].decode('utf-8', errors='replace')
        return row + 1, len(prefix)


@dataclass
class DeprecationMarker:
    """A deprecation tag found in a declaration's leading comment."""
    tag: str
    reason: Optional[str] = None
    from_doc_comment: bool = True


@dataclass(eq=False)
class Symbol:
    """A named declaration addressable by (file, position).

    Attributes:
        name: Declared name as written
        kind: method, property, class, interface, function, or one of INTERNAL_KINDS
        source_file: File containing the first declaration
        name_node: Name token of the first declaration
        declaration: Declaring node (class_declaration, method_definition, ...)
        anchors: Nodes whose leading comments document this symbol, one per
            merged declaration (overloads, accessor pairs, interface merging)
        container: Owning class, interface, namespace, or the variable/property
            holding an object literal
        type_node: Annotation for properties/variables, return type for callables
        value_node: Initializer for properties/variables
        heritage: ('extends' | 'implements', node) pairs for classes/interfaces
    """
    name: str
    kind: str
    source_file: SourceFile
    name_node: Node
    declaration: Node
    anchors: List[Node] = field(default_factory=list)
    container: Optional['Symbol'] = None
    is_static: bool = False
    type_node: Optional[Node] = None
    value_node: Optional[Node] = None
    heritage: List[Tuple[str, Node]] = field(default_factory=list)
    members: Dict[str, 'Symbol'] = field(default_factory=dict)
    static_members: Dict[str, 'Symbol'] = field(default_factory=dict)

    def __post_init__(self):
        self.line, self.character = self.source_file.position(self.name_node)

    def __repr__(self):
        return f"Symbol({self.kind} {self.qualified_name} @ {self.id})"

    @property
    def file_path(self) -> str:
        return self.source_file.path

    @property
    def id(self) -> str:
        return f"{self.source_file.path}:{self.line}:{self.character}"

    @property
    def qualified_name(self) -> str:
        if self.container is not None:
            return f"{self.container.qualified_name}.{self.name}"
        return self.name

    @property
    def is_external(self) -> bool:
        return self.source_file.is_external

    @property
    def is_callable(self) -> bool:
        return self.kind in ('function', 'method')


def member_name(name_node: Node, source_file: SourceFile) -> Optional[str]:
    """Static name of a class/interface member, or None for computed names."""
    if name_node is None:
        return None
    if name_node.type in ('property_identifier', 'private_property_identifier',
                          'identifier', 'type_identifier', 'number'):
        return source_file.text(name_node)
    if name_node.type == 'string':
        return source_file.text(name_node)[1:-1]
    return None


def object_literal(value: Optional[Node]) -> Optional[Node]:
    """The object literal a value denotes, looking through parentheses, `satisfies` and `as const`."""
    while value is not None and value.type in OBJECT_WRAPPER_NODES:
        if value.type == 'as_expression' and value.named_child_count != 1:
            return None
        value = value.named_children[0] if value.named_child_count else None
    return value if value is not None and value.type == 'object' else None


def anchor_for(node: Node) -> Node:
    """Outermost wrapper (export/declare/variable statement) owning a declaration."""
    anchor = node
    if anchor.type == 'variable_declarator' and anchor.parent is not None:
        anchor = anchor.parent
    while anchor.parent is not None and anchor.parent.type in WRAPPER_NODES:
        anchor = anchor.parent
    return anchor


def has_token(node: Node, token: str, before: Optional[Node] = None) -> bool:
    """True if ``node`` has an anonymous child ``token`` (optionally before ``before``)."""
    for child in node.children:
        if before is not None and child.start_byte >= before.start_byte:
            break
        if child.type == token:
            return True
    return False


class SymbolExtractor:
    """Extract classes, interfaces, functions, members and module variables."""

    def __init__(self, source_file: SourceFile):
        """Initialize extractor for one parsed file.

        Args:
            source_file: Parsed file to extract declarations from
        """
        self.source_file = source_file
        self.symbols: List[Symbol] = []
        self.by_name_start: Dict[int, Symbol] = {}
        self._merge_keys: Dict[tuple, Symbol] = {}

    def extract(self) -> List[Symbol]:
        """Walk the tree and collect declarations in source order.

        Returns:
            Symbols in discovery order (containers before their members)
        """
        root = self.source_file.tree.root_node
        # (node, namespace container, at module level)
        stack: List[Tuple[Node, Optional[Symbol], bool]] = [(root, None, True)]

        while stack:
            node, namespace, module_level = stack.pop()
            node_type = node.type
            children_level = False
            child_namespace = None

            if node_type in CLASS_NODES:
                self._extract_class(node, namespace if module_level else None)
            elif node_type == 'interface_declaration':
                self._extract_interface(node, namespace if module_level else None)
                continue
            elif node_type in FUNCTION_NODES:
                self._extract_function(node, namespace if module_level else None)
            elif node_type in VARIABLE_NODES and module_level:
                self._extract_variables(node, namespace)
            elif node_type in ('enum_declaration', 'type_alias_declaration'):
                kind = 'enum' if node_type == 'enum_declaration' else 'type_alias'
                self._add_simple(node, kind, namespace if module_level else None)
                continue
            elif node_type in NAMESPACE_NODES:
                ns = self._extract_namespace(node, namespace if module_level else None)
                body = node.child_by_field_name('body')
                if body is not None:
                    for child in reversed(body.named_children):
                        stack.append((child, ns, module_level))
                continue
            elif node_type in ('program',) + WRAPPER_NODES:
                children_level = module_level
                child_namespace = namespace

            for child in reversed(node.named_children):
                stack.append((child, child_namespace, children_level))

        return self.symbols

    def _register(self, symbol: Symbol, merge_key: Optional[tuple] = None) -> Symbol:
        """Add a symbol, or merge its declaration into an earlier one with the same key."""
        if merge_key is not None:
            existing = self._merge_keys.get(merge_key)
            if existing is not None:
                existing.anchors.extend(symbol.anchors)
                if existing.type_node is None:
                    existing.type_node = symbol.type_node
                self.by_name_start[symbol.name_node.start_byte] = existing
                return existing
            self._merge_keys[merge_key] = symbol
        self.symbols.append(symbol)
        self.by_name_start[symbol.name_node.start_byte] = symbol
        return symbol

    def _new_symbol(self, name_node: Node, kind: str, declaration: Node,
                    container: Optional[Symbol] = None, anchor: Optional[Node] = None,
                    **kwargs) -> Symbol:
        return Symbol(
            name=self.source_file.text(name_node),
            kind=kind,
            source_file=self.source_file,
            name_node=name_node,
            declaration=declaration,
            anchors=[anchor if anchor is not None else anchor_for(declaration)],
            container=container,
            **kwargs
        )

    def _scope_key(self, declaration: Node) -> tuple:
        parent = anchor_for(declaration).parent
        if parent is None:
            return (0, 0)
        return (parent.start_byte, parent.end_byte)

    def _attach_to_namespace(self, symbol: Symbol, namespace: Optional[Symbol]):
        if namespace is not None and symbol.name not in namespace.static_members:
            namespace.static_members[symbol.name] = symbol

    def _add_simple(self, node: Node, kind: str, namespace: Optional[Symbol]) -> Optional[Symbol]:
        name_node = node.child_by_field_name('name')
        if name_node is None:
            return None
        value = node.child_by_field_name('value') if kind == 'type_alias' else None
        symbol = self._register(self._new_symbol(name_node, kind, node, container=namespace,
                                                 value_node=value))
        self._attach_to_namespace(symbol, namespace)
        return symbol

    def _extract_namespace(self, node: Node, namespace: Optional[Symbol]) -> Optional[Symbol]:
        name_node = node.child_by_field_name('name')
        if name_node is None or name_node.type not in ('identifier', 'nested_identifier'):
            # declare module 'x' { ... } and declare global { ... }
            return namespace
        if name_node.type == 'nested_identifier':
            # namespace A.B {} : track the innermost name
            name_node = name_node.named_children[-1]
        key = self._scope_key(node) + (self.source_file.text(name_node), 'namespace')
        symbol = self._register(self._new_symbol(name_node, 'namespace', node, container=namespace), key)
        self._attach_to_namespace(symbol, namespace)
        return symbol

    def _extract_function(self, node: Node, namespace: Optional[Symbol]):
        name_node = node.child_by_field_name('name')
        if name_node is None:
            return
        key = self._scope_key(node) + (self.source_file.text(name_node), 'function')
        symbol = self._new_symbol(name_node, 'function', node, container=namespace,
                                  type_node=node.child_by_field_name('return_type'))
        symbol = self._register(symbol, key)
        self._attach_to_namespace(symbol, namespace)

    def _extract_variables(self, node: Node, namespace: Optional[Symbol]):
        for declarator in node.named_children:
            if declarator.type != 'variable_declarator':
                continue
            name_node = declarator.child_by_field_name('name')
            if name_node is None or name_node.type != 'identifier':
                continue
            value = declarator.child_by_field_name('value')
            type_node = declarator.child_by_field_name('type')
            kind = 'variable'
            if value is not None and value.type in FUNCTION_VALUE_NODES:
                kind = 'function'
                if type_node is None:
                    type_node = value.child_by_field_name('return_type')
            symbol = self._register(self._new_symbol(
                name_node, kind, declarator, container=namespace,
                type_node=type_node, value_node=value,
            ))
            self._attach_to_namespace(symbol, namespace)
            literal = object_literal(value)
            if literal is not None:
                self._extract_object_members(symbol, literal)

    def _extract_class(self, node: Node, namespace: Optional[Symbol]):
        name_node = node.child_by_field_name('name')
        if name_node is None:
            return
        symbol = self._register(self._new_symbol(name_node, 'class', node, container=namespace))
        self._attach_to_namespace(symbol, namespace)

        for child in node.named_children:
            if child.type != 'class_heritage':
                continue
            clauses = [c for c in child.named_children]
            if clauses and clauses[0].type not in ('extends_clause', 'implements_clause'):
                # JavaScript grammar: class_heritage wraps the extends expression directly
                symbol.heritage.append(('extends', clauses[0]))
                continue
            for clause in clauses:
                relation = 'extends' if clause.type == 'extends_clause' else 'implements'
                for target in clause.named_children:
                    if target.type == 'type_arguments':
                        continue
                    symbol.heritage.append((relation, target))

        body = node.child_by_field_name('body')
        if body is not None:
            self._extract_class_members(symbol, body)

    def _extract_class_members(self, owner: Symbol, body: Node):
        for member in body.named_children:
            if member.type in METHOD_MEMBER_NODES:
                name_node = member.child_by_field_name('name')
                name = member_name(name_node, self.source_file)
                if name is None:
                    continue
                if name == 'constructor':
                    self._extract_parameter_properties(owner, member)
                    continue
                is_accessor = has_token(member, 'get', name_node) or has_token(member, 'set', name_node)
                kind = 'property' if is_accessor else 'method'
                self._add_member(owner, member, name_node, name, kind,
                                 is_static=has_token(member, 'static', name_node),
                                 type_node=member.child_by_field_name('return_type'))
            elif member.type in FIELD_MEMBER_NODES:
                name_node = member.child_by_field_name('name') or member.child_by_field_name('property')
                name = member_name(name_node, self.source_file)
                if name is None:
                    continue
                self._add_member(owner, member, name_node, name, 'property',
                                 is_static=has_token(member, 'static', name_node),
                                 type_node=member.child_by_field_name('type'),
                                 value_node=member.child_by_field_name('value'))

    def _extract_parameter_properties(self, owner: Symbol, constructor: Node):
        """TypeScript `constructor(private svc: Service)` declares a property."""
        params = constructor.child_by_field_name('parameters')
        if params is None:
            return
        for param in params.named_children:
            if param.type not in ('required_parameter', 'optional_parameter'):
                continue
            is_property = any(
                c.type in ('accessibility_modifier', 'readonly', 'override_modifier')
                for c in param.children
            )
            pattern = param.child_by_field_name('pattern')
            if not is_property or pattern is None or pattern.type != 'identifier':
                continue
            self._add_member(owner, param, pattern, self.source_file.text(pattern), 'property',
                             type_node=param.child_by_field_name('type'), anchor=param)

    def _extract_object_members(self, owner: Symbol, literal: Node):
        """Methods and properties of an object literal become members of ``owner``.

        Function-valued properties count as methods. A nested literal's members
        attach to the property holding it, so ``api.v1.old`` resolves too.
        """
        for member in literal.named_children:
            if member.type == 'method_definition':
                name_node = member.child_by_field_name('name')
                name = member_name(name_node, self.source_file)
                if name is None:
                    continue
                is_accessor = has_token(member, 'get', name_node) or has_token(member, 'set', name_node)
                self._add_member(owner, member, name_node, name,
                                 'property' if is_accessor else 'method',
                                 type_node=member.child_by_field_name('return_type'))
            elif member.type == 'pair':
                name_node = member.child_by_field_name('key')
                name = member_name(name_node, self.source_file)
                if name is None:
                    continue
                value = member.child_by_field_name('value')
                is_function = value is not None and value.type in FUNCTION_VALUE_NODES
                symbol = self._add_member(
                    owner, member, name_node, name, 'method' if is_function else 'property',
                    type_node=value.child_by_field_name('return_type') if is_function else None,
                    value_node=value,
                )
                nested = object_literal(value)
                if nested is not None:
                    self._extract_object_members(symbol, nested)

    def _add_member(self, owner: Symbol, node: Node, name_node: Node, name: str, kind: str,
                    is_static: bool = False, type_node: Optional[Node] = None,
                    value_node: Optional[Node] = None, anchor: Optional[Node] = None) -> Symbol:
        symbol = Symbol(
            name=name,
            kind=kind,
            source_file=self.source_file,
            name_node=name_node,
            declaration=node,
            anchors=[anchor if anchor is not None else node],
            container=owner,
            is_static=is_static,
            type_node=type_node,
            value_node=value_node,
        )
        key = ('member', owner.name_node.start_byte, name, is_static)
        symbol = self._register(symbol, key)
        table = owner.static_members if is_static else owner.members
        table.setdefault(name, symbol)
        return symbol

    def _extract_interface(self, node: Node, namespace: Optional[Symbol]):
        name_node = node.child_by_field_name('name')
        if name_node is None:
            return
        key = self._scope_key(node) + (self.source_file.text(name_node), 'interface')
        symbol = self._register(self._new_symbol(name_node, 'interface', node, container=namespace), key)
        self._attach_to_namespace(symbol, namespace)

        body = node.child_by_field_name('body')
        for child in node.named_children:
            if child.type == 'extends_type_clause':
                for target in child.named_children:
                    symbol.heritage.append(('extends', target))
            elif body is None and child.type in INTERFACE_BODY_NODES:
                body = child
        if body is None:
            return

        for member in body.named_children:
            if member.type == 'property_signature':
                name_node = member.child_by_field_name('name')
                name = member_name(name_node, self.source_file)
                if name is not None:
                    self._add_member(symbol, member, name_node, name, 'property',
                                     type_node=member.child_by_field_name('type'))
            elif member.type == 'method_signature':
                name_node = member.child_by_field_name('name')
                name = member_name(name_node, self.source_file)
                if name is not None:
                    is_accessor = (has_token(member, 'get', name_node)
                                   or has_token(member, 'set', name_node))
                    self._add_member(symbol, member, name_node, name,
                                     'property' if is_accessor else 'method',
                                     type_node=member.child_by_field_name('return_type'))
