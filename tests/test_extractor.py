"""Tests for declaration extraction, import/export bindings and marker parsing."""
from deprecated_tracker.analyzer.classifier import DeclarationClassifier, comment_lines, parse_marker
from deprecated_tracker.analyzer.extractor import SymbolExtractor
from deprecated_tracker.analyzer.import_tracker import ASSIGNMENT_EXPORT, DEFAULT_EXPORT, ImportTracker
from deprecated_tracker.policy.suppression import MarkerSpec
from tests.conftest import parse_snippet

BUILTIN_SPECS = (MarkerSpec.for_tag('@deprecated', builtin=True),)


def extract(source, language='typescript'):
    return SymbolExtractor(parse_snippet(source, language)).extract()


def by_name(symbols):
    return {symbol.qualified_name: symbol for symbol in symbols}


class TestSymbolExtractor:

    def test_kinds_and_positions(self):
        symbols = by_name(extract('''
            export class Service {
              name: string = '';
              constructor(private readonly http: Http) {}
              fetch(): void {}
              get size(): number { return 0; }
              static create(): Service { return new Service(); }
            }
            export interface Options {
              retries: number;
              build(): void;
            }
            export function helper() {}
            export const arrow = () => 1;
            const plain = 1;
        '''))
        assert symbols['Service'].kind == 'class'
        assert (symbols['Service'].line, symbols['Service'].character) == (1, 13)
        assert symbols['Service.name'].kind == 'property'
        assert symbols['Service.http'].kind == 'property'
        assert symbols['Service.fetch'].kind == 'method'
        assert (symbols['Service.fetch'].line, symbols['Service.fetch'].character) == (4, 2)
        assert symbols['Service.size'].kind == 'property'
        assert symbols['Service.create'].is_static
        assert symbols['Options'].kind == 'interface'
        assert symbols['Options.retries'].kind == 'property'
        assert symbols['Options.build'].kind == 'method'
        assert symbols['helper'].kind == 'function'
        assert symbols['arrow'].kind == 'function'
        assert symbols['plain'].kind == 'variable'

    def test_overloads_merge_into_one_symbol(self):
        symbols = extract('''
            export function parse(value: string): number;
            export function parse(value: number): number;
            export function parse(value: any): number { return 0; }
        ''')
        parses = [s for s in symbols if s.name == 'parse']
        assert len(parses) == 1
        assert len(parses[0].anchors) == 3
        assert parses[0].line == 1

    def test_accessor_pair_is_one_property(self):
        symbols = extract('''
            class Box {
              get value() { return 1; }
              set value(v) {}
            }
        ''')
        values = [s for s in symbols if s.name == 'value']
        assert len(values) == 1
        assert values[0].kind == 'property'

    def test_namespace_members(self):
        symbols = by_name(extract('''
            export namespace Legacy {
              export function run() {}
            }
        '''))
        namespace = symbols['Legacy']
        assert namespace.kind == 'namespace'
        assert 'run' in namespace.static_members
        assert symbols['Legacy.run'].kind == 'function'

    def test_character_counts_code_points(self):
        symbols = by_name(extract('const ü = 1; export function f() {}\n'))
        assert symbols['f'].character == 29

    def test_javascript_class(self):
        symbols = by_name(extract('''
            class Widget extends Base {
              render() {}
            }
        ''', language='javascript'))
        assert symbols['Widget.render'].kind == 'method'
        assert symbols['Widget'].heritage[0][0] == 'extends'


class TestImportTracker:

    def analyze(self, source, language='typescript'):
        return ImportTracker(parse_snippet(source, language)).analyze()

    def test_es_imports(self):
        interface = self.analyze('''
            import Default, { a, b as c } from './mod';
            import * as ns from 'lib';
            import type { T } from './types';
        ''')
        imports = interface.imports
        assert imports['Default'].imported == DEFAULT_EXPORT
        assert imports['a'].imported == 'a'
        assert imports['c'].imported == 'b'
        assert imports['ns'].imported == '*'
        assert imports['T'].type_only
        assert interface.specifiers == ['./mod', 'lib', './types']

    def test_exports(self):
        interface = self.analyze('''
            export class A {}
            class Main {}
            export default Main;
            const local = 1;
            export { local as renamed };
            export { x } from './x';
            export * from './star';
            export * as grouped from './grouped';
        ''')
        exports = interface.exports
        assert exports['A'].kind == 'local'
        assert exports[DEFAULT_EXPORT].local_name == 'Main'
        assert exports['renamed'].local_name == 'local'
        assert exports['x'].kind == 'reexport' and exports['x'].source == './x'
        assert exports['grouped'].kind == 'namespace'
        assert interface.star_exports == ['./star']

    def test_commonjs(self):
        interface = self.analyze('''
            const fs = require('fs');
            const { join, resolve: res } = require('path');
            function helper() {}
            module.exports = { helper };
        ''', language='javascript')
        imports = interface.imports
        assert imports['fs'].imported == ASSIGNMENT_EXPORT
        assert imports['join'].imported == 'join'
        assert imports['res'].imported == 'resolve'
        assert interface.exports['helper'].local_name == 'helper'

    def test_export_assignment(self):
        interface = self.analyze('''
            class Legacy {}
            export = Legacy;
        ''')
        assert interface.exports[ASSIGNMENT_EXPORT].local_name == 'Legacy'


class TestMarkerParsing:

    def test_comment_lines_strip_decoration(self):
        assert comment_lines('/**\n * @deprecated use b\n */') == ['', '@deprecated use b', '']
        assert comment_lines('// @deprecated old') == ['@deprecated old']

    def test_reason_spans_continuation_lines(self):
        marker = parse_marker('/**\n * @deprecated Use newApi()\n * instead.\n * @see newApi\n */', BUILTIN_SPECS)
        assert marker.reason == 'Use newApi() instead.'
        assert marker.from_doc_comment
        assert marker.tag == '@deprecated'

    def test_marker_without_reason(self):
        marker = parse_marker('/** @deprecated */', BUILTIN_SPECS)
        assert marker is not None
        assert marker.reason is None

    def test_tag_must_start_a_line(self):
        assert parse_marker('/** This is not @deprecated at all */', BUILTIN_SPECS) is None

    def test_longer_tag_is_not_a_marker(self):
        assert parse_marker('/** @deprecatedSince 2.0 */', BUILTIN_SPECS) is None

    def test_plain_comment_marker(self):
        marker = parse_marker('// @deprecated gone soon', BUILTIN_SPECS)
        assert marker.reason == 'gone soon'
        assert not marker.from_doc_comment


class TestDeclarationClassifier:

    SOURCE = '''
        export class Api {
          /** @deprecated use fetchAll */
          fetch() {}

          // @deprecated plain comment
          load() {}

          /** Not deprecated. */
          save() {}

          /** @legacy kept for v1 clients */
          sync() {}
        }

        /** @deprecated */

        export function spaced() {}

        const x = 1; // @deprecated trailing comment of x
        export function afterTrailing() {}

        /** @deprecated decorated */
        @Component()
        export class Decorated {}
    '''

    def classify(self, specs=BUILTIN_SPECS, doc_only=False):
        symbols = SymbolExtractor(parse_snippet(self.SOURCE)).extract()
        items = DeclarationClassifier(specs, doc_only).classify(symbols)
        return {item.name: item for item in items}

    def test_markers_found(self):
        items = self.classify()
        assert items['fetch'].kind == 'method'
        assert items['fetch'].deprecation_reason == 'use fetchAll'
        assert items['load'].deprecation_reason == 'plain comment'
        assert 'save' not in items
        assert 'sync' not in items
        assert items['Decorated'].kind == 'class'

    def test_blank_lines_between_comment_and_declaration_allowed(self):
        items = self.classify()
        assert items['spaced'].deprecation_reason is None

    def test_trailing_comment_of_previous_statement_is_not_attached(self):
        assert 'afterTrailing' not in self.classify()

    def test_doc_comments_only(self):
        items = self.classify(doc_only=True)
        assert 'fetch' in items
        assert 'load' not in items

    def test_custom_tags(self):
        items = self.classify(specs=BUILTIN_SPECS + (MarkerSpec.for_tag('@legacy'),))
        assert items['sync'].deprecation_reason == 'kept for v1 clients'

    def test_variables_never_reported(self):
        symbols = SymbolExtractor(parse_snippet('/** @deprecated */\nconst value = 1;\n')).extract()
        assert DeclarationClassifier(BUILTIN_SPECS).classify(symbols) == []
