"""End-to-end scans over small TypeScript/JavaScript projects."""
import asyncio
import json

import pytest

from deprecated_tracker.analyzer.scanner import DeprecationScanner, scan
from deprecated_tracker.errors import ScanCancelledError, ScanError
from deprecated_tracker.policy.ignore_rules import IgnoreRules
from deprecated_tracker.policy.pattern_matcher import normalize_path
from deprecated_tracker.policy.tags import CustomTag
from deprecated_tracker.policy.tracker_config import ConfigReader, DeprecatedTrackerConfig

SCENARIO_A = {
    'a.ts': '''
        export class C {
          /** @deprecated use d */
          m() {}
          d() {}
        }
    ''',
    'b.ts': '''
        import { C } from './a';
        new C().m();
    ''',
}


def path_of(root, relative):
    return normalize_path(str((root / relative).resolve()))


def run_scan(root, config=None, rules=None):
    return DeprecationScanner(root, config, rules).scan_project()


def names(items):
    return [(item.name, item.kind) for item in items]


class TestDeclarationsAndUsages:

    def test_method_declaration_and_usage(self, project):
        root = project(SCENARIO_A)
        result = run_scan(root)

        assert len(result.items) == 2
        declaration, usage = result.items
        assert declaration.name == 'm'
        assert declaration.kind == 'method'
        assert declaration.file_path == path_of(root, 'a.ts')
        assert declaration.file_name == 'a.ts'
        assert (declaration.line, declaration.character) == (3, 2)
        assert declaration.deprecation_reason == 'use d'
        assert declaration.severity == 'warning'

        assert usage.kind == 'usage'
        assert usage.file_path == path_of(root, 'b.ts')
        assert (usage.line, usage.character) == (2, 8)
        assert usage.deprecation_reason == 'use d'
        assert usage.deprecated_declaration.name == 'm'
        assert usage.deprecated_declaration.file_path == path_of(root, 'a.ts')
        assert usage.deprecated_declaration.line == 3
        assert result.files_scanned == 2
        assert result.warnings == []

    def test_ignored_usage_file(self, project):
        root = project(SCENARIO_A)
        rules = IgnoreRules.build(files=[path_of(root, 'b.ts')])
        result = run_scan(root, rules=rules)
        assert names(result.items) == [('m', 'method')]

    def test_globally_ignored_member_drops_declaration_and_usages(self, project):
        root = project(SCENARIO_A)
        result = run_scan(root, rules=IgnoreRules.build(methods_global=['m']))
        assert result.items == []

    def test_member_ignored_in_declaring_file(self, project):
        root = project(SCENARIO_A)
        rules = IgnoreRules.build(methods={path_of(root, 'a.ts'): ['m']})
        assert run_scan(root, rules=rules).items == []

    def test_member_pattern(self, project):
        root = project(SCENARIO_A)
        assert run_scan(root, rules=IgnoreRules.build(method_patterns=['?'])).items == []

    def test_severity_from_config(self, project):
        root = project(SCENARIO_A)
        result = run_scan(root, DeprecatedTrackerConfig(default_severity='error'))
        assert {item.severity for item in result.items} == {'error'}

    def test_repeated_scans_are_identical(self, project):
        root = project(SCENARIO_A)
        scanner = DeprecationScanner(root)
        assert scanner.scan_project().items == scanner.scan_project().items

    def test_declaration_without_usages(self, project):
        root = project({'lib.ts': '''
            /** @deprecated */
            export function unused() {}
        '''})
        result = run_scan(root)
        assert names(result.items) == [('unused', 'function')]
        assert result.items[0].deprecation_reason is None


class TestBinding:

    def test_same_member_name_on_other_class_is_not_a_usage(self, project):
        root = project({
            'a.ts': '''
                export class A {
                  /** @deprecated */
                  m() {}
                }
                export class B {
                  m() {}
                }
            ''',
            'b.ts': '''
                import { A, B } from './a';
                new B().m();
                new A().m();
            ''',
        })
        usages = run_scan(root).usages
        assert len(usages) == 1
        assert usages[0].line == 3

    def test_shadowing_parameter_is_not_a_usage(self, project):
        root = project({
            'lib.ts': '''
                /** @deprecated use next */
                export function old() {}
            ''',
            'app.ts': '''
                import { old } from './lib';
                function run(old: number) { return old + 1; }
                old();
            ''',
        })
        usages = run_scan(root).usages
        assert [(u.line, u.character) for u in usages] == [(3, 0)]

    def test_typed_parameter_and_this(self, project):
        root = project({
            'service.ts': '''
                export class Service {
                  /** @deprecated use fetchAll */
                  fetch() {}
                  reload() { this.fetch(); }
                }
            ''',
            'app.ts': '''
                import { Service } from './service';
                export function use(svc: Service) {
                  svc.fetch();
                }
            ''',
        })
        usages = run_scan(root).usages
        assert sorted((u.file_name, u.line) for u in usages) == [('app.ts', 3), ('service.ts', 4)]

    def test_inherited_member(self, project):
        root = project({
            'base.ts': '''
                export class Base {
                  /** @deprecated */
                  legacy() {}
                }
            ''',
            'child.ts': '''
                import { Base } from './base';
                export class Child extends Base {}
                new Child().legacy();
            ''',
        })
        usages = run_scan(root).usages
        assert len(usages) == 1
        assert usages[0].file_name == 'child.ts'
        assert usages[0].deprecated_declaration.file_name == 'base.ts'

    def test_deprecated_class_used_as_value_and_type(self, project):
        root = project({
            'old.ts': '''
                /** @deprecated use NewThing */
                export class OldThing {}
            ''',
            'app.ts': '''
                import { OldThing } from './old';
                const a: OldThing = new OldThing();
            ''',
        })
        usages = run_scan(root).usages
        assert sorted((u.line, u.character) for u in usages) == [(2, 9), (2, 24)]

    def test_interface_property(self, project):
        root = project({
            'options.ts': '''
                export interface Options {
                  /** @deprecated use retries */
                  retry?: boolean;
                  retries?: number;
                }
                export function read(o: Options) {
                  return o.retry;
                }
            ''',
        })
        result = run_scan(root)
        assert names(result.items) == [('retry', 'property'), ('retry', 'usage')]

    def test_usage_inside_deprecated_declaration_is_not_reported(self, project):
        root = project({'lib.ts': '''
            /** @deprecated */
            export function a() {}
            /** @deprecated */
            export function b() { a(); }
        '''})
        result = run_scan(root)
        assert names(result.items) == [('a', 'function'), ('b', 'function')]

    def test_object_literal_members(self, project):
        root = project({
            'a.ts': '''
                export const api = {
                  /** @deprecated use fresh */
                  old() {},
                  fresh() {},
                  v1: {
                    /** @deprecated */
                    legacy: () => 1,
                  },
                };
                api.old();
            ''',
            'b.ts': '''
                import { api } from './a';
                api.old();
                api.fresh();
                api.v1.legacy();
                const { old } = api;
            ''',
        })
        result = run_scan(root)
        declarations = sorted((d.name, d.kind, d.line, d.character) for d in result.declarations)
        assert declarations == [('legacy', 'method', 7, 4), ('old', 'method', 3, 2)]
        reasons = {d.name: d.deprecation_reason for d in result.declarations}
        assert reasons == {'old': 'use fresh', 'legacy': None}
        usages = sorted((u.file_name, u.line, u.character, u.name) for u in result.usages)
        assert usages == [
            ('a.ts', 10, 4, 'old'),
            ('b.ts', 2, 4, 'old'),
            ('b.ts', 4, 7, 'legacy'),
            ('b.ts', 5, 8, 'old'),
        ]

    def test_this_inside_object_literal_method(self, project):
        root = project({'a.ts': '''
            export const store = {
              /** @deprecated */
              reset() {},
              clear() { this.reset(); },
            };
        '''})
        usages = run_scan(root).usages
        assert [(u.name, u.line, u.character) for u in usages] == [('reset', 4, 17)]

    def test_namespace_import(self, project):
        root = project({
            'impl.ts': '''
                /** @deprecated */
                export function legacy() {}
            ''',
            'app.ts': '''
                import * as api from './impl';
                api.legacy();
            ''',
        })
        usages = run_scan(root).usages
        assert [(u.file_name, u.line, u.character) for u in usages] == [('app.ts', 2, 4)]


class TestReExports:

    def test_star_and_named_reexports(self, project):
        root = project({
            'lib/impl.ts': '''
                /** @deprecated */
                export function legacy() {}
            ''',
            'lib/index.ts': '''
                export * from './impl';
            ''',
            'lib/named.ts': '''
                export { legacy as oldName } from './impl';
            ''',
            'app.ts': '''
                import { legacy } from './lib';
                import { oldName } from './lib/named';
                legacy();
                oldName();
            ''',
        })
        usages = [u for u in run_scan(root).usages if u.file_name == 'app.ts']
        assert [u.line for u in usages] == [3, 4]
        assert {u.deprecated_declaration.file_name for u in usages} == {'impl.ts'}


class TestCommonJsAndJsx:

    def test_require_destructuring(self, project):
        root = project({
            'lib.js': '''
                /** @deprecated use run */
                function start() {}
                module.exports = { start };
            ''',
            'app.js': '''
                const { start } = require('./lib');
                start();
            ''',
        })
        usages = [u for u in run_scan(root).usages if u.file_name == 'app.js']
        assert [(u.line, u.character) for u in usages] == [(2, 0)]

    def test_jsx_element(self, project):
        root = project({
            'components.tsx': '''
                /** @deprecated use NewButton */
                export function OldButton() { return null; }
            ''',
            'app.tsx': '''
                import { OldButton } from './components';
                export const App = () => <OldButton />;
            ''',
        })
        usages = [u for u in run_scan(root).usages if u.line == 2]
        assert [(u.name, u.character) for u in usages] == [('OldButton', 26)]


class TestExternalPackages:

    @pytest.fixture
    def root(self, project):
        return project({
            'node_modules/rxjs/index.d.ts': '''
                export declare class Observable<T> {
                  /** @deprecated use an observer object */
                  subscribe(next: (value: T) => void): void;
                }
                export declare function interval(ms: number): Observable<number>;
            ''',
            'node_modules/legacy-lib/index.d.ts': '''
                /** @deprecated use newApi */
                export declare function oldApi(): void;
            ''',
            'src/local.ts': '''
                export class Local {
                  /** @deprecated local one */
                  subscribe() {}
                }
            ''',
            'src/app.ts': '''
                import { interval } from 'rxjs';
                import { oldApi } from 'legacy-lib';
                interval(1000).subscribe(() => {});
                oldApi();
            ''',
        })

    def test_trusted_package_usages_are_not_reported(self, root):
        result = run_scan(root)
        assert names(result.declarations) == [('subscribe', 'method')]
        assert result.declarations[0].file_name == 'local.ts'
        assert not [u for u in result.usages if u.name == 'subscribe']

    def test_untrusted_package_usages_are_reported(self, root):
        usages = run_scan(root).usages
        assert [(u.name, u.line) for u in usages] == [('oldApi', 4)]
        declaration = usages[0].deprecated_declaration
        assert declaration.file_name == 'index.d.ts'
        assert '/node_modules/legacy-lib/' in declaration.file_path

    def test_package_can_be_trusted_by_config(self, root):
        config = ConfigReader(root).validate_and_merge({'trustedPackages': ['legacy-lib']})
        assert 'rxjs' in config.trusted_packages
        assert run_scan(root, config).usages == []


class TestConfiguration:

    def test_invalid_exclude_pattern_is_a_warning(self, project):
        root = project(dict(SCENARIO_A))
        (root / '.deprecatedtrackerrc').write_text(json.dumps({'excludePatterns': ['[invalid']}), encoding='utf-8')
        config = ConfigReader(root).load_configuration()
        result = run_scan(root, config)
        assert len(result.items) == 2
        assert any('[invalid' in warning for warning in result.warnings)

    def test_excluded_declaring_file_still_links_usages(self, project):
        root = project({
            'lib/old.ts': '''
                /** @deprecated */
                export function old() {}
            ''',
            'app.ts': '''
                import { old } from './lib/old';
                old();
            ''',
        })
        result = run_scan(root, DeprecatedTrackerConfig(exclude_patterns=('lib/**',)))
        assert result.declarations == []
        assert [u.file_name for u in result.usages] == ['app.ts']
        assert result.usages[0].deprecated_declaration.file_name == 'old.ts'

    def test_include_patterns(self, project):
        root = project({
            'src/a.ts': '/** @deprecated */\nexport function a() {}\n',
            'scripts/b.ts': '/** @deprecated */\nexport function b() {}\n',
        })
        result = run_scan(root, DeprecatedTrackerConfig(include_patterns=('src/**',)))
        assert names(result.items) == [('a', 'function')]

    def test_custom_tag(self, project):
        root = project({'lib.ts': '''
            /** @legacy kept for v1 */
            export function sync() {}
        '''})
        assert run_scan(root).items == []
        tag = CustomTag(id='t1', tag='@legacy', label='Legacy', enabled=True, created_at=1)
        result = run_scan(root, DeprecatedTrackerConfig(custom_tags=(tag,)))
        assert names(result.items) == [('sync', 'function')]
        assert result.items[0].deprecation_reason == 'kept for v1'

    def test_ignore_deprecated_in_plain_comments(self, project):
        root = project({'lib.ts': '''
            // @deprecated plain
            export function a() {}
            /** @deprecated doc */
            export function b() {}
        '''})
        assert len(run_scan(root).items) == 2
        result = run_scan(root, DeprecatedTrackerConfig(ignore_deprecated_in_comments=True))
        assert names(result.items) == [('b', 'function')]


class TestScopes:

    @pytest.fixture
    def root(self, project):
        return project({
            'lib/old.ts': '''
                /** @deprecated */
                export function old() {}
            ''',
            'feature/use.ts': '''
                import { old } from '../lib/old';
                old();
            ''',
            'other.ts': '''
                export const unrelated = 1;
            ''',
        })

    def test_folder_scan_reports_only_folder_files(self, root):
        result = DeprecationScanner(root).scan_folder('feature')
        assert result.declarations == []
        assert [u.file_name for u in result.usages] == ['use.ts']
        assert result.files_scanned == 1

    def test_folder_outside_root(self, root, tmp_path):
        outside = tmp_path / 'elsewhere'
        outside.mkdir()
        with pytest.raises(ScanError):
            DeprecationScanner(root).scan_folder(outside)

    def test_missing_folder(self, root):
        with pytest.raises(ScanError):
            DeprecationScanner(root).scan_folder('missing')

    def test_changed_files_with_dependents(self, root):
        scanner = DeprecationScanner(root)
        only_changed = scanner.scan_files(['lib/old.ts'])
        assert names(only_changed.items) == [('old', 'function')]

        with_dependents = scanner.scan_files(['lib/old.ts'], include_dependents=True)
        assert names(with_dependents.items) == [('old', 'function'), ('old', 'usage')]
        assert with_dependents.files_scanned == 2

    def test_missing_changed_file_is_a_warning(self, root):
        result = DeprecationScanner(root).scan_files(['nope.ts'])
        assert result.items == []
        assert any('nope.ts' in warning for warning in result.warnings)


class TestFailures:

    def test_missing_root(self, tmp_path):
        with pytest.raises(ScanError):
            DeprecationScanner(tmp_path / 'missing')

    def test_syntax_error_file_is_skipped(self, project):
        files = dict(SCENARIO_A)
        files['broken.ts'] = 'export class {{{ \n'
        root = project(files)
        result = run_scan(root)
        assert len(result.items) == 2
        assert any('broken.ts' in warning for warning in result.warnings)

    def test_cancelled_scan(self, project):
        root = project(SCENARIO_A)
        scanner = DeprecationScanner(root)
        scanner.cancel()
        with pytest.raises(ScanCancelledError):
            scanner.scan_project()

    def test_empty_project(self, project):
        root = project({})
        result = run_scan(root)
        assert result.items == []
        assert result.files_scanned == 0


class TestAsyncScan:

    def test_scan_returns_items(self, project):
        root = project(SCENARIO_A)
        items = asyncio.run(scan(root))
        assert [item.kind for item in items] == ['method', 'usage']

    def test_scan_missing_root(self, tmp_path):
        with pytest.raises(ScanError):
            asyncio.run(scan(tmp_path / 'missing'))


class TestSymbolModel:

    def test_references_indexed_by_symbol_and_module_graph(self, project):
        root = project(SCENARIO_A)
        scanner = DeprecationScanner(root)
        scanner.scan_project()
        model = scanner.last_model

        method = next(s for s in model.symbols if s.qualified_name == 'C.m')
        assert [(r.file_path, r.line) for r in model.usages_of(method)] == [(path_of(root, 'b.ts'), 2)]
        assert model.module_graph.has_edge(path_of(root, 'b.ts'), path_of(root, 'a.ts'))
