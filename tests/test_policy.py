"""Tests for ignore rules, custom tags, project config and the suppression policy."""
import json

import pytest

from deprecated_tracker.policy.ignore_rules import IGNORE_FILE_NAME, IgnoreManager, IgnoreRules
from deprecated_tracker.policy.suppression import (
    SuppressionPolicy, package_name_from_path, package_name_from_specifier,
)
from deprecated_tracker.policy.tags import TagNotFoundError, TagsManager, TagValidationError
from deprecated_tracker.policy.tracker_config import (
    DEFAULT_TRUSTED_PACKAGES, ConfigReader, DeprecatedTrackerConfig,
)


class TestIgnoreManager:

    @pytest.fixture
    def manager(self, tmp_path):
        return IgnoreManager(tmp_path / 'state')

    def test_empty_snapshot_when_nothing_stored(self, manager):
        assert manager.snapshot().is_empty()

    def test_ignore_and_remove_file(self, manager):
        manager.ignore_file('/p/src\\b.ts')
        assert manager.snapshot().files == frozenset({'/p/src/b.ts'})
        manager.remove_file_ignore('/p/src/b.ts')
        assert not manager.snapshot().files

    def test_method_ignores_per_file_and_global(self, manager):
        manager.ignore_method('/p/a.ts', 'oldMethod')
        manager.ignore_method_globally('legacy')
        rules = manager.snapshot()
        assert rules.methods == {'/p/a.ts': frozenset({'oldMethod'})}
        assert rules.methods_global == frozenset({'legacy'})

        manager.remove_method_ignore('oldMethod', '/p/a.ts')
        manager.remove_method_ignore('legacy')
        rules = manager.snapshot()
        assert not rules.methods
        assert not rules.methods_global

    def test_patterns(self, manager):
        manager.add_file_pattern('**/*.spec.ts')
        manager.add_method_pattern('old*')
        rules = manager.snapshot()
        assert rules.file_patterns == ('**/*.spec.ts',)
        assert rules.method_patterns == ('old*',)
        manager.remove_file_pattern('**/*.spec.ts')
        manager.remove_method_pattern('old*')
        assert manager.snapshot().is_empty()

    def test_clear_all(self, manager):
        manager.ignore_file('/p/a.ts')
        manager.add_method_pattern('x*')
        assert manager.clear_all().is_empty()
        assert manager.snapshot().is_empty()

    def test_written_atomically_as_json(self, manager):
        manager.ignore_file('/p/a.ts')
        stored = json.loads((manager.state_dir / IGNORE_FILE_NAME).read_text(encoding='utf-8'))
        assert stored['files'] == ['/p/a.ts']
        assert not list(manager.state_dir.glob('*.tmp'))

    def test_corrupt_file_reads_as_empty(self, manager):
        manager.state_dir.mkdir(parents=True)
        (manager.state_dir / IGNORE_FILE_NAME).write_text('{not json', encoding='utf-8')
        assert manager.snapshot().is_empty()

    def test_snapshot_is_frozen(self, manager):
        snapshot = manager.ignore_file('/p/a.ts')
        manager.ignore_file('/p/b.ts')
        assert snapshot.files == frozenset({'/p/a.ts'})

    def test_snapshot_member_map_is_read_only(self, manager):
        rules = manager.ignore_method('/p/a.ts', 'old')
        with pytest.raises(TypeError):
            rules.methods['/p/b.ts'] = frozenset({'x'})
        with pytest.raises(TypeError):
            IgnoreRules().methods['/p/b.ts'] = frozenset({'x'})
        assert manager.snapshot().methods == {'/p/a.ts': frozenset({'old'})}


class TestTagsManager:

    @pytest.fixture
    def manager(self, tmp_path):
        return TagsManager(tmp_path / 'state')

    def test_add_and_list(self, manager):
        tag = manager.add_tag('@legacy', 'Legacy', 'Old API', color='#ff6b6b')
        assert tag.tag == '@legacy'
        assert tag.enabled
        assert tag.created_at > 0
        assert [t.id for t in manager.get_all_tags()] == [tag.id]
        assert manager.get_enabled_tags() == [tag]

    @pytest.mark.parametrize('tag,label', [
        ('legacy', 'Legacy'),
        ('@', 'Empty'),
        ('@param', 'Reserved'),
        ('@deprecated', 'Builtin'),
        ('@legacy', ''),
        ('@has space', 'Spaces'),
    ])
    def test_invalid_tags_rejected(self, manager, tag, label):
        with pytest.raises(TagValidationError):
            manager.add_tag(tag, label)

    def test_invalid_color_rejected(self, manager):
        with pytest.raises(TagValidationError):
            manager.add_tag('@legacy', 'Legacy', color='red')

    def test_duplicate_tag_rejected_case_insensitively(self, manager):
        manager.add_tag('@legacy', 'Legacy')
        with pytest.raises(TagValidationError):
            manager.add_tag('@Legacy', 'Legacy again')

    def test_update_toggle_and_delete(self, manager):
        tag = manager.add_tag('@legacy', 'Legacy')
        updated = manager.update_tag(tag.id, label='Old stuff', enabled=False)
        assert updated.label == 'Old stuff'
        assert not updated.enabled
        assert manager.get_enabled_tags() == []
        assert manager.toggle_tag(tag.id).enabled

        manager.delete_tag(tag.id)
        assert manager.get_all_tags() == []

    def test_unknown_id(self, manager):
        with pytest.raises(TagNotFoundError):
            manager.update_tag('missing', label='x')
        with pytest.raises(TagNotFoundError):
            manager.delete_tag('missing')


class TestConfigReader:

    def test_defaults_without_config(self, tmp_path):
        reader = ConfigReader(tmp_path)
        config = reader.load_configuration()
        assert config == DeprecatedTrackerConfig()
        assert config.default_severity == 'warning'
        assert 'rxjs' in config.trusted_packages
        assert reader.warnings == []

    def test_rc_file_wins_over_package_json(self, tmp_path):
        (tmp_path / '.deprecatedtrackerrc').write_text(json.dumps({'severity': 'error'}), encoding='utf-8')
        (tmp_path / 'package.json').write_text(
            json.dumps({'deprecatedTracker': {'severity': 'info'}}), encoding='utf-8')
        assert ConfigReader(tmp_path).load_configuration().default_severity == 'error'

    def test_package_json_section(self, tmp_path):
        (tmp_path / 'package.json').write_text(json.dumps({
            'name': 'app',
            'deprecatedTracker': {
                'trustedPackages': ['my-lib'],
                'excludePatterns': ['**/*.spec.ts'],
                'ignoreDeprecatedInComments': True,
            },
        }), encoding='utf-8')
        config = ConfigReader(tmp_path).load_configuration()
        assert config.trusted_packages == DEFAULT_TRUSTED_PACKAGES + ('my-lib',)
        assert config.exclude_patterns == ('**/*.spec.ts',)
        assert config.ignore_deprecated_in_comments

    def test_invalid_values_fall_back_with_warnings(self, tmp_path):
        (tmp_path / '.deprecatedtrackerrc').write_text(json.dumps({
            'trustedPackages': 'rxjs',
            'includePatterns': [1, 2],
            'ignoreDeprecatedInComments': 'yes',
            'severity': 'fatal',
        }), encoding='utf-8')
        reader = ConfigReader(tmp_path)
        config = reader.load_configuration()
        assert config == DeprecatedTrackerConfig()
        assert len(reader.warnings) == 4

    def test_malformed_rc_file(self, tmp_path):
        (tmp_path / '.deprecatedtrackerrc').write_text('{', encoding='utf-8')
        reader = ConfigReader(tmp_path)
        assert reader.load_configuration() == DeprecatedTrackerConfig()
        assert reader.warnings

    def test_custom_tags_attached(self, tmp_path):
        tags = TagsManager(tmp_path / 'state')
        enabled = tags.add_tag('@legacy', 'Legacy')
        tags.add_tag('@obsolete', 'Obsolete', enabled=False)
        config = ConfigReader(tmp_path).load_configuration(tags.get_all_tags())
        assert config.enabled_tags == (enabled,)


class TestPackageNames:

    @pytest.mark.parametrize('specifier,expected', [
        ('rxjs/operators', 'rxjs'),
        ('@angular/core/testing', '@angular/core'),
        ('lodash', 'lodash'),
    ])
    def test_from_specifier(self, specifier, expected):
        assert package_name_from_specifier(specifier) == expected

    def test_from_path_uses_innermost_node_modules(self):
        path = '/p/node_modules/a/node_modules/@scope/b/index.d.ts'
        assert package_name_from_path(path) == '@scope/b'
        assert package_name_from_path('/p/src/a.ts') is None


class TestSuppressionPolicy:

    def make_policy(self, config=None, rules=None, root='/p'):
        return SuppressionPolicy(config or DeprecatedTrackerConfig(), rules or IgnoreRules(), root)

    def test_include_and_exclude(self):
        policy = self.make_policy(DeprecatedTrackerConfig(
            include_patterns=('src/**',), exclude_patterns=('**/*.spec.ts',)))
        assert policy.is_file_included('/p/src/a.ts')
        assert not policy.is_file_included('/p/src/a.spec.ts')
        assert not policy.is_file_included('/p/scripts/build.ts')

    def test_only_invalid_include_patterns_match_nothing(self):
        policy = self.make_policy(DeprecatedTrackerConfig(include_patterns=('[bad',)))
        assert not policy.is_file_included('/p/src/a.ts')
        assert policy.warnings

    def test_ignored_files_absolute_relative_and_pattern(self):
        rules = IgnoreRules.build(files=['/p/src/a.ts', 'src/b.ts'], file_patterns=['**/gen/*.ts'])
        policy = self.make_policy(rules=rules)
        assert policy.is_file_ignored('/p/src/a.ts')
        assert policy.is_file_ignored('/p/src/b.ts')
        assert policy.is_file_ignored('/p/src/gen/api.ts')
        assert not policy.is_file_ignored('/p/src/c.ts')

    def test_ignored_members(self):
        rules = IgnoreRules.build(methods={'/p/a.ts': ['m']}, methods_global=['g'], method_patterns=['old*'])
        policy = self.make_policy(rules=rules)
        assert policy.is_member_ignored('/p/a.ts', 'm')
        assert not policy.is_member_ignored('/p/b.ts', 'm')
        assert policy.is_member_ignored('/p/b.ts', 'g')
        assert policy.is_member_ignored('/p/b.ts', 'oldThing')
        assert not policy.is_member_ignored('/p/b.ts', 'newThing')

    def test_trusted_packages(self):
        policy = self.make_policy()
        assert policy.is_package_trusted('rxjs')
        assert policy.is_package_trusted('rxjs/operators')
        assert policy.is_package_trusted('@angular/core')
        assert not policy.is_package_trusted('rxjs-compat')
        assert not policy.is_package_trusted('./rxjs')
        assert not policy.is_package_trusted(None)

    def test_trusted_package_paths(self):
        policy = self.make_policy()
        assert policy.is_path_in_trusted_package('/p/node_modules/rxjs/index.d.ts')
        assert policy.is_path_in_trusted_package('/p/node_modules/@types/lodash/index.d.ts')
        assert not policy.is_path_in_trusted_package('/p/node_modules/left-pad/index.d.ts')

    def test_marker_specs_include_enabled_custom_tags(self, tmp_path):
        tags = TagsManager(tmp_path)
        tags.add_tag('@legacy', 'Legacy')
        tags.add_tag('@obsolete', 'Obsolete', enabled=False)
        policy = self.make_policy(DeprecatedTrackerConfig(custom_tags=tuple(tags.get_all_tags())))
        assert policy.marker_tags == ['@deprecated', '@legacy']

    def test_marker_does_not_match_longer_tag(self):
        spec = self.make_policy().marker_specs[0]
        assert spec.matcher.match('@deprecated use x')
        assert not spec.matcher.match('@deprecatedSince 2.0')
