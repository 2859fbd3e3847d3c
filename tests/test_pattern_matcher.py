"""Tests for glob matching used by config and ignore rules."""
import pytest

from deprecated_tracker.policy.pattern_matcher import (
    PatternMatcher, compile_patterns, glob_to_regex, matches, normalize_path,
)


class TestGlobSemantics:

    @pytest.mark.parametrize('pattern,path', [
        ('**/*.spec.ts', 'src/app/user.spec.ts'),
        ('**/*.spec.ts', 'user.spec.ts'),
        ('src/**/legacy/*.ts', 'src/a/b/legacy/old.ts'),
        ('src/**/legacy/*.ts', 'src/legacy/old.ts'),
        ('src/generated/**', 'src/generated/api/client.ts'),
        ('src/generated/**', 'src/generated'),
        ('src/?.ts', 'src/a.ts'),
        ('src/[ab].ts', 'src/b.ts'),
        ('src/[!ab].ts', 'src/c.ts'),
    ])
    def test_matching_paths(self, pattern, path):
        assert matches(path, [pattern])

    @pytest.mark.parametrize('pattern,path', [
        ('src/*.ts', 'src/nested/a.ts'),
        ('src/?.ts', 'src/ab.ts'),
        ('src/[ab].ts', 'src/c.ts'),
        ('src/[!ab].ts', 'src/a.ts'),
        ('*.test.ts', 'src/app.ts'),
    ])
    def test_non_matching_paths(self, pattern, path):
        assert not matches(path, [pattern])

    def test_pattern_without_separator_matches_basename(self):
        """'*.test.ts' applies to files in any directory."""
        assert matches('/abs/project/src/deep/app.test.ts', ['*.test.ts'])

    def test_backslashes_are_separators(self):
        assert matches('src\\legacy\\old.ts', ['src/legacy/*.ts'])
        assert matches('src/legacy/old.ts', ['src\\legacy\\*.ts'])

    def test_empty_pattern_list_never_matches(self):
        assert not matches('src/a.ts', [])

    def test_regex_is_anchored(self):
        regex = glob_to_regex('a/*.ts')
        assert regex.startswith('^') and regex.endswith('$')


class TestInvalidPatterns:

    def test_invalid_pattern_is_dropped_with_warning(self):
        warnings = []
        compiled = compile_patterns(['[invalid', 'src/*.ts'], warnings)
        assert [p.source for p in compiled] == ['src/*.ts']
        assert len(warnings) == 1
        assert '[invalid' in warnings[0]

    def test_invalid_pattern_never_matches(self):
        assert not matches('[invalid', ['[invalid'])

    def test_matcher_reports_invalid_patterns(self):
        matcher = PatternMatcher(['[invalid', '**/*.ts'])
        assert matcher.invalid_patterns == ['[invalid']
        assert matcher.warnings
        assert matcher.matches('src/a.ts')

    def test_matcher_with_only_invalid_patterns_is_falsy(self):
        assert not PatternMatcher(['[oops'])


class TestNormalizePath:

    def test_normalizes_separators_and_dots(self):
        assert normalize_path('src\\a\\..\\b.ts') == 'src/b.ts'

    def test_empty(self):
        assert normalize_path('') == ''
