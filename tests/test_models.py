"""Tests for DeprecatedItem invariants and serialization."""
import pytest

from deprecated_tracker.models import DeclarationRef, DeprecatedItem


def declaration_ref():
    return DeclarationRef(name='m', file_name='a.ts', file_path='/p/a.ts', line=2)


class TestDeprecatedItem:

    def test_usage_requires_declaration(self):
        with pytest.raises(ValueError):
            DeprecatedItem(name='m', file_name='b.ts', file_path='/p/b.ts', line=1, character=0, kind='usage')

    def test_declaration_cannot_link_declaration(self):
        with pytest.raises(ValueError):
            DeprecatedItem(name='m', file_name='a.ts', file_path='/p/a.ts', line=1, character=0,
                           kind='method', deprecated_declaration=declaration_ref())

    def test_unknown_kind_and_severity(self):
        with pytest.raises(ValueError):
            DeprecatedItem(name='m', file_name='a.ts', file_path='/p/a.ts', line=1, character=0, kind='enum')
        with pytest.raises(ValueError):
            DeprecatedItem(name='m', file_name='a.ts', file_path='/p/a.ts', line=1, character=0,
                           kind='method', severity='fatal')

    def test_positions_are_validated(self):
        with pytest.raises(ValueError):
            DeprecatedItem(name='m', file_name='a.ts', file_path='/p/a.ts', line=0, character=0, kind='method')

    def test_end_character(self):
        item = DeprecatedItem(name='oldMethod', file_name='a.ts', file_path='/p/a.ts',
                              line=3, character=4, kind='method')
        assert item.end_character == 13

    def test_to_dict_uses_camel_case_and_omits_unset(self):
        item = DeprecatedItem(name='m', file_name='b.ts', file_path='/p/b.ts', line=5, character=8,
                              kind='usage', severity='warning', deprecation_reason='use n',
                              deprecated_declaration=declaration_ref())
        data = item.to_dict()
        assert data == {
            'name': 'm',
            'fileName': 'b.ts',
            'filePath': '/p/b.ts',
            'line': 5,
            'character': 8,
            'kind': 'usage',
            'severity': 'warning',
            'deprecationReason': 'use n',
            'deprecatedDeclaration': {'name': 'm', 'fileName': 'a.ts', 'filePath': '/p/a.ts', 'line': 2},
        }
        assert DeprecatedItem.from_dict(data) == item

        bare = DeprecatedItem(name='C', file_name='a.ts', file_path='/p/a.ts', line=1, character=6, kind='class')
        assert 'severity' not in bare.to_dict()
        assert 'deprecatedDeclaration' not in bare.to_dict()

    def test_with_severity_returns_copy(self):
        item = DeprecatedItem(name='C', file_name='a.ts', file_path='/p/a.ts', line=1, character=6, kind='class')
        updated = item.with_severity('error')
        assert updated.severity == 'error'
        assert item.severity is None
