"""Tests for statistics, exporters and scan history."""
import csv
import io
import json
from datetime import datetime

import pytest

from deprecated_tracker.models import DeclarationRef, DeprecatedItem
from deprecated_tracker.reporting.exporter import CSV_HEADERS, ResultExporter
from deprecated_tracker.reporting.history import HISTORY_FILE_NAME, ScanHistory
from deprecated_tracker.reporting.statistics import StatisticsCalculator


def declaration(name, path='/p/a.ts', line=1, kind='method', reason=None):
    return DeprecatedItem(name=name, file_name=path.rsplit('/', 1)[-1], file_path=path,
                          line=line, character=2, kind=kind, deprecation_reason=reason)


def usage(of, path, line=1):
    return DeprecatedItem(
        name=of.name, file_name=path.rsplit('/', 1)[-1], file_path=path, line=line, character=4,
        kind='usage', deprecation_reason=of.deprecation_reason,
        deprecated_declaration=DeclarationRef(name=of.name, file_name=of.file_name,
                                              file_path=of.file_path, line=of.line),
    )


@pytest.fixture
def items():
    old = declaration('old', reason='use fresh')
    legacy = declaration('Legacy', line=5, kind='class')
    return [
        old,
        legacy,
        usage(old, '/p/b.ts', 1),
        usage(old, '/p/b.ts', 2),
        usage(old, '/p/c.ts', 3),
        usage(legacy, '/p/c.ts', 4),
    ]


class TestStatistics:

    def test_totals_and_kinds(self, items):
        stats = StatisticsCalculator().calculate_statistics(items)
        assert stats.total_items == 6
        assert stats.total_declarations == 2
        assert stats.total_usages == 4
        assert stats.by_kind == {'method': 1, 'property': 0, 'class': 1, 'interface': 0, 'function': 0}

    def test_most_used_and_quick_wins(self, items):
        stats = StatisticsCalculator().calculate_statistics(items)
        assert [(e['name'], e['usageCount']) for e in stats.top_most_used] == [('old', 3), ('Legacy', 1)]
        assert [e['name'] for e in stats.quick_wins] == ['Legacy']

    def test_hotspots_and_missing_reasons(self, items):
        stats = StatisticsCalculator().calculate_statistics(items)
        assert stats.hotspot_files[0]['count'] == 2
        assert {f['fileName'] for f in stats.hotspot_files} == {'a.ts', 'b.ts', 'c.ts'}
        assert [e['name'] for e in stats.needs_attention] == ['Legacy']

    def test_empty(self):
        data = StatisticsCalculator().calculate_statistics([]).to_dict()
        assert data['totalItems'] == 0
        assert data['topMostUsed'] == []
        assert set(data['byKind'].values()) == {0}


class TestExporter:

    def test_csv(self, items):
        content = ResultExporter().to_csv(items)
        rows = list(csv.reader(io.StringIO(content)))
        assert rows[0] == CSV_HEADERS
        assert rows[1] == ['old', 'a.ts', '1', '2', 'method', '', '', 'use fresh']
        assert rows[3] == ['old', 'b.ts', '1', '4', 'usage', 'a.ts', '1', 'use fresh']
        assert not content.endswith('\n')

    def test_csv_quotes_commas_and_quotes(self):
        item = declaration('x', reason='use "y", not x')
        line = ResultExporter().to_csv([item]).splitlines()[1]
        assert line.endswith('"use ""y"", not x"')

    def test_json(self, items):
        data = json.loads(ResultExporter().to_json(items))
        assert len(data) == 6
        assert data[2]['deprecatedDeclaration']['fileName'] == 'a.ts'

    def test_markdown(self, items):
        items.append(declaration('long', reason='x' * 60 + ' | pipe'))
        report = ResultExporter().to_markdown(items, generated_at=datetime(2024, 1, 2, 3, 4, 5))
        assert report.startswith('# Deprecated Items Report\n')
        assert '**Generated**: 2024-01-02 03:04:05' in report
        assert '- **Total Items**: 7' in report
        assert '- **Usages**: 4' in report
        assert '| old | b.ts | 1 | usage | a.ts | use fresh |' in report
        assert '| Legacy | a.ts | 5 | class | - | - |' in report
        assert '| long | a.ts | 1 | method | - | ' + 'x' * 50 + '... |' in report

    def test_markdown_without_items(self):
        report = ResultExporter().to_markdown([])
        assert '*No deprecated items found.*' in report
        assert '## Items' not in report

    def test_unknown_format(self, items):
        with pytest.raises(ValueError):
            ResultExporter().export(items, 'xml')

    def test_save_to_file(self, tmp_path):
        path = ResultExporter().save_to_file('content', tmp_path / 'reports' / 'out.csv')
        assert path.read_text(encoding='utf-8') == 'content'


class TestScanHistory:

    def test_save_and_read(self, tmp_path, items):
        history = ScanHistory(tmp_path)
        scan_id = history.save_scan(items, duration=1.5, file_count=3)

        stored = history.get_scan_by_id(scan_id)
        assert stored.items == items
        metadata = stored.metadata
        assert metadata['totalItems'] == 6
        assert metadata['declarationCount'] == 2
        assert metadata['usageCount'] == 4
        assert metadata['fileCount'] == 3
        assert metadata['duration'] == 1.5
        assert metadata['timestamp'] > 0

    def test_newest_first_and_capped(self, tmp_path, items):
        history = ScanHistory(tmp_path, max_scans=2)
        ids = [history.save_scan(items[:n], duration=0.1) for n in (1, 2, 3)]
        assert [scan.scan_id for scan in history.get_history()] == [ids[2], ids[1]]
        assert len(history.get_history_metadata(limit=1)) == 1

    def test_delete_and_clear(self, tmp_path, items):
        history = ScanHistory(tmp_path)
        first = history.save_scan(items, duration=0.1)
        second = history.save_scan(items, duration=0.1)
        assert history.delete_scan(first)
        assert not history.delete_scan(first)
        assert [scan.scan_id for scan in history.get_history()] == [second]
        history.clear_history()
        assert history.get_history() == []

    def test_corrupt_file_reads_as_empty(self, tmp_path):
        (tmp_path / HISTORY_FILE_NAME).write_text('[{"broken"', encoding='utf-8')
        history = ScanHistory(tmp_path)
        assert history.get_history() == []
        assert history.get_scan_by_id('missing') is None
