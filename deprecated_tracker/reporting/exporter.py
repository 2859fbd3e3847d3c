"""CSV, JSON and Markdown export of scan results."""
import csv
import io
import json
from datetime import datetime
from pathlib import Path
from typing import Sequence

from ..models import USAGE_KIND, DeprecatedItem

EXPORT_FORMATS = ('csv', 'json', 'markdown')
CSV_HEADERS = [
    'Name', 'File', 'Line', 'Column', 'Kind',
    'Declaration File', 'Declaration Line', 'Deprecation Reason',
]
REASON_PREVIEW_LENGTH = 50


class ResultExporter:
    """Serialize result lists for reports and CI artifacts."""

    def to_csv(self, items: Sequence[DeprecatedItem]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator='\n')
        writer.writerow(CSV_HEADERS)
        for item in items:
            declaration = item.deprecated_declaration
            writer.writerow([
                item.name,
                item.file_name,
                item.line,
                item.character,
                item.kind,
                declaration.file_name if declaration else '',
                declaration.line if declaration else '',
                item.deprecation_reason or '',
            ])
        return buffer.getvalue().rstrip('\n')

    def to_json(self, items: Sequence[DeprecatedItem]) -> str:
        return json.dumps([item.to_dict() for item in items], indent=2, ensure_ascii=False)

    def to_markdown(self, items: Sequence[DeprecatedItem], generated_at: datetime | None = None) -> str:
        """Markdown report: summary followed by one table row per item."""
        usage_count = sum(1 for item in items if item.kind == USAGE_KIND)
        generated_at = generated_at or datetime.now()

        lines = [
            '# Deprecated Items Report',
            '',
            f"**Generated**: {generated_at.strftime('%Y-%m-%d %H:%M:%S')}",
            '',
            '## Summary',
            '',
            f"- **Total Items**: {len(items)}",
            f"- **Declarations**: {len(items) - usage_count}",
            f"- **Usages**: {usage_count}",
            '',
        ]
        if not items:
            lines.append('*No deprecated items found.*')
            return '\n'.join(lines) + '\n'

        lines += [
            '## Items',
            '',
            '| Name | File | Line | Kind | Declaration | Reason |',
            '|------|------|------|------|-------------|--------|',
        ]
        for item in items:
            declaration = item.deprecated_declaration.file_name if item.deprecated_declaration else '-'
            reason = item.deprecation_reason or ''
            if len(reason) > REASON_PREVIEW_LENGTH:
                reason = reason[:REASON_PREVIEW_LENGTH] + '...'
            cells = [item.name, item.file_name, str(item.line), item.kind, declaration, reason or '-']
            lines.append('| ' + ' | '.join(cell.replace('|', '\\|') for cell in cells) + ' |')
        return '\n'.join(lines) + '\n'

    def export(self, items: Sequence[DeprecatedItem], export_format: str) -> str:
        """Serialize in one of EXPORT_FORMATS.

        Raises:
            ValueError: If the format is unknown
        """
        if export_format == 'csv':
            return self.to_csv(items)
        if export_format == 'json':
            return self.to_json(items)
        if export_format == 'markdown':
            return self.to_markdown(items)
        raise ValueError(f"Unknown export format: {export_format!r}")

    def save_to_file(self, content: str, file_path: str | Path) -> Path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding='utf-8')
        return path
