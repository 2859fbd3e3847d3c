"""Persistent history of completed scans."""
import json
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from ..models import USAGE_KIND, DeprecatedItem

HISTORY_FILE_NAME = 'scan_history.json'
DEFAULT_MAX_SCANS = 10


@dataclass
class HistoricalScan:
    """One stored scan: summary metadata plus its result items."""
    metadata: Dict[str, Any]
    items: List[DeprecatedItem]

    @property
    def scan_id(self) -> str:
        return self.metadata['scanId']

    def to_dict(self) -> Dict[str, Any]:
        return {'metadata': dict(self.metadata), 'results': [item.to_dict() for item in self.items]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HistoricalScan':
        return cls(
            metadata=dict(data['metadata']),
            items=[DeprecatedItem.from_dict(item) for item in data.get('results', [])],
        )


class ScanHistory:
    """Keep the newest ``max_scans`` scans in ``scan_history.json``.

    Entries are stored newest first. A missing or corrupt history file reads as
    an empty history.
    """

    def __init__(self, state_dir: str | Path, max_scans: int = DEFAULT_MAX_SCANS):
        self.state_dir = Path(state_dir)
        self.history_path = self.state_dir / HISTORY_FILE_NAME
        self.max_scans = max(1, max_scans)

    def save_scan(self, items: Sequence[DeprecatedItem], duration: float,
                  file_count: Optional[int] = None) -> str:
        """Record a completed scan.

        Args:
            items: Result items of the scan
            duration: Scan wall time in seconds
            file_count: Number of files scanned

        Returns:
            The new scan id
        """
        usage_count = sum(1 for item in items if item.kind == USAGE_KIND)
        metadata = {
            'scanId': str(uuid.uuid4()),
            'timestamp': int(time.time() * 1000),
            'totalItems': len(items),
            'declarationCount': len(items) - usage_count,
            'usageCount': usage_count,
            'duration': duration,
            'fileCount': file_count,
        }
        entries = self._load()
        entries.insert(0, HistoricalScan(metadata=metadata, items=list(items)).to_dict())
        self._save(entries[:self.max_scans])
        logger.debug(f"Recorded scan {metadata['scanId']} ({len(items)} items)")
        return metadata['scanId']

    def get_history(self, limit: Optional[int] = None) -> List[HistoricalScan]:
        """Stored scans, newest first, optionally truncated to ``limit``."""
        entries = self._load()
        if limit and limit > 0:
            entries = entries[:limit]
        return [HistoricalScan.from_dict(entry) for entry in entries]

    def get_history_metadata(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return [scan.metadata for scan in self.get_history(limit)]

    def get_scan_by_id(self, scan_id: str) -> Optional[HistoricalScan]:
        for entry in self._load():
            if entry['metadata'].get('scanId') == scan_id:
                return HistoricalScan.from_dict(entry)
        return None

    def delete_scan(self, scan_id: str) -> bool:
        """Remove one scan.

        Returns:
            False if no scan has that id
        """
        entries = self._load()
        remaining = [e for e in entries if e['metadata'].get('scanId') != scan_id]
        if len(remaining) == len(entries):
            return False
        self._save(remaining)
        return True

    def clear_history(self):
        self._save([])

    def _load(self) -> List[Dict[str, Any]]:
        if not self.history_path.exists():
            return []
        try:
            with open(self.history_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (IOError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read scan history from {self.history_path}: {e}")
            return []
        if not isinstance(data, list):
            logger.warning(f"Ignoring malformed scan history in {self.history_path}")
            return []
        return [entry for entry in data if isinstance(entry, dict) and isinstance(entry.get('metadata'), dict)]

    def _save(self, entries: List[Dict[str, Any]]):
        self.state_dir.mkdir(parents=True, exist_ok=True)
        temp_path = self.history_path.with_suffix('.tmp')
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(entries, f, indent=2, ensure_ascii=False)
        temp_path.replace(self.history_path)
