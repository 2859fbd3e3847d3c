"""Scan configuration value and the project config file reader."""
import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from ..models import SEVERITIES
from .tags import CustomTag

CONFIG_FILE_NAME = '.deprecatedtrackerrc'
PACKAGE_JSON_CONFIG_KEY = 'deprecatedTracker'

DEFAULT_TRUSTED_PACKAGES = (
    'rxjs', 'lodash', 'underscore', 'moment', 'axios', 'react', 'vue', '@angular', '@types',
)
DEFAULT_SEVERITY = 'warning'


@dataclass(frozen=True)
class DeprecatedTrackerConfig:
    """Immutable settings for one scan.

    Attributes:
        trusted_packages: Package names whose declarations are never reported
        include_patterns: When non-empty, only matching files are scanned
        exclude_patterns: Matching files are never scanned
        ignore_deprecated_in_comments: Only doc comments (/** */) carry markers
        default_severity: Severity for items without an explicit one
        custom_tags: User-defined marker tags (only enabled ones are used)
    """
    trusted_packages: Tuple[str, ...] = DEFAULT_TRUSTED_PACKAGES
    include_patterns: Tuple[str, ...] = ()
    exclude_patterns: Tuple[str, ...] = ()
    ignore_deprecated_in_comments: bool = False
    default_severity: str = DEFAULT_SEVERITY
    custom_tags: Tuple[CustomTag, ...] = field(default=())

    def __post_init__(self):
        if self.default_severity not in SEVERITIES:
            raise ValueError(f"Unknown severity: {self.default_severity!r}")

    @property
    def enabled_tags(self) -> Tuple[CustomTag, ...]:
        return tuple(tag for tag in self.custom_tags if tag.enabled)

    def with_custom_tags(self, tags: Iterable[CustomTag]) -> 'DeprecatedTrackerConfig':
        return replace(self, custom_tags=tuple(tags))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'trustedPackages': list(self.trusted_packages),
            'includePatterns': list(self.include_patterns),
            'excludePatterns': list(self.exclude_patterns),
            'ignoreDeprecatedInComments': self.ignore_deprecated_in_comments,
            'severity': self.default_severity,
        }


def _string_list(value: Any) -> Optional[List[str]]:
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return value
    return None


class ConfigReader:
    """Load DeprecatedTrackerConfig from a project directory.

    Lookup order: ``.deprecatedtrackerrc`` (JSON), then the ``deprecatedTracker``
    key of ``package.json``, then defaults. Invalid values are reported in
    ``warnings`` and replaced by their defaults.
    """

    def __init__(self, project_root: str | Path):
        self.project_root = Path(project_root)
        self.warnings: List[str] = []

    def _warn(self, message: str):
        logger.warning(message)
        self.warnings.append(message)

    def load_configuration(self, custom_tags: Iterable[CustomTag] = ()) -> DeprecatedTrackerConfig:
        """Read and validate the project configuration.

        Args:
            custom_tags: Tags from the tags store to attach to the config

        Returns:
            Validated configuration
        """
        raw = self._load_rc_file()
        if raw is None:
            raw = self._load_from_package_json()
        config = self.validate_and_merge(raw or {})
        return config.with_custom_tags(custom_tags)

    def _load_rc_file(self) -> Optional[Dict]:
        config_path = self.project_root / CONFIG_FILE_NAME
        if not config_path.exists():
            return None
        try:
            data = json.loads(config_path.read_text(encoding='utf-8'))
        except (IOError, OSError, json.JSONDecodeError) as e:
            self._warn(f"Failed to load configuration from {CONFIG_FILE_NAME}: {e}")
            return None
        if not isinstance(data, dict):
            self._warn(f"Ignoring {CONFIG_FILE_NAME}: expected a JSON object")
            return None
        return data

    def _load_from_package_json(self) -> Optional[Dict]:
        package_json = self.project_root / 'package.json'
        if not package_json.exists():
            return None
        try:
            data = json.loads(package_json.read_text(encoding='utf-8'))
        except (IOError, OSError, json.JSONDecodeError) as e:
            self._warn(f"Failed to load configuration from package.json: {e}")
            return None
        section = data.get(PACKAGE_JSON_CONFIG_KEY) if isinstance(data, dict) else None
        return section if isinstance(section, dict) else None

    def validate_and_merge(self, raw: Dict) -> DeprecatedTrackerConfig:
        """Merge raw settings over the defaults.

        User ``trustedPackages`` extend the default list rather than replace it.
        """
        values: Dict[str, Any] = {}

        if 'trustedPackages' in raw:
            trusted = _string_list(raw['trustedPackages'])
            if trusted is None:
                self._warn("Invalid trustedPackages configuration. Expected array of strings.")
            else:
                merged = list(DEFAULT_TRUSTED_PACKAGES)
                merged.extend(p for p in trusted if p not in merged)
                values['trusted_packages'] = tuple(merged)

        for key, attr in (('excludePatterns', 'exclude_patterns'),
                          ('includePatterns', 'include_patterns')):
            if key in raw:
                patterns = _string_list(raw[key])
                if patterns is None:
                    self._warn(f"Invalid {key} configuration. Expected array of strings.")
                else:
                    values[attr] = tuple(patterns)

        if 'ignoreDeprecatedInComments' in raw:
            flag = raw['ignoreDeprecatedInComments']
            if isinstance(flag, bool):
                values['ignore_deprecated_in_comments'] = flag
            else:
                self._warn("Invalid ignoreDeprecatedInComments configuration. Expected boolean.")

        if 'severity' in raw:
            severity = raw['severity']
            if severity in SEVERITIES:
                values['default_severity'] = severity
            else:
                self._warn('Invalid severity configuration. Expected "info", "warning", or "error".')

        return DeprecatedTrackerConfig(**values)
