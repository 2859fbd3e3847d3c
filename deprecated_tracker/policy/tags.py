"""User-defined deprecation tags and their JSON store."""
import json
import re
import time
import uuid
from dataclasses import dataclass, asdict, replace
from pathlib import Path
from typing import Dict, List, Optional

from loguru import logger

DEFAULT_TAG_COLOR = '#4ecdc4'
TAGS_FILE_NAME = 'custom_tags.json'
TAGS_FORMAT_VERSION = '1.0.0'

_COLOR_RE = re.compile(r'^#([0-9a-f]{6}|[0-9a-f]{3})$', re.IGNORECASE)

# Standard JSDoc tags that may not be redefined as deprecation markers
RESERVED_JSDOC_TAGS = (
    '@param', '@returns', '@return', '@type', '@typedef', '@template', '@see',
    '@link', '@example', '@throws', '@private', '@public', '@protected',
    '@readonly', '@override', '@package', '@internal', '@alpha', '@beta',
    '@module', '@namespace', '@enum', '@class', '@interface', '@function',
    '@method', '@property', '@const', '@var', '@constructor', '@extends',
    '@implements', '@augments', '@memberof', '@description', '@summary',
    '@since', '@version', '@author', '@license', '@todo', '@callback',
)


class TagValidationError(ValueError):
    """Raised when a custom tag definition is invalid."""


class TagNotFoundError(LookupError):
    """Raised when a tag id does not exist in the store."""


@dataclass(frozen=True)
class CustomTag:
    """A user-defined marker that deprecates declarations like @deprecated."""
    id: str
    tag: str
    label: str
    description: str = ''
    enabled: bool = True
    color: str = DEFAULT_TAG_COLOR
    created_at: int = 0

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['createdAt'] = data.pop('created_at')
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'CustomTag':
        return cls(
            id=str(data['id']),
            tag=str(data['tag']),
            label=str(data.get('label', '')),
            description=str(data.get('description', '')),
            enabled=bool(data.get('enabled', True)),
            color=str(data.get('color') or DEFAULT_TAG_COLOR),
            created_at=int(data.get('createdAt', 0)),
        )


def normalize_tag(tag: str) -> str:
    """Lower-case tag text without the leading '@'."""
    tag = tag.strip()
    if tag.startswith('@'):
        tag = tag[1:]
    return tag.strip().lower()


def validate_tag_input(tag: str, label: Optional[str], color: Optional[str] = None):
    """Validate a tag definition.

    Raises:
        TagValidationError: If any field is invalid
    """
    if not isinstance(tag, str) or not tag.strip():
        raise TagValidationError("Tag name is required")
    if not tag.strip().startswith('@'):
        raise TagValidationError("Tag must start with @")
    if not re.fullmatch(r'@[\w$-]+', tag.strip()):
        raise TagValidationError("Tag may only contain letters, digits, '_', '$' and '-'")

    normalized = normalize_tag(tag)
    for reserved in RESERVED_JSDOC_TAGS:
        if normalize_tag(reserved) == normalized:
            raise TagValidationError(
                f'Tag "{tag}" conflicts with reserved JSDoc tag "{reserved}". '
                'Please choose a different name.'
            )
    if normalized == 'deprecated':
        raise TagValidationError("@deprecated is built in and always enabled")

    if not label or not label.strip():
        raise TagValidationError("Label is required")
    if color and not _COLOR_RE.match(color.strip()):
        raise TagValidationError("Color must be a valid hex value")


class TagsManager:
    """Persist custom tags as JSON inside the project state directory."""

    def __init__(self, state_dir: str | Path):
        """Initialize the store.

        Args:
            state_dir: Directory holding custom_tags.json (created on first write)
        """
        self.state_dir = Path(state_dir)
        self.tags_path = self.state_dir / TAGS_FILE_NAME

    def _read(self) -> List[CustomTag]:
        if not self.tags_path.exists():
            return []
        try:
            with open(self.tags_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (IOError, json.JSONDecodeError) as e:
            logger.warning(f"Could not read custom tags from {self.tags_path}: {e}")
            return []

        tags = []
        for entry in data.get('tags', []) if isinstance(data, dict) else []:
            try:
                tags.append(CustomTag.from_dict(entry))
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Skipping malformed custom tag entry: {entry!r}")
        return tags

    def _write(self, tags: List[CustomTag]):
        self.state_dir.mkdir(parents=True, exist_ok=True)
        data = {
            'version': TAGS_FORMAT_VERSION,
            'tags': [tag.to_dict() for tag in tags],
        }
        temp_path = self.tags_path.with_suffix('.tmp')
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        temp_path.replace(self.tags_path)

    def get_all_tags(self) -> List[CustomTag]:
        return self._read()

    def get_enabled_tags(self) -> List[CustomTag]:
        return [tag for tag in self._read() if tag.enabled]

    def get_tag(self, tag_id: str) -> CustomTag:
        for tag in self._read():
            if tag.id == tag_id:
                return tag
        raise TagNotFoundError("Tag not found")

    def add_tag(self, tag: str, label: str, description: str = '',
                enabled: bool = True, color: Optional[str] = None,
                tag_id: Optional[str] = None) -> CustomTag:
        """Create and persist a new tag.

        Raises:
            TagValidationError: If the input is invalid or the tag already exists
        """
        validate_tag_input(tag, label, color)
        tags = self._read()
        normalized = normalize_tag(tag)
        if any(normalize_tag(existing.tag) == normalized for existing in tags):
            raise TagValidationError(f"Tag {tag} already exists")

        new_tag = CustomTag(
            id=tag_id or f"{normalized}-{uuid.uuid4()}",
            tag=tag.strip(),
            label=label.strip(),
            description=(description or '').strip(),
            enabled=enabled,
            color=(color or DEFAULT_TAG_COLOR).strip(),
            created_at=int(time.time() * 1000),
        )
        tags.append(new_tag)
        self._write(tags)
        return new_tag

    def update_tag(self, tag_id: str, tag: Optional[str] = None, label: Optional[str] = None,
                   description: Optional[str] = None, enabled: Optional[bool] = None,
                   color: Optional[str] = None) -> CustomTag:
        """Update fields of an existing tag; None leaves a field unchanged.

        Raises:
            TagNotFoundError: If no tag has ``tag_id``
            TagValidationError: If the updated values are invalid
        """
        tags = self._read()
        index = next((i for i, t in enumerate(tags) if t.id == tag_id), None)
        if index is None:
            raise TagNotFoundError("Tag not found")

        current = tags[index]
        changes = {}
        if tag is not None:
            validate_tag_input(tag, label if label is not None else current.label)
            normalized = normalize_tag(tag)
            if any(i != index and normalize_tag(t.tag) == normalized for i, t in enumerate(tags)):
                raise TagValidationError(f"Tag {tag} already exists")
            changes['tag'] = tag.strip()
        if label is not None:
            if not label.strip():
                raise TagValidationError("Label is required")
            changes['label'] = label.strip()
        if description is not None:
            changes['description'] = description.strip()
        if enabled is not None:
            changes['enabled'] = enabled
        if color is not None:
            if not _COLOR_RE.match(color.strip()):
                raise TagValidationError("Color must be a valid hex value")
            changes['color'] = color.strip()

        tags[index] = replace(current, **changes)
        self._write(tags)
        return tags[index]

    def toggle_tag(self, tag_id: str) -> CustomTag:
        current = self.get_tag(tag_id)
        return self.update_tag(tag_id, enabled=not current.enabled)

    def delete_tag(self, tag_id: str):
        """Remove a tag.

        Raises:
            TagNotFoundError: If no tag has ``tag_id``
        """
        tags = self._read()
        remaining = [tag for tag in tags if tag.id != tag_id]
        if len(remaining) == len(tags):
            raise TagNotFoundError("Tag not found")
        self._write(remaining)
