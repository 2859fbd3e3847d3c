"""Result records produced by a deprecation scan."""
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

DECLARATION_KINDS = ('method', 'property', 'class', 'interface', 'function')
USAGE_KIND = 'usage'
ITEM_KINDS = DECLARATION_KINDS + (USAGE_KIND,)
SEVERITIES = ('info', 'warning', 'error')


@dataclass(frozen=True)
class DeclarationRef:
    """Back-reference from a usage item to the declaration it uses."""
    name: str
    file_name: str
    file_path: str
    line: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'fileName': self.file_name,
            'filePath': self.file_path,
            'line': self.line,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeclarationRef':
        return cls(
            name=data['name'],
            file_name=data['fileName'],
            file_path=data['filePath'],
            line=int(data['line']),
        )


@dataclass(frozen=True)
class DeprecatedItem:
    """One deprecated declaration or one usage of a deprecated declaration.

    Positions are 1-based lines and 0-based character columns, so an editor
    range for the item spans ``character`` to ``character + len(name)``.

    Raises:
        ValueError: If kind or severity is unknown, or if the usage/back-reference
            pairing is violated (usages must link a declaration, declarations
            must not).
    """
    name: str
    file_name: str
    file_path: str
    line: int
    character: int
    kind: str
    severity: Optional[str] = None
    deprecation_reason: Optional[str] = None
    deprecated_declaration: Optional[DeclarationRef] = None

    def __post_init__(self):
        if self.kind not in ITEM_KINDS:
            raise ValueError(f"Unknown item kind: {self.kind!r}")
        if self.severity is not None and self.severity not in SEVERITIES:
            raise ValueError(f"Unknown severity: {self.severity!r}")
        if self.kind == USAGE_KIND and self.deprecated_declaration is None:
            raise ValueError(f"Usage item {self.name!r} requires a deprecated declaration")
        if self.kind != USAGE_KIND and self.deprecated_declaration is not None:
            raise ValueError(f"Declaration item {self.name!r} cannot link a declaration")
        if self.line < 1 or self.character < 0:
            raise ValueError(f"Invalid position {self.line}:{self.character} for {self.name!r}")

    @property
    def is_usage(self) -> bool:
        return self.kind == USAGE_KIND

    @property
    def end_character(self) -> int:
        return self.character + len(self.name)

    @property
    def position_key(self):
        """Identity of the syntactic site this item describes."""
        return (self.kind, self.file_path, self.line, self.character, self.name)

    def with_severity(self, severity: str) -> 'DeprecatedItem':
        return replace(self, severity=severity)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with camelCase keys, omitting unset optional fields."""
        data: Dict[str, Any] = {
            'name': self.name,
            'fileName': self.file_name,
            'filePath': self.file_path,
            'line': self.line,
            'character': self.character,
            'kind': self.kind,
        }
        if self.severity is not None:
            data['severity'] = self.severity
        if self.deprecation_reason is not None:
            data['deprecationReason'] = self.deprecation_reason
        if self.deprecated_declaration is not None:
            data['deprecatedDeclaration'] = self.deprecated_declaration.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DeprecatedItem':
        declaration = data.get('deprecatedDeclaration')
        return cls(
            name=data['name'],
            file_name=data['fileName'],
            file_path=data['filePath'],
            line=int(data['line']),
            character=int(data['character']),
            kind=data['kind'],
            severity=data.get('severity'),
            deprecation_reason=data.get('deprecationReason'),
            deprecated_declaration=DeclarationRef.from_dict(declaration) if declaration else None,
        )
