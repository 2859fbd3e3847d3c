"""Usage items for references bound to deprecated declarations."""
from typing import Iterable, List

from loguru import logger

from ..models import DECLARATION_KINDS, USAGE_KIND, DeclarationRef, DeprecatedItem
from ..policy.suppression import SuppressionPolicy
from .classifier import DeclarationClassifier
from .reference_tracker import Reference


class UsageResolver:
    """Turn bound references into `usage` items linked to their declaration."""

    def __init__(self, classifier: DeclarationClassifier, policy: SuppressionPolicy):
        self.classifier = classifier
        self.policy = policy

    def is_suppressed(self, reference: Reference) -> bool:
        """Suppression rules applied before an item is created.

        - the referencing file is ignored
        - the reference flowed through an import of a trusted package, or the
          declaration lives inside a trusted package
        - the reference sits inside a different deprecated declaration
        """
        symbol = reference.symbol
        if self.policy.is_file_ignored(reference.file_path):
            return True
        if self.policy.is_package_trusted(reference.import_source):
            return True
        if symbol.is_external and self.policy.is_path_in_trusted_package(symbol.file_path):
            return True
        for enclosing in reference.enclosing:
            if enclosing is not symbol and self.classifier.is_deprecated(enclosing):
                return True
        return False

    def resolve(self, references: Iterable[Reference]) -> List[DeprecatedItem]:
        """Usage items in reference discovery order."""
        items = []
        suppressed = 0
        for reference in references:
            symbol = reference.symbol
            if symbol.kind not in DECLARATION_KINDS:
                continue
            marker = self.classifier.marker_for(symbol)
            if marker is None:
                continue
            if self.is_suppressed(reference):
                suppressed += 1
                continue
            items.append(DeprecatedItem(
                name=reference.name,
                file_name=reference.source_file.display_name,
                file_path=reference.file_path,
                line=reference.line,
                character=reference.character,
                kind=USAGE_KIND,
                deprecation_reason=marker.reason,
                deprecated_declaration=DeclarationRef(
                    name=symbol.name,
                    file_name=symbol.source_file.display_name,
                    file_path=symbol.file_path,
                    line=symbol.line,
                ),
            ))
        if suppressed:
            logger.debug(f"Suppressed {suppressed} usages of deprecated symbols")
        return items
