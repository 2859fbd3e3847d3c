"""Tree-sitter grammars and parsers for TypeScript and JavaScript sources."""
import codecs
import threading
from functools import lru_cache
from pathlib import Path
from typing import Optional
from tree_sitter import Language, Parser, Tree
import tree_sitter_javascript as tsjavascript
import tree_sitter_typescript as tstypescript

SUPPORTED_LANGUAGES = {
    '.ts': 'typescript',
    '.mts': 'typescript',
    '.cts': 'typescript',
    '.tsx': 'tsx',
    '.js': 'javascript',
    '.jsx': 'javascript',
    '.mjs': 'javascript',
    '.cjs': 'javascript',
}

_GRAMMARS = {
    'typescript': tstypescript.language_typescript,
    'tsx': tstypescript.language_tsx,
    'javascript': tsjavascript.language,
}


@lru_cache(maxsize=None)
def load_language(name: str) -> Language:
    """Load a grammar once per process; Language objects are immutable.

    Raises:
        ValueError: If the language is not supported
    """
    capsule = _GRAMMARS.get(name)
    if capsule is None:
        raise ValueError(f"Unsupported language: {name}")
    return Language(capsule())


def read_source(file_path: str | Path) -> bytes:
    """Read a source file as UTF-8 bytes with any byte order mark removed.

    Raises:
        OSError: If the file cannot be read
        UnicodeDecodeError: If the content is not valid UTF-8
    """
    source = Path(file_path).read_bytes()
    if source.startswith(codecs.BOM_UTF8):
        source = source[len(codecs.BOM_UTF8):]
    source.decode('utf-8')
    return source


class LanguageParser:
    """TypeScript/TSX/JavaScript parser (tree-sitter v0.25+ API).

    Parser instances are not thread-safe; use ParserPool to get one per thread.
    """

    SUPPORTED_LANGUAGES = SUPPORTED_LANGUAGES

    def __init__(self, language: str):
        """Initialize parser for given language.

        Args:
            language: One of 'typescript', 'tsx', 'javascript'

        Raises:
            ValueError: If language is not supported
        """
        self.language = language
        self.parser = Parser(load_language(language))

    def parse_source(self, source_code: bytes) -> Tree:
        return self.parser.parse(source_code)

    @classmethod
    def language_for(cls, file_path: str | Path) -> Optional[str]:
        """Grammar name for a path, by extension ('.d.ts' files are TypeScript)."""
        return SUPPORTED_LANGUAGES.get(Path(file_path).suffix.lower())


class ParserPool:
    """Lazily created parsers, one per language and thread."""

    def __init__(self):
        self._local = threading.local()

    def get(self, language: str) -> LanguageParser:
        parsers = getattr(self._local, 'parsers', None)
        if parsers is None:
            parsers = self._local.parsers = {}
        parser = parsers.get(language)
        if parser is None:
            parser = parsers[language] = LanguageParser(language)
        return parser

    def for_path(self, file_path: str | Path) -> Optional[LanguageParser]:
        """Parser matching a file's extension, or None for unsupported files."""
        language = LanguageParser.language_for(file_path)
        return self.get(language) if language else None
