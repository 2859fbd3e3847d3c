"""Terminal-safe output and loguru setup.

Detects terminal encoding and provides ASCII alternatives for Unicode icons
so reports never crash consoles that don't support UTF-8.
"""
import sys
import locale

from loguru import logger


# Unicode to ASCII icon mapping for non-UTF-8 terminals
ICON_MAP = {
    # Status icons
    '✓': '[OK]',
    '✔': '[OK]',
    '✅': '[OK]',
    '✗': '[FAIL]',
    '✘': '[FAIL]',
    '❌': '[FAIL]',
    '⚠️': '[WARN]',
    '⚠': '[WARN]',
    'ℹ': '[i]',

    # Arrows
    '→': '->',
    '←': '<-',
    '↳': '->',

    # Structural icons
    '│': '|',
    '─': '-',
    '└': '+',
    '├': '+',

    # Symbols
    '…': '...',
    '•': '*',
    '\U0001f4c1': '[dir]',
    '\U0001f4c4': '[file]',
    '\U0001f50d': '[search]',
    '\U0001f4ca': '[stats]',
    '\U0001f3f7️': '[tag]',
    '\U0001f3f7': '[tag]',
}


def detect_terminal_encoding() -> str:
    """Detect the terminal's encoding capability.

    Returns:
        str: Terminal encoding ('utf-8', 'cp1252', 'ascii', etc.)
    """
    if hasattr(sys.stdout, 'encoding') and sys.stdout.encoding:
        return sys.stdout.encoding.lower()

    try:
        return locale.getpreferredencoding().lower()
    except (ValueError, LookupError):
        return 'ascii'


def is_utf8_capable() -> bool:
    """Check if the terminal can handle UTF-8 Unicode characters."""
    return detect_terminal_encoding().replace('_', '-') in ('utf-8', 'utf8')


def sanitize_for_terminal(text: str) -> str:
    """Replace Unicode icons with ASCII equivalents if terminal doesn't support UTF-8.

    Args:
        text: Text potentially containing Unicode icons

    Returns:
        str: Sanitized text safe for current terminal
    """
    if is_utf8_capable():
        return text

    sanitized = text
    for unicode_char, ascii_replacement in ICON_MAP.items():
        sanitized = sanitized.replace(unicode_char, ascii_replacement)
    return sanitized


def _stderr_sink(message):
    sys.stderr.write(sanitize_for_terminal(str(message)))


def configure_logging(level: str = "WARNING", verbose: bool = False) -> int:
    """Install a single sanitized stderr sink for loguru.

    Args:
        level: Minimum level name
        verbose: Force DEBUG regardless of ``level``

    Returns:
        The loguru handler id
    """
    logger.remove()
    return logger.add(
        _stderr_sink,
        level="DEBUG" if verbose else level,
        format="<level>{level: <8}</level> {message}",
        colorize=False,
    )
