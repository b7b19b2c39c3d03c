"""
Encrypted-file discovery and plaintext substitution.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from pathlib import Path

from keyrotate.core.models.config import SubstitutionRule

logger = logging.getLogger(__name__)

DECRYPTED_SUFFIX = ".decrypted"


def find_encrypted_files(files: Iterable[str], patterns: Sequence[str | re.Pattern[str]]) -> list[str]:
    """Filenames matching any pattern, in listing order.

    Each (file, pattern) match appends the file, so a name matched by two
    patterns appears twice. Patterns are searched, not fully matched.
    """
    compiled = [re.compile(p) if isinstance(p, str) else p for p in patterns]
    found: list[str] = []
    for name in files:
        for pattern in compiled:
            if pattern.search(name):
                found.append(name)
    return found


def decrypted_name(filename: str) -> str:
    return filename + DECRYPTED_SUFFIX


def apply_substitutions(text: str, rules: Sequence[SubstitutionRule]) -> tuple[str, int]:
    """Apply every rule in order.

    Returns:
        (new_text, count) where count is how many rules' ``find`` strings
        were present (checked just before that rule is applied).
    """
    matches = 0
    for rule in rules:
        if not rule.find:
            continue
        if rule.find in text:
            matches += 1
            text = text.replace(rule.find, rule.replace)
    return text, matches


def replace_secrets_in_file(path: Path, rules: Sequence[SubstitutionRule]) -> int:
    """Rewrite ``path`` in place with all substitutions applied.

    Content that is not valid UTF-8 (keystores, certificates) is carried
    through byte for byte; only the matched text changes.

    Raises:
        OSError: The file could not be read or written.
    """
    # bytes in/out so line endings and non-UTF-8 bytes survive untouched
    content = path.read_bytes().decode("utf-8", errors="surrogateescape")
    updated, matches = apply_substitutions(content, rules)
    if updated != content:
        path.write_bytes(updated.encode("utf-8", errors="surrogateescape"))
    logger.info("Replaced %d strings in %s", matches, path.name)
    return matches
