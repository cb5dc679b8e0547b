"""
Content Fingerprinting

Turns extracted page text into a stable SHA-256 fingerprint so that cosmetic
differences (whitespace, zero-width characters, scrubbed volatile fragments
such as timestamps or session tokens) never register as a change.

Processing order is fixed: scrub → normalize → hash.
"""
import hashlib
import logging
import re
from typing import Iterable, Optional, Pattern, Tuple

from sitewatch.models.site import ScrubPattern

logger = logging.getLogger(__name__)

# Zero-width space, non-joiner, joiner, word joiner, BOM
ZERO_WIDTH_PATTERN = re.compile(r'[​‌‍⁠﻿]')
WHITESPACE_PATTERN = re.compile(r'\s+')

_FLAG_MAP = {
    'i': re.IGNORECASE,
    'm': re.MULTILINE,
    's': re.DOTALL,
    'x': re.VERBOSE,
    'u': 0,  # str patterns are unicode already
    'g': 0,  # every match is deleted anyway
}


def normalize_text(text: str) -> str:
    """
    Collapse whitespace runs to one space, drop zero-width characters, trim.

    Zero-width characters are removed before collapsing so the result is
    idempotent: normalize_text(normalize_text(t)) == normalize_text(t).
    """
    if not text:
        return ""
    text = ZERO_WIDTH_PATTERN.sub('', text)
    return WHITESPACE_PATTERN.sub(' ', text).strip()


def compile_scrub_pattern(scrub: ScrubPattern) -> Optional[Pattern]:
    """Compile a ScrubPattern. Returns None (and warns) when it is invalid."""
    flags = 0
    for flag in scrub.flags or '':
        if flag not in _FLAG_MAP:
            logger.warning(f"⚠️ [FINGERPRINT] Invalid scrub flag '{flag}' in pattern: {scrub.pattern}")
            return None
        flags |= _FLAG_MAP[flag]

    try:
        return re.compile(scrub.pattern, flags)
    except re.error as e:
        logger.warning(f"⚠️ [FINGERPRINT] Invalid scrub pattern: {scrub.pattern} with flags: {scrub.flags} ({e})")
        return None


def apply_scrub_patterns(text: str, patterns: Optional[Iterable[ScrubPattern]] = None) -> str:
    """
    Delete every match of each pattern, in list order.

    A pattern that fails to compile is skipped with a warning; scrubbing
    never raises.
    """
    if not patterns:
        return text

    for scrub in patterns:
        compiled = compile_scrub_pattern(scrub)
        if compiled is None:
            continue
        text = compiled.sub('', text)
    return text


def process_text(text: str, patterns: Optional[Iterable[ScrubPattern]] = None) -> str:
    """Scrub then normalize. This is the text stored in the baseline."""
    return normalize_text(apply_scrub_patterns(text or "", patterns))


def sha256_hex(text: str) -> str:
    """Hex SHA-256 of the UTF-8 bytes of text."""
    return hashlib.sha256(text.encode('utf-8')).hexdigest()


def fingerprint(text: str, patterns: Optional[Iterable[ScrubPattern]] = None) -> str:
    """Fingerprint of raw text: sha256(normalize(scrub(text)))."""
    return sha256_hex(process_text(text, patterns))


def process_and_fingerprint(
    text: str,
    patterns: Optional[Iterable[ScrubPattern]] = None,
) -> Tuple[str, str]:
    """
    Single pass used by the site job.

    Returns:
        Tuple of (processed_text, fingerprint)
    """
    processed = process_text(text, patterns)
    return processed, sha256_hex(processed)
