# src/core/ids.py
"""Identifier generation: ``<prefix>_<8 hex>``.

Randomness comes from the OS CSPRNG. If that source is unavailable the
generator falls back to a time-derived value so that ingestion never blocks
on identifier generation.
"""

from __future__ import annotations

import hashlib
import itertools
import os
import secrets
import time

from reprostore.logging.logger import get_logger

ID_HEX_LENGTH = 8

BUNDLE_PREFIX = "rb"
ARTIFACT_PREFIX = "art"
NOTE_PREFIX = "note"
UPLOAD_PREFIX = "upload"

_fallback_counter = itertools.count()
_logger = get_logger("core.ids")


def random_hex(length: int = ID_HEX_LENGTH) -> str:
    """Return ``length`` lowercase hex characters."""
    try:
        return secrets.token_hex((length + 1) // 2)[:length]
    except (OSError, NotImplementedError):
        _logger.warning("OS random source unavailable, using time-derived id")
        return _time_derived_hex(length)


def _time_derived_hex(length: int) -> str:
    seed = f"{time.time_ns()}:{os.getpid()}:{next(_fallback_counter)}"
    return hashlib.sha256(seed.encode("ascii")).hexdigest()[:length]


def generate_id(prefix: str, length: int = ID_HEX_LENGTH) -> str:
    """Generate ``<prefix>_<hex>`` (e.g. ``rb_1a2b3c4d``)."""
    return f"{prefix}_{random_hex(length)}"


def generate_bundle_id() -> str:
    return generate_id(BUNDLE_PREFIX)


def generate_artifact_id() -> str:
    return generate_id(ARTIFACT_PREFIX)


def generate_note_id() -> str:
    return generate_id(NOTE_PREFIX)


def generate_upload_token() -> str:
    """Random token naming a staging directory (``upload_<token>``)."""
    return random_hex()


def is_valid_id(value: str, prefix: str) -> bool:
    """Check ``value`` matches ``<prefix>_<8 lowercase hex>``."""
    head, sep, tail = value.partition("_")
    if not sep or head != prefix or len(tail) != ID_HEX_LENGTH:
        return False
    return all(c in "0123456789abcdef" for c in tail)

