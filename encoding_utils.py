# -*- coding: utf-8 -*-
"""
Transfer-encoding resolution and body part decoding.
Pure functions only - no shared state, safe to call from several tasks.
"""

import base64
import binascii
import logging
import re

logger = logging.getLogger(__name__)

BASE64URL = "base64url"
BASE64 = "base64"
UTF16LE = "utf16le"
UTF8 = "utf8"
LATIN1 = "latin1"
ASCII = "ascii"

# Labels from real servers are inconsistently spelled; first match wins.
ENCODING_PATTERNS = [
    (re.compile(r"b.*64.*url", re.IGNORECASE), BASE64URL),
    (re.compile(r"b.*64", re.IGNORECASE), BASE64),
    (re.compile(r"(ucs.*2)|(utf.*16)", re.IGNORECASE), UTF16LE),
    (re.compile(r"utf.*8", re.IGNORECASE), UTF8),
    (re.compile(r"(binary)|(latin)", re.IGNORECASE), LATIN1),
    (re.compile(r"ascii", re.IGNORECASE), ASCII),
]

DEFAULT_PART_ENCODING = "base64"

_NOT_BASE64 = re.compile(r"[^A-Za-z0-9+/]")


# ============================================================================
# Encoding resolution
# ============================================================================


def resolve_encoding(label):
    """
    Map a free-form transfer-encoding label to a decode scheme.

    Args:
        label: Declared encoding, e.g. "BASE64" or "quoted-encoding=base64".
               May be None.

    Returns:
        One of BASE64URL, BASE64, UTF16LE, UTF8, LATIN1, ASCII.
        Unknown or missing labels resolve to UTF8 with a warning.
    """
    if label:
        for pattern, scheme in ENCODING_PATTERNS:
            if pattern.search(label):
                return scheme

    logger.warning("Unknown encoding: %s", label)
    return UTF8


# ============================================================================
# Decoding
# ============================================================================


def _lenient_b64decode(text, urlsafe=False):
    """Decode base64 text, skipping stray characters and missing padding."""
    if urlsafe:
        text = text.replace("-", "+").replace("_", "/")
    cleaned = _NOT_BASE64.sub("", text.split("=", 1)[0])
    # A single dangling character carries no complete byte
    if len(cleaned) % 4 == 1:
        cleaned = cleaned[:-1]
    cleaned += "=" * (-len(cleaned) % 4)
    try:
        return base64.b64decode(cleaned)
    except binascii.Error:
        return b""


def text_to_bytes(text, scheme):
    """
    Interpret text under a decode scheme.

    Args:
        text: String holding the encoded content
        scheme: Result of resolve_encoding()

    Returns:
        Raw bytes
    """
    match scheme:
        case "base64url":
            return _lenient_b64decode(text, urlsafe=True)
        case "base64":
            return _lenient_b64decode(text)
        case "utf16le":
            return text.encode("utf-16-le")
        case "latin1":
            return text.encode("latin-1", errors="replace")
        case "ascii":
            return text.encode("ascii", errors="replace")
        case _:
            return text.encode("utf-8")


def decode_body_part(raw, label=None):
    """
    Decode one fetched body part to a string.

    The raw octets are read as UTF-8 text first, and that text is then
    interpreted under the scheme resolved from the declared encoding.
    A part without a declared encoding is treated as base64.

    Args:
        raw: Body part bytes as returned by the server
        label: Declared transfer-encoding of the part

    Returns:
        Decoded string (undecodable bytes are replaced)
    """
    scheme = resolve_encoding(label or DEFAULT_PART_ENCODING)
    text = raw.decode("utf-8", errors="replace")
    return text_to_bytes(text, scheme).decode("utf-8", errors="replace")
