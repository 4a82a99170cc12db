# -*- coding: utf-8 -*-
"""
Email utilities: envelope records and header decoding of IMAP ENVELOPE data.
"""

import email.errors
import email.header
import email.utils
from dataclasses import dataclass, field
from datetime import datetime


# ============================================================================
# Records
# ============================================================================


@dataclass(frozen=True)
class Address:
    name: str
    address: str

    def __str__(self):
        return email.utils.formataddr((self.name, self.address))


@dataclass(frozen=True)
class Envelope:
    """Message metadata as reported by the server. Passed through to handlers."""

    date: datetime | None = None
    subject: str = ""
    from_: tuple[Address, ...] = field(default_factory=tuple)
    sender: tuple[Address, ...] = field(default_factory=tuple)
    reply_to: tuple[Address, ...] = field(default_factory=tuple)
    to: tuple[Address, ...] = field(default_factory=tuple)
    cc: tuple[Address, ...] = field(default_factory=tuple)
    bcc: tuple[Address, ...] = field(default_factory=tuple)
    in_reply_to: str = ""
    message_id: str = ""


# ============================================================================
# Header decoding
# ============================================================================


def decode_header_value(value):
    """
    Decode an ENVELOPE text field, including RFC 2047 encoded words.

    Args:
        value: bytes, str or None (NIL)

    Returns:
        Unicode string ("" for NIL)
    """
    if value is None:
        return ""
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    try:
        return str(email.header.make_header(email.header.decode_header(value)))
    except (email.errors.HeaderParseError, LookupError, UnicodeDecodeError):
        return value


def convert_addresses(addresses):
    """
    Convert imapclient Address tuples to Address records.

    Group syntax markers (host NIL) are skipped.
    """
    if not addresses:
        return ()

    converted = []
    for address in addresses:
        if address.host is None:
            continue
        mailbox = decode_header_value(address.mailbox)
        host = decode_header_value(address.host)
        converted.append(Address(decode_header_value(address.name), f"{mailbox}@{host}"))
    return tuple(converted)


def convert_envelope(envelope):
    """
    Build an Envelope from the ENVELOPE item imapclient parsed for us.

    imapclient already turns the date into a datetime (or None) and splits
    addresses; what is left is decoding RFC 2047 words in text fields.

    Args:
        envelope: imapclient.response_types.Envelope or None

    Returns:
        Envelope
    """
    if envelope is None:
        return Envelope()

    return Envelope(
        date=envelope.date,
        subject=decode_header_value(envelope.subject),
        from_=convert_addresses(envelope.from_),
        sender=convert_addresses(envelope.sender),
        reply_to=convert_addresses(envelope.reply_to),
        to=convert_addresses(envelope.to),
        cc=convert_addresses(envelope.cc),
        bcc=convert_addresses(envelope.bcc),
        in_reply_to=decode_header_value(envelope.in_reply_to),
        message_id=decode_header_value(envelope.message_id),
    )
