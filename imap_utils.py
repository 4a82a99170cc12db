# -*- coding: utf-8 -*-
"""
IMAP utilities: credentials, errors, body structure walking, async session.
"""

import asyncio
import getpass
import logging
import os
import sys
from dataclasses import dataclass, field

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError

from email_utils import convert_envelope

logger = logging.getLogger(__name__)

IMAPS_PORT = 993
NEW_MESSAGES = "NEW"
SEEN = "\\Seen"


# ============================================================================
# Errors
# ============================================================================


class MailListenerError(Exception):
    """Base class for listener failures"""


class ConnectionFailed(MailListenerError):
    """Connecting or logging in to the server failed"""

    def __init__(self, response_text):
        super().__init__(f"Connection Failed: {response_text}")
        self.response_text = response_text


class LockError(MailListenerError):
    """The mailbox lock could not be acquired"""


class ImapCommandError(MailListenerError):
    """The server rejected a command or left out what was asked for"""

    def __init__(self, command, detail=""):
        super().__init__(f"{command} failed: {detail}")
        self.command = command
        self.detail = detail


def response_text(value):
    """
    Extract the human readable part of an IMAP error.

    Args:
        value: Exception, bytes or str

    Returns:
        str
    """
    if isinstance(value, BaseException):
        value = value.args[0] if value.args else ""
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    return str(value)


# ============================================================================
# Records
# ============================================================================


@dataclass(frozen=True)
class Credentials:
    host: str
    username: str
    password: str = field(repr=False)
    port: int = IMAPS_PORT


@dataclass(frozen=True)
class BodyPart:
    part: str
    encoding: str | None


@dataclass(frozen=True)
class MessageDescriptor:
    uid: int
    parts: tuple[BodyPart, ...]

    @property
    def part_numbers(self):
        return [body_part.part for body_part in self.parts]


@dataclass
class FetchedMessage:
    envelope: object
    body_parts: list


def get_credential(env_var, arg_name, prompt):
    """
    Get credential from environment, command line args, or prompt.

    Priority:
    1. Environment variable
    2. Command line --arg=value or --arg value
    3. Interactive prompt (masked input)
    """
    value = os.environ.get(env_var)
    if value:
        return value

    for i, arg in enumerate(sys.argv):
        if arg.startswith(f"--{arg_name}="):
            return arg.split("=", 1)[1]
        elif arg == f"--{arg_name}" and i + 1 < len(sys.argv):
            return sys.argv[i + 1]

    return getpass.getpass(prompt)


# ============================================================================
# Body structure
# ============================================================================


def _as_text(value):
    if isinstance(value, bytes):
        return value.decode("ascii", errors="replace")
    return value


def iter_body_parts(structure, part=None):
    """
    Yield every leaf body part of an imapclient BodyData.

    Multipart nodes carry their children as a list in the first slot.
    A single-part message is addressed as part "1".

    Yields:
        BodyPart(part, encoding)
    """
    if not structure:
        return

    if structure.is_multipart:
        for number, child in enumerate(structure[0], 1):
            yield from iter_body_parts(child, f"{part}.{number}" if part else str(number))
    else:
        encoding = structure[5] if len(structure) > 5 else None
        yield BodyPart(part or "1", _as_text(encoding))


def message_descriptor(uid, structure):
    """Build the descriptor for one newly discovered message"""
    return MessageDescriptor(int(uid), tuple(iter_body_parts(structure)))


# ============================================================================
# Session
# ============================================================================


class MailboxLock:
    """Exclusive access to one mailbox of a session. release() is idempotent."""

    def __init__(self, mailbox, lock):
        self.mailbox = mailbox
        self._lock = lock
        self.released = False

    def release(self):
        if self.released:
            return
        self.released = True
        self._lock.release()
        logger.debug("Released lock on %s", self.mailbox)


class ImapSession:
    """
    Async IMAP session over imapclient.

    Each blocking IMAPClient call runs in a worker thread so the event
    loop stays free for handlers and pacing. Calls are awaited one at a
    time; the session is not meant to be shared between tasks except
    through get_mailbox_lock().
    """

    def __init__(self, credentials, client_factory=IMAPClient):
        self.credentials = credentials
        self._client_factory = client_factory
        self._client = None
        self._locks = {}

    @property
    def client(self):
        if self._client is None:
            raise MailListenerError("IMAP session not connected")
        return self._client

    async def connect(self):
        """
        Open the TLS connection and log in.

        Raises:
            ConnectionFailed: with the server's response text
        """
        credentials = self.credentials
        try:
            client = await asyncio.to_thread(
                self._client_factory, credentials.host, port=credentials.port, ssl=True
            )
        except (IMAPClientError, OSError) as e:
            raise ConnectionFailed(response_text(e)) from e

        try:
            await asyncio.to_thread(client.login, credentials.username, credentials.password)
        except (IMAPClientError, OSError) as e:
            try:
                await asyncio.to_thread(client.shutdown)
            except Exception:
                logger.warning("Closing connection after failed login did not complete", exc_info=True)
            raise ConnectionFailed(response_text(e)) from e

        self._client = client
        logger.info("Connected to %s as %s", credentials.host, credentials.username)

    async def _call(self, command, method, *args):
        try:
            return await asyncio.to_thread(method, *args)
        except IMAPClientError as e:
            raise ImapCommandError(command, response_text(e)) from e

    async def get_mailbox_lock(self, mailbox):
        """
        Wait for exclusive access to mailbox, then select it.

        Returns:
            MailboxLock
        """
        if mailbox not in self._locks:
            self._locks[mailbox] = asyncio.Lock()
        lock = self._locks[mailbox]

        await lock.acquire()
        try:
            await self._call("SELECT", self.client.select_folder, mailbox)
        except BaseException:
            lock.release()
            raise
        logger.debug("Acquired lock on %s", mailbox)
        return MailboxLock(mailbox, lock)

    async def fetch_new(self):
        """
        Find messages carrying the NEW search key and fetch their structure.

        Returns:
            List of (uid, BodyData) in search order
        """
        uids = await self._call("SEARCH", self.client.search, [NEW_MESSAGES])
        if not uids:
            return []

        response = await self._call("FETCH", self.client.fetch, list(uids), ["BODYSTRUCTURE"])
        return [
            (uid, response[uid][b"BODYSTRUCTURE"])
            for uid in uids
            if b"BODYSTRUCTURE" in response.get(uid, {})
        ]

    async def fetch_one(self, uid, parts):
        """
        Fetch the envelope and the given body parts of one message.
        Parts are peeked so fetching alone does not set \\Seen.

        Returns:
            FetchedMessage with body parts in the order of parts
        """
        items = ["ENVELOPE"] + [f"BODY.PEEK[{part}]" for part in parts]
        response = await self._call("FETCH", self.client.fetch, [uid], items)

        data = response.get(uid)
        if not data or b"ENVELOPE" not in data:
            raise ImapCommandError("FETCH", f"message {uid} not returned")

        bodies = [data.get(f"BODY[{part}]".encode()) or b"" for part in parts]
        return FetchedMessage(convert_envelope(data[b"ENVELOPE"]), bodies)

    async def add_flags(self, uid, flags):
        await self._call("STORE", self.client.add_flags, [uid], list(flags))

    async def logout(self):
        if self._client is None:
            return
        try:
            await asyncio.to_thread(self._client.logout)
        finally:
            self._client = None
        logger.info("Logged out from %s", self.credentials.host)
