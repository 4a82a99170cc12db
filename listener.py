# -*- coding: utf-8 -*-
"""
New-mail listener: mailbox locking, session lifecycle and the polling loop.

on_mail() connects, locks INBOX for the lifetime of the connection and then
polls for NEW messages forever. Every message is fetched, flagged \\Seen,
decoded and handed to an async handler(envelope, bodies).
"""

import asyncio
import enum
import logging

import handlers
import imap_utils
from encoding_utils import decode_body_part
from imap_utils import ConnectionFailed, ImapSession, LockError

logger = logging.getLogger(__name__)

LOCKED_MAILBOX = "INBOX"
DEFAULT_POLL_DELAY = 1.0


# ============================================================================
# Scoped lock
# ============================================================================


async def with_lock(session, work):
    """
    Hold the INBOX lock while work(session) runs.

    The lock is released exactly once on every exit path before any failure
    of work propagates. If release itself fails while work's failure is in
    flight, the release failure is logged and work's failure wins.

    Args:
        session: Connected session
        work: async callable taking the session

    Returns:
        Whatever work returned

    Raises:
        LockError: if the lock could not be acquired (work is not called)
    """
    try:
        lock = await session.get_mailbox_lock(LOCKED_MAILBOX)
    except Exception as e:
        raise LockError(f"Acquiring lock failed: {e}") from e

    try:
        result = await work(session)
    except BaseException:
        try:
            lock.release()
        except Exception:
            logger.warning("Releasing lock on %s failed", LOCKED_MAILBOX, exc_info=True)
        raise

    lock.release()
    return result


# ============================================================================
# Session lifecycle
# ============================================================================


async def connect_and_run(credentials, work, session_factory=ImapSession, on_connected=None):
    """
    Connect, run work under the mailbox lock, then log out.

    Logout is attempted once after the locked phase whatever its outcome;
    a logout failure never replaces a failure that is already propagating.

    Args:
        credentials: imap_utils.Credentials
        work: async callable taking the session
        session_factory: Builds a session from credentials
        on_connected: Optional callback invoked once the session is up

    Raises:
        ConnectionFailed: connecting failed, no lock was attempted
    """
    session = session_factory(credentials)

    try:
        await session.connect()
    except ConnectionFailed:
        raise
    except Exception as e:
        raise ConnectionFailed(imap_utils.response_text(getattr(e, "response_text", e))) from e

    if on_connected is not None:
        on_connected()

    try:
        result = await with_lock(session, work)
    except BaseException:
        try:
            await session.logout()
        except Exception:
            logger.warning("Logout after failure did not complete", exc_info=True)
        raise

    await session.logout()
    return result


# ============================================================================
# Polling engine
# ============================================================================


class ListenerState(enum.Enum):
    CONNECTING = "connecting"
    LOCKING = "locking"
    DISCOVERING = "discovering"
    PROCESSING = "processing"
    WAITING = "waiting"
    FAILED = "failed"
    TERMINATED = "terminated"


class MailListener:
    """
    Polls one mailbox for new messages and dispatches them to a handler.

    A cycle discovers NEW messages, then for each one in order fetches its
    parts and envelope, flags it \\Seen, decodes the parts and awaits the
    handler, then sleeps poll_delay seconds. Cycles repeat until a failure
    escapes or max_cycles cycles have run.
    """

    def __init__(
        self,
        credentials,
        handler,
        poll_delay=DEFAULT_POLL_DELAY,
        max_cycles=None,
        session_factory=None,
        sleep=asyncio.sleep,
    ):
        self.credentials = credentials
        self.handler = handlers.as_handler(handler)
        self.poll_delay = poll_delay
        self.max_cycles = max_cycles
        self.session_factory = session_factory or ImapSession
        self.sleep = sleep

        self.state = None
        self.processing_index = None
        self.cycles = 0
        self.dispatched = 0

    def _transition(self, state, index=None):
        self.state = state
        self.processing_index = index
        if index is None:
            logger.debug("Listener state: %s", state.value)
        else:
            logger.debug("Listener state: %s(%d)", state.value, index)

    async def listen(self):
        """
        Connect and poll until a failure escapes or max_cycles is reached.

        Returns:
            Number of messages dispatched (only when max_cycles is set)
        """
        self._transition(ListenerState.CONNECTING)
        try:
            await connect_and_run(
                self.credentials,
                self.poll,
                session_factory=self.session_factory,
                on_connected=lambda: self._transition(ListenerState.LOCKING),
            )
        except BaseException:
            self._transition(ListenerState.FAILED)
            raise

        self._transition(ListenerState.TERMINATED)
        return self.dispatched

    async def poll(self, session):
        while self.max_cycles is None or self.cycles < self.max_cycles:
            await self.run_cycle(session)

    async def discover(self, session):
        """Return descriptors of all messages the server reports as NEW"""
        found = await session.fetch_new()
        return [imap_utils.message_descriptor(uid, structure) for uid, structure in found]

    async def process(self, session, descriptor):
        """Fetch, flag, decode and dispatch a single message"""
        fetched = await session.fetch_one(descriptor.uid, descriptor.part_numbers)
        await session.add_flags(descriptor.uid, [imap_utils.SEEN])

        texts = [
            decode_body_part(raw, body_part.encoding)
            for raw, body_part in zip(fetched.body_parts, descriptor.parts)
        ]

        logger.info("Dispatching message %s (%d parts)", descriptor.uid, len(texts))
        await self.handler(fetched.envelope, texts)
        self.dispatched += 1

    async def run_cycle(self, session):
        self._transition(ListenerState.DISCOVERING)
        descriptors = await self.discover(session)
        logger.debug("Discovered %d new message(s)", len(descriptors))

        for index, descriptor in enumerate(descriptors):
            self._transition(ListenerState.PROCESSING, index)
            await self.process(session, descriptor)

        self._transition(ListenerState.WAITING)
        await self.sleep(self.poll_delay)
        self.cycles += 1


async def on_mail(credentials, handler, poll_delay=DEFAULT_POLL_DELAY, **options):
    """
    Listen for new mail and call handler(envelope, bodies) for each message.

    Does not return under normal operation. Any failure ends the listening
    session and propagates; call again to resume.

    Args:
        credentials: imap_utils.Credentials
        handler: callable (envelope, list of decoded body strings); plain
                 functions are adapted with handlers.Synchronous
        poll_delay: Seconds to wait between polls
        options: Passed to MailListener (max_cycles, session_factory, sleep)
    """
    listener = MailListener(credentials, handler, poll_delay=poll_delay, **options)
    return await listener.listen()


def make_handler(config):
    """Default handler for the scripts: optional HTML conversion, then a log summary"""
    handler = handlers.LogSummary(preview_chars=config.summary_preview_chars)
    if config.html_as_text:
        handler = handlers.HtmlToText(handler, without_links=config.html_without_links)
    return handler


def run(config, password, handler=None, once=False):
    """
    Run the listener from a configuration module.

    Args:
        config: Configuration module with server, polling and logging settings
        password: IMAP password
        handler: Message handler, defaults to make_handler(config)
        once: True to poll a single time and exit
    """
    logging.basicConfig(level=config.log_level, format=config.log_format)

    credentials = imap_utils.Credentials(
        host=config.imap_server,
        username=config.imap_user,
        password=password,
        port=config.imap_port,
    )
    handler = handler or make_handler(config)

    try:
        if once:
            dispatched = asyncio.run(
                on_mail(credentials, handler, poll_delay=0, max_cycles=1)
            )
            logger.info("Processed %d new message(s)", dispatched)
        else:
            asyncio.run(on_mail(credentials, handler, poll_delay=config.poll_delay))
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
