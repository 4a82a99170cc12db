# -*- coding: utf-8 -*-
"""
Message handlers for the listener.
All handlers are factory functions that return configured async handler functions.
Handler signature: await handler(envelope, bodies) -> None
"""

import inspect
import logging

import html_utils

logger = logging.getLogger(__name__)


def Synchronous(fn):
    """Factory: Adapt a plain function to the awaitable handler contract"""

    async def handler(envelope, bodies):
        result = fn(envelope, bodies)
        if inspect.isawaitable(result):
            await result

    return handler


def as_handler(fn):
    """
    Return fn as an async handler.

    Coroutine functions are used as they are, any other callable goes
    through Synchronous.

    Raises:
        TypeError: fn is not callable
    """
    if not callable(fn):
        raise TypeError(f"handler must be callable, got {type(fn).__name__}")
    if inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(getattr(fn, "__call__", None)):
        return fn
    return Synchronous(fn)


def HtmlToText(next_handler, without_links=False):
    """
    Factory: Create handler that converts HTML body parts to plain text
    before passing the message on.

    Args:
        next_handler: Handler receiving the converted bodies
        without_links: Drop link targets from converted text
    """

    async def handler(envelope, bodies):
        converted = [
            html_utils.html_to_text(body, without_links)
            if html_utils.looks_like_html(body)
            else body
            for body in bodies
        ]
        await next_handler(envelope, converted)

    return handler


def LogSummary(preview_chars=200):
    """Factory: Create handler that logs sender, subject and a body preview"""

    async def handler(envelope, bodies):
        sender = ", ".join(str(address) for address in envelope.from_) or "(unknown)"
        preview = " ".join(" ".join(bodies).split())[:preview_chars]
        logger.info("Mail from %s: %s", sender, envelope.subject)
        if preview:
            logger.info("  %s", preview)

    return handler


def Chain(*handlers):
    """Factory: Create handler that awaits each handler in order"""

    async def handler(envelope, bodies):
        for each in handlers:
            await each(envelope, bodies)

    return handler
