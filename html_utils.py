# -*- coding: utf-8 -*-
"""
HTML body parts: detection, sanitization and text conversion.
"""

import re

import html2text
import lxml.etree
import lxml.html
import lxml.html.clean

_HTML_MARKERS = re.compile(r"<\s*(html|body|div|p|br|table|span|a)\b", re.IGNORECASE)


# HTML cleaner configuration
ourCleaner = lxml.html.clean.Cleaner(
    scripts=True,
    javascript=True,
    comments=True,
    style=True,
    inline_style=True,
    links=True,
    meta=True,
    page_structure=False,
    processing_instructions=True,
    embedded=True,
    frames=True,
    forms=True,
    annoying_tags=True,
    remove_unknown_tags=True,
    safe_attrs_only=True,
    add_nofollow=False,
)


def looks_like_html(text):
    """Guess whether a decoded body part is HTML rather than plain text"""
    return bool(text) and _HTML_MARKERS.search(text) is not None


def bleach_content(tree):
    """Remove scripts, styles, forms and other active content from a tree"""
    return ourCleaner.clean_html(tree)


def make_html2text_converter(without_links=False):
    """Create configured html2text parser for converting HTML to plain text."""
    converter = html2text.HTML2Text()
    converter.body_width = 0
    converter.single_line_break = False
    converter.ul_item_mark = "-"
    converter.emphasis_mark = "*"
    converter.strong_mark = "**"
    converter.ignore_images = True
    converter.images_to_alt = True
    converter.default_image_alt = ""
    converter.unicode_snob = True
    converter.ignore_links = without_links
    converter.skip_internal_links = True
    converter.inline_links = True
    converter.mark_code = True
    return converter


def html_to_text(text, without_links=False):
    """
    Convert an HTML body part to readable plain text.

    Args:
        text: Decoded HTML string
        without_links: Drop link targets from the output

    Returns:
        Plain text; the input unchanged if it cannot be parsed
    """
    try:
        tree = lxml.html.fromstring(text)
    except (lxml.etree.ParserError, ValueError):
        return text

    content = lxml.html.tostring(bleach_content(tree), encoding="unicode")
    return make_html2text_converter(without_links).handle(content).strip()
