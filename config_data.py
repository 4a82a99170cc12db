# -*- coding: utf-8 -*-
"""
Configuration data: server, polling and logging settings.
Pure data only - no functions, no side effects at import time.
"""

import os

# ============================================================================
# SERVER SETTINGS
# ============================================================================

imap_server = os.environ.get("IMAP_SERVER", "imap.provider.com")
imap_user = os.environ.get("IMAP_USER", "username")
imap_port = int(os.environ.get("IMAP_PORT", "993"))

# ============================================================================
# POLLING
# ============================================================================

# Seconds between two polls for new mail
poll_delay = float(os.environ.get("POLL_DELAY", "1.0"))

# Convert HTML body parts to plain text before logging them
html_as_text = True
html_without_links = False

# Characters of body text shown per message
summary_preview_chars = 200

# ============================================================================
# LOGGING
# ============================================================================

log_level = os.environ.get("LOG_LEVEL", "INFO")
log_format = "%(asctime)s %(levelname)s %(name)s: %(message)s"
