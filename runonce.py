#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Single-run mail processor.
Connects to IMAP, handles the messages that are new right now, and exits.
"""

import config_data
import imap_utils
import listener


def main():
    password = imap_utils.get_credential("EMAIL_PASSWORD", "password", "Password: ")
    listener.run(config_data, password, once=True)


if __name__ == "__main__":
    main()
