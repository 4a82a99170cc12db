#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Continuous new-mail listener daemon.
Holds the INBOX lock, polls for new messages and hands each one to the handler.
Any failure ends the session; restart the script to resume listening.
"""

import config_data
import imap_utils
import listener


def main():
    password = imap_utils.get_credential("EMAIL_PASSWORD", "password", "Password: ")
    listener.run(config_data, password)


if __name__ == "__main__":
    main()
