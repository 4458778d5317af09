#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
download_queue.py

Download every YouTube video listed in a queue file.

Features:
- Queue file holds one video URL per line; invalid lines are ignored
- Downloads run with bounded concurrency (default: 4)
- Failed downloads are retried with exponential backoff (2s, 4s)
- Finished or already-present videos are removed from the queue file
- Failed videos stay queued, so re-running resumes where it left off

Settings are read from config.json next to the queue file (or the file named
by YTQUEUE_CONFIG).

Usage:
    python download_queue.py
    python download_queue.py path/to/urls.txt
"""

import sys

from ytqueue.runner import main

if __name__ == "__main__":
    sys.exit(main())
