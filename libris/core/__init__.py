#!/usr/bin/env python

"""
    Core module for Libris, db & models

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

from libris.core import db as database
from libris.core import models

session = database.init()

__all__ = ["session", "database", "models"]
