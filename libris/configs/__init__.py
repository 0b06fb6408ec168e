#!/usr/bin/env python

"""
    Configurations for Libris

    :copyright: (c) 2025 by AUTHORS
    :license: see LICENSE for more details
"""

import os
from decimal import Decimal


# Determine environment
TESTING = os.getenv("TESTING", "false").lower() == "true"

# API server configuration
SCHEME = 'http'
HOST = os.environ.get('LIBRIS_HOST', 'localhost')
PORT = int(os.environ.get('LIBRIS_PORT', 8080))
WORKERS = int(os.environ.get('LIBRIS_WORKERS', 1))
DEBUG = bool(int(os.environ.get('LIBRIS_DEBUG', 0)))
LOG_LEVEL = os.environ.get('LIBRIS_LOG_LEVEL', 'info')
SSL_CRT = os.environ.get('LIBRIS_SSL_CRT')
SSL_KEY = os.environ.get('LIBRIS_SSL_KEY')
CORS_ORIGINS = os.environ.get('LIBRIS_CORS_ORIGINS', 'http://localhost:3000').split(',')

# Signing key for staff session tokens
SEED = os.environ.get('LIBRIS_SEED', 'libris-dev-seed')
TOKEN_TTL = int(os.environ.get('LIBRIS_TOKEN_TTL', 604800))

OPTIONS = {
    'host': HOST,
    'port': PORT,
    'log_level': LOG_LEVEL,
    'reload': DEBUG,
    'workers': WORKERS,
}
if SSL_CRT and SSL_KEY:
    OPTIONS['ssl_keyfile'] = SSL_KEY
    OPTIONS['ssl_certfile'] = SSL_CRT
    SCHEME = 'https'

DB_CONFIG = {
    'user': os.environ.get('DB_USER', 'postgres'),
    'password': os.environ.get('DB_PASSWORD'),
    'host': os.environ.get('DB_HOST', 'localhost'),
    'port': int(os.environ.get('DB_PORT', '5432')),
    'dbname': os.environ.get('DB_NAME', 'libris'),
}

# Database configuration
DB_URI = (
    "sqlite:///:memory:" if TESTING else
    'postgresql+psycopg2://{user}:{password}@{host}:{port}/{dbname}'.format(**DB_CONFIG)
)

# Circulation policy
DAILY_FINE_RATE = Decimal(os.environ.get('LIBRIS_DAILY_FINE_RATE', '1.00'))
LOST_ITEM_PENALTY = Decimal(os.environ.get('LIBRIS_LOST_ITEM_PENALTY', '50.00'))
MAX_RENEWALS = int(os.environ.get('LIBRIS_MAX_RENEWALS', 3))
RENEWAL_DAYS = int(os.environ.get('LIBRIS_RENEWAL_DAYS', 14))
# A lost copy is taken out of the pool again even though it was already on loan
LOST_DECREMENTS_AVAILABLE = bool(int(os.environ.get('LIBRIS_LOST_DECREMENTS_AVAILABLE', 1)))
NOTES_MAX_LENGTH = 500
HISTORY_LIMIT = 50

__all__ = [
    'SCHEME', 'HOST', 'PORT', 'DEBUG', 'OPTIONS', 'DB_URI', 'DB_CONFIG', 'TESTING',
    'SEED', 'TOKEN_TTL', 'DAILY_FINE_RATE', 'LOST_ITEM_PENALTY', 'MAX_RENEWALS',
    'RENEWAL_DAYS', 'LOST_DECREMENTS_AVAILABLE',
]
