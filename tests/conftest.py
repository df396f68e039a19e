"""
Test environment. Settings are read at import time, so the environment must be
set before any app module is imported.
"""

import os

os.environ["APP_ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-only-secret-key-0123456789abcdef"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["SEED_DEFAULTS"] = "false"

import app.core.security as security  # noqa: E402

# Minimum bcrypt cost keeps the suite fast; hashing semantics are unchanged.
security.BCRYPT_ROUNDS = 4
