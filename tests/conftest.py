"""Root conftest — shared test configuration."""

import os

# Ensure tests never reach a real remote store or write into the working directory
os.environ.setdefault("MATCHSYNC_REMOTE_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("MATCHSYNC_LOCAL_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("MATCHSYNC_LOG_FORMAT", "text")
