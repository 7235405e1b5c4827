# backend/backoffice/config.py
from __future__ import annotations
import os


class Config:
    # SQLite DB stored in backend/instance/backoffice.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///backoffice.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Lottery day close
    # How long a PENDING_CLOSE day waits for commit before it reverts to OPEN.
    LOTTERY_PENDING_CLOSE_TTL_SECONDS = int(os.environ.get("LOTTERY_PENDING_CLOSE_TTL_SECONDS", "3600"))
    # Prepare, cancel and the expiry sweep.
    LOTTERY_TX_TIMEOUT_MS = int(os.environ.get("LOTTERY_TX_TIMEOUT_MS", "10000"))
    # Commit and rollover; a commit may touch 50+ packs.
    LOTTERY_TX_BULK_TIMEOUT_MS = int(os.environ.get("LOTTERY_TX_BULK_TIMEOUT_MS", "30000"))
