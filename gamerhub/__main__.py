"""
gamerhub.__main__ — Entry point for ``python -m gamerhub``
==========================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Serve the API and both hubs with uvicorn (blocking).

Run with::

    python -m gamerhub
"""

from __future__ import annotations

import logging

import uvicorn
from dotenv import load_dotenv

from gamerhub.config import load_config
from gamerhub.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("gamerhub")


def main() -> None:
    """Bootstrap and run the GamerHub API."""

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    cfg = load_config()
    logger.info("Config loaded — Community: %s", cfg.community_name)

    # 3. Database.
    engine = create_db_engine()
    init_db(engine)
    engine.dispose()

    # 4. Serve (blocks until Ctrl+C or SIGTERM).
    logger.info("Starting API on port %d …", cfg.api_port)
    uvicorn.run("gamerhub.api.main:app", host="0.0.0.0", port=cfg.api_port, log_config=None)


if __name__ == "__main__":
    main()
