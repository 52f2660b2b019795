"""Run the refresh token sweeper as a standalone process."""

import logging
import time

from authgate.config import get_settings
from authgate.core.database import build_engine, build_session_factory
from authgate.services.credential_store import SqlCredentialStore
from authgate.services.token_sweeper import TokenSweeper


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    settings = get_settings()
    store = SqlCredentialStore(build_session_factory(build_engine(settings)))
    sweeper = TokenSweeper(
        store,
        settings.REFRESH_TOKEN_LIFETIME,
        interval_seconds=settings.SWEEP_INTERVAL_SECONDS,
    )
    sweeper.start()
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        sweeper.stop()


if __name__ == "__main__":
    main()
