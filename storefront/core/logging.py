from __future__ import annotations

import logging

from storefront.core.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    settings = get_settings()
    resolved = (level or settings.log_level).upper()
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logging.getLogger("storefront").setLevel(resolved)
    # httpx logs every request line at INFO, including provider order ids.
    logging.getLogger("httpx").setLevel(logging.WARNING)
