import logging
import os

# -----------------------------
# Configuration & Logging
# -----------------------------
DATABASE_URL = os.getenv("LIBDESK_DB", "sqlite:///./libdesk.db")
LOG_LEVEL = os.getenv("LIBDESK_LOG", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def configure_logging(level=None):
    logging.basicConfig(level=level or LOG_LEVEL, format=LOG_FORMAT)
    return logging.getLogger("libdesk")
