import json
import logging
import os
from datetime import datetime, timezone

from driving_booking import config

logger = logging.getLogger(__name__)


def ensure_data_dir():
    """Ensures the data directory exists."""
    if not os.path.exists(config.DATA_DIR):
        os.makedirs(config.DATA_DIR)


def load_token() -> str | None:
    """Loads the stored access token, or None when nobody is logged in."""
    if not os.path.exists(config.TOKEN_FILE):
        return None
    try:
        with open(config.TOKEN_FILE, "r") as f:
            data = json.load(f)
    except (json.JSONDecodeError, IOError):
        logger.warning("Failed to read token file. Treating session as logged out.")
        return None
    token = data.get("token") if isinstance(data, dict) else None
    if not token:
        logger.warning("Token file has unexpected format. Treating session as logged out.")
        return None
    return token


def save_token(token: str):
    """Saves the access token together with the time it was stored."""
    ensure_data_dir()
    try:
        data = {"last_updated": datetime.now(timezone.utc).isoformat(), "token": token}
        with open(config.TOKEN_FILE, "w") as f:
            json.dump(data, f, indent=2)
        logger.info(f"Saved session token to {config.TOKEN_FILE}")
    except IOError as e:
        logger.error(f"Failed to save session token: {e}")


def clear_token():
    """Removes the stored access token if there is one."""
    if os.path.exists(config.TOKEN_FILE):
        os.remove(config.TOKEN_FILE)
        logger.info("Removed stored session token.")
