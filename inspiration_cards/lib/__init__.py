import logging
import subprocess
import time
from typing import Dict

logger = logging.getLogger(__name__)

NOTIFY_TITLE = "Inspiration Cards"
NOTIFY_MIN_INTERVAL_SEC = 10.0

_NOTIFY_LAST: Dict[str, float] = {}


def notify(message: str, title: str = NOTIFY_TITLE):
    """
    Send desktop notification via notify-send.
    Only logs if notify-send is unavailable.
    """
    logger.warning("NOTICE: %s", message)
    try:
        subprocess.run(
            ["notify-send", title, message],
            check=False,
        )
    except OSError as e:
        logger.debug("notify-send unavailable: %s", e)


def notify_throttled(message: str, key: str = "") -> None:
    """Same message (or key) at most once per NOTIFY_MIN_INTERVAL_SEC."""
    key = key or message
    now = time.monotonic()
    last = _NOTIFY_LAST.get(key)
    if last is not None and now - last < NOTIFY_MIN_INTERVAL_SEC:
        return
    _NOTIFY_LAST[key] = now
    notify(message=message)
