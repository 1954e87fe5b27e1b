"""
Logging setup shared by every module.

- get_logger(): one named logger for the whole app, configured on first use.
- Level comes from LOG_LEVEL (default INFO) so debugging a bad receipt is just
  `LOG_LEVEL=DEBUG streamlit run app/streamlit_app.py`.
"""

import logging
import os

_LOGGER_NAME = "recibodocs"
_configured = False


def get_logger(name: str = _LOGGER_NAME) -> logging.Logger:
    global _configured
    root = logging.getLogger(_LOGGER_NAME)
    if not _configured:
        level = os.environ.get("LOG_LEVEL", "INFO").upper()
        root.setLevel(getattr(logging, level, logging.INFO))
        if not root.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(
                "%(asctime)s %(levelname)s [%(name)s] %(message)s"
            ))
            root.addHandler(handler)
        root.propagate = False
        _configured = True
    if name == _LOGGER_NAME:
        return root
    return root.getChild(name)
