"""
Runtime settings.

Everything tunable lives on one pydantic model and can be overridden with
RECIBODOCS_* environment variables:

- RECIBODOCS_ROW_TOLERANCE: vertical distance (PDF units) for "same row".
- RECIBODOCS_RENDER_SCALE: zoom the marking canvas was rendered at.
- RECIBODOCS_CACHE_TTL_SECONDS: lifetime of cached config-store reads.
- RECIBODOCS_DATA_DIR: where the Streamlit app keeps its JSON stores.
"""

from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel

_ENV_PREFIX = "RECIBODOCS_"


class Settings(BaseModel):
    row_tolerance: float = 2.5
    render_scale: float = 1.5
    cache_ttl_seconds: float = 300.0
    data_dir: str = ".recibodocs"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    overrides = {}
    for name in Settings.model_fields:
        raw = os.environ.get(_ENV_PREFIX + name.upper())
        if raw is not None:
            overrides[name] = raw
    return Settings(**overrides)
