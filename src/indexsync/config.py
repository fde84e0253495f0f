"""Runtime settings for indexsync.

Settings are plain pydantic models. The only value read from the environment
is the default index endpoint, resolved by :func:`get_index_endpoint`.
"""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

from indexsync.core.types import SyncPolicy

ENDPOINT_ENV_VAR = "INDEXSYNC_ENDPOINT"
DEFAULT_ENDPOINT = "memory://default"


def get_index_endpoint(url: str | None = None) -> str:
    """Resolve the index service endpoint.

    Priority:
    1. Explicit URL argument
    2. INDEXSYNC_ENDPOINT environment variable
    3. Default: memory://default
    """
    if url:
        return url
    if env_url := os.getenv(ENDPOINT_ENV_VAR):
        return env_url
    return DEFAULT_ENDPOINT


class RetryPolicy(BaseModel):
    """Backoff budget for add/update pushes.

    The default of a single attempt means failures propagate straight to the
    caller. Deletes never retry; their failures are logged and ignored.
    """

    max_attempts: int = Field(default=1, ge=1)
    multiplier: float = Field(default=0.5, ge=0)
    max_wait: float = Field(default=8.0, ge=0)


class IndexSettings(BaseModel):
    """Process-wide indexing configuration."""

    endpoint: str = Field(default_factory=get_index_endpoint)
    default_policy: SyncPolicy = Field(default_factory=SyncPolicy)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    default_count: int = Field(default=10, ge=1)
    default_page: int = Field(default=1, ge=1)
