"""Rate limiting configuration for the lead funnel API.

Two layers share the same client identity:

- ``limiter`` (slowapi) applies ``default_rate_limit`` to the other public
  routes through ``@limiter.limit``.
- ``SubmissionGate`` guards the public submission endpoint with the tighter
  ``submission_rate_limit``. It runs before the request body is validated
  and never touches the identity store.
"""

import math
import time

from limits import parse
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter
from slowapi import Limiter
from starlette.requests import Request

from leadfunnel.errors import RateLimitedError
from leadfunnel.logging_config import get_logger
from leadfunnel.settings import settings

logger = get_logger(__name__)

SUBMISSION_SCOPE = "lead-submission"


def client_identity(request: Request) -> str:
    """Client key: first X-Forwarded-For hop, then X-Real-IP, then the peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop
    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class SubmissionGate:
    """Fixed-window counter per client for the submission endpoint.

    Counters live in a ``limits`` storage (``memory://`` or a Redis URI) whose
    increments are atomic, so concurrent requests cannot both slip through.

    Args:
        limit: Limit in ``limits`` notation, e.g. ``"5/minute"``
        storage_uri: ``limits`` storage URI
        enabled: When False every request is allowed
    """

    def __init__(
        self,
        limit: str | None = None,
        storage_uri: str | None = None,
        enabled: bool | None = None,
    ):
        self.limit_text = limit or settings.submission_rate_limit
        self.limit = parse(self.limit_text)
        self.storage = storage_from_string(storage_uri or settings.rate_limit_storage_uri)
        self.strategy = FixedWindowRateLimiter(self.storage)
        self.enabled = settings.rate_limit_enabled if enabled is None else enabled

    def check(self, identity: str) -> None:
        """Count one request for ``identity``.

        Raises:
            RateLimitedError: If the window is already full
        """
        if not self.enabled:
            return
        if self.strategy.hit(self.limit, SUBMISSION_SCOPE, identity):
            return

        stats = self.strategy.get_window_stats(self.limit, SUBMISSION_SCOPE, identity)
        retry_after = max(1, math.ceil(stats.reset_time - time.time()))
        logger.warning(
            "submission_rate_limited",
            identity=identity,
            limit=self.limit_text,
            retry_after=retry_after,
        )
        raise RateLimitedError(identity, self.limit_text, retry_after)

    def reset(self) -> None:
        self.storage.reset()


# Single shared limiter instance for the other public routes
limiter = Limiter(
    key_func=client_identity,
    default_limits=[settings.default_rate_limit],
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.rate_limit_enabled,
)
