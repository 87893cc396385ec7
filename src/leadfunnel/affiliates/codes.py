"""Referral code generation.

Codes look like ``JOHSMI042``: up to six characters derived from the
affiliate's name plus a zero-padded three digit suffix. Uniqueness is never
checked by reading first; each candidate is handed to a claim callback that performs
a conditional insert and reports whether it won.
"""

import re
import secrets
from typing import Callable, TypeVar

from leadfunnel.errors import CodeGenerationExhaustedError
from leadfunnel.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

MAX_PREFIX_LENGTH = 6
SUFFIX_SPACE = 1000
FALLBACK_PREFIX = "AFF"

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def derive_prefix(name: str) -> str:
    """First three characters of each name token, upper-cased, max six.

    >>> derive_prefix("John Smith")
    'JOHSMI'
    >>> derive_prefix("Al")
    'AL'
    """
    parts = [_NON_ALNUM.sub("", token)[:3] for token in name.split()]
    prefix = "".join(parts).upper()[:MAX_PREFIX_LENGTH]
    return prefix or FALLBACK_PREFIX


class ReferralCodeGenerator:
    """Issue codes unique within the affiliate namespace.

    Args:
        max_attempts: Candidates to try before giving up
        randbelow: Source of the numeric suffix, ``secrets.randbelow`` by default
    """

    def __init__(
        self,
        max_attempts: int = 10,
        randbelow: Callable[[int], int] = secrets.randbelow,
    ):
        self.max_attempts = max_attempts
        self._randbelow = randbelow

    def candidate(self, prefix: str) -> str:
        return f"{prefix}{self._randbelow(SUFFIX_SPACE):03d}"

    def generate(self, name: str, claim: Callable[[str], T | None]) -> tuple[str, T]:
        """Find a free code for ``name``.

        Args:
            name: Affiliate display name
            claim: Conditional insert; returns the created record, or None
                when the code is already taken

        Returns:
            Tuple of (code, record returned by the claim)

        Raises:
            CodeGenerationExhaustedError: If every attempt collided
        """
        prefix = derive_prefix(name)
        for attempt in range(1, self.max_attempts + 1):
            code = self.candidate(prefix)
            record = claim(code)
            if record is not None:
                logger.info("referral_code_issued", code=code, attempt=attempt)
                return code, record
            logger.info("referral_code_collision", code=code, attempt=attempt)

        logger.error("referral_code_exhausted", prefix=prefix, attempts=self.max_attempts)
        raise CodeGenerationExhaustedError(prefix, self.max_attempts)
