"""
Tests for `affiliates/codes.py`.

Covers referral code issuance:
- Prefixes are derived from the affiliate's name.
- Suffixes are zero padded to three digits.
- Collisions are retried and exhaustion raises a typed error.
"""

import pytest

from leadfunnel.affiliates.codes import ReferralCodeGenerator, derive_prefix
from leadfunnel.errors import CodeGenerationExhaustedError


@pytest.mark.parametrize(
    ("name", "prefix"),
    [
        ("John Smith", "JOHSMI"),
        ("john", "JOH"),
        ("Mary Jane Watson", "MARJAN"),
        ("Al", "AL"),
        ("O'Neil Bo", "ONEBO"),
        ("!!! ???", "AFF"),
        ("", "AFF"),
    ],
)
def test_derive_prefix(name: str, prefix: str) -> None:
    assert derive_prefix(name) == prefix


def test_candidate_is_zero_padded() -> None:
    generator = ReferralCodeGenerator(randbelow=lambda n: 7)

    assert generator.candidate("JOH") == "JOH007"


def test_generate_retries_until_a_code_is_free() -> None:
    suffixes = iter([1, 1, 2])
    generator = ReferralCodeGenerator(randbelow=lambda n: next(suffixes))
    taken = {"JOH001"}
    claimed = []

    def claim(code: str):
        claimed.append(code)
        return None if code in taken else {"code": code}

    code, record = generator.generate("John", claim)

    assert code == "JOH002"
    assert record == {"code": "JOH002"}
    assert claimed == ["JOH001", "JOH001", "JOH002"]


def test_generate_exhausts_against_an_always_colliding_store() -> None:
    generator = ReferralCodeGenerator(max_attempts=4)
    calls = []

    def claim(code: str):
        calls.append(code)
        return None

    with pytest.raises(CodeGenerationExhaustedError) as exc_info:
        generator.generate("John Smith", claim)

    assert len(calls) == 4
    assert exc_info.value.prefix == "JOHSMI"
    assert exc_info.value.attempts == 4
