"""Affiliate program: sign-up, referral codes and payouts.

Each affiliate gets a code like ``JOHSMI042``. Leads carrying the code earn
the affiliate a commission once approved.
"""

from leadfunnel.affiliates.codes import ReferralCodeGenerator, derive_prefix
from leadfunnel.affiliates.service import AffiliateService, CodeLookup

__all__ = ["AffiliateService", "CodeLookup", "ReferralCodeGenerator", "derive_prefix"]
