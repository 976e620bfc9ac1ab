"""
Error taxonomy for the quote engine.

Per-member errors (MissingInputData, AmbiguousGeography, NoDataAvailable)
are turned into batch entries by the orchestrator and never abort a run.
PersistenceFailure aborts the run it belongs to.
"""

from typing import List, Optional


class QuoteError(Exception):
    """Base class for all quote engine errors."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


# -----------------------------------------------------------------------------
# Per-member input problems
# -----------------------------------------------------------------------------

class MissingInputData(QuoteError):
    """Member record lacks a ZIP code, a date of birth, or a computable age."""


class AmbiguousGeography(QuoteError):
    """ZIP maps to more than one rating county and nothing picks one."""

    def __init__(self, zip_code: Optional[str], candidates: List[str]):
        super().__init__("ZIP maps to multiple counties - a county must be chosen")
        self.zip_code = zip_code
        self.candidates = list(candidates)


# -----------------------------------------------------------------------------
# Reference data gaps
# -----------------------------------------------------------------------------

class NoDataAvailable(QuoteError):
    """Reference data has nothing for the requested parameters."""


class NoCountiesForZip(NoDataAvailable):
    pass


class NoPlansInCounty(NoDataAvailable):
    pass


class NoPricingForParameters(NoDataAvailable):
    pass


class NoSilverPlans(NoDataAvailable):
    pass


class NoSilverPricing(NoDataAvailable):
    pass


class NoPricedSilverPlans(NoDataAvailable):
    pass


class FplTableUnavailable(QuoteError):
    """No poverty guideline table is configured for the tax year."""


# -----------------------------------------------------------------------------
# Collaborators and persistence
# -----------------------------------------------------------------------------

class ExternalServiceUnavailable(QuoteError):
    """The affordability collaborator failed, timed out or returned nothing usable."""


class PersistenceFailure(QuoteError):
    """A quote batch could not be written."""


# -----------------------------------------------------------------------------
# Lookups
# -----------------------------------------------------------------------------

class GroupNotFound(QuoteError):
    pass


class MemberNotFound(QuoteError):
    pass


class NoMembersInGroup(QuoteError):
    pass
