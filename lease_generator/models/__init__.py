"""Data models"""

from lease_generator.models.lease import (
    Financials,
    HouseRules,
    Jurisdiction,
    Landlord,
    LateFee,
    LeaseClause,
    LeaseInput,
    LeaseOutput,
    LeaseTerm,
    Notices,
    PetPolicy,
    PropertyInfo,
    Signatures,
    Tenant,
)
from lease_generator.models.usage import (
    DailyUsage,
    GenerationResult,
    RateLimitDecision,
    TokenUsage,
)

__all__ = [
    "Financials",
    "HouseRules",
    "Jurisdiction",
    "Landlord",
    "LateFee",
    "LeaseClause",
    "LeaseInput",
    "LeaseOutput",
    "LeaseTerm",
    "Notices",
    "PetPolicy",
    "PropertyInfo",
    "Signatures",
    "Tenant",
    "DailyUsage",
    "GenerationResult",
    "RateLimitDecision",
    "TokenUsage",
]
