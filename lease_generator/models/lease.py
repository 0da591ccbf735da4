"""Lease input and output models.

``LeaseInput`` is what the form posts; ``LeaseOutput`` is what the
generation backend must return before a document is rendered. The two are
separate classes so that generated data is always checked against its own
schema, never trusted because the request already passed.
"""

import re
from datetime import date
from typing import Annotated, Literal, Optional, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Discriminator,
    Field,
    StrictBool,
    StrictFloat,
    StrictInt,
    Tag,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

Renewal = Literal["none", "auto", "mutual"]
ProrationMethod = Literal["actual_days", "30_day_month"]
Utility = Literal["water", "sewer", "trash", "gas", "electric", "internet"]
LateFeeType = Literal["flat", "percent"]
SmokingPolicy = Literal["allowed", "prohibited", "designated"]
ConsentPolicy = Literal["prohibited", "with_consent"]
NoticeDelivery = Literal["email", "mail", "both"]
SignatureMethod = Literal["e-sign", "wet"]
PropertyType = Literal["apartment", "house", "condo", "duplex", "townhouse"]

# Leaf types are strict: "2500", true or 2500.0 for a count are wrong_type, not coerced
Money = StrictFloat
Count = StrictInt
Flag = StrictBool

_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")


def _iso_date(value):
    """Accept only YYYY-MM-DD strings (or dates built in Python)"""
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise PydanticCustomError("iso_date_type", "Input should be a date string in YYYY-MM-DD format")
    if not _ISO_DATE.fullmatch(value):
        raise PydanticCustomError("date_parsing", "Input should be a date in YYYY-MM-DD format")
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise PydanticCustomError(
            "date_parsing", "Input should be a valid calendar date, {error}", {"error": str(e)}
        ) from e


IsoDate = Annotated[date, BeforeValidator(_iso_date)]


class LeaseModel(BaseModel):
    """Base for lease records: camelCase on the wire, snake_case in Python.

    Infinite and NaN amounts are rejected.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        allow_inf_nan=False,
    )


class Jurisdiction(LeaseModel):
    country: str = Field(..., min_length=1)
    state: Optional[str] = None
    city: Optional[str] = None


class LeaseTerm(LeaseModel):
    start_date: IsoDate
    end_date: Optional[IsoDate] = None
    months: Optional[Count] = Field(None, ge=1)
    renewal: Renewal

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self


class LateFee(LeaseModel):
    type: LateFeeType
    value: Money = Field(..., ge=0)
    grace_days: Count = Field(..., ge=0)


class Financials(LeaseModel):
    monthly_rent: Money = Field(..., ge=0)
    security_deposit: Money = Field(..., ge=0)
    proration_method: ProrationMethod
    utilities_included: list[Utility] = []
    late_fee: Optional[LateFee] = None


class PetPolicy(LeaseModel):
    allowed: Flag
    fee: Money = Field(0, ge=0)
    deposit: Money = Field(0, ge=0)
    rent: Money = Field(0, ge=0)


class HouseRules(LeaseModel):
    smoking: SmokingPolicy
    subletting: ConsentPolicy
    alterations: ConsentPolicy
    insurance_required: Flag
    parking: Optional[str] = None


class Notices(LeaseModel):
    delivery: NoticeDelivery


class Signatures(LeaseModel):
    method: SignatureMethod


class PropertyInfo(LeaseModel):
    address: str = Field(..., min_length=1)
    type: Optional[PropertyType] = None
    include_bed_bath: Optional[Flag] = None
    bedrooms: Optional[Count] = Field(None, ge=0)
    bathrooms: Optional[Money] = Field(None, ge=0)
    zip_code: Optional[str] = None


class Landlord(LeaseModel):
    name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    email: Optional[str] = None


class Tenant(LeaseModel):
    name: str = Field(..., min_length=1)
    email: Optional[str] = None


def _tenant_shape(value) -> str:
    return "many" if isinstance(value, list) else "single"


# A lone tenant object or a non-empty list of them
TenantField = Annotated[
    Union[
        Annotated[Tenant, Tag("single")],
        Annotated[list[Tenant], Field(min_length=1), Tag("many")],
    ],
    Discriminator(_tenant_shape),
]

TENANT_SHAPE_TAGS = ("single", "many")


class _TenantRecord(LeaseModel):
    tenant: TenantField

    @property
    def tenants(self) -> list[Tenant]:
        """Tenants as a list, whichever shape was submitted"""
        if isinstance(self.tenant, list):
            return list(self.tenant)
        return [self.tenant]


class LeaseInput(_TenantRecord):
    """Lease request as submitted by the caller"""

    jurisdiction: Jurisdiction
    term: LeaseTerm
    financials: Financials
    pets: PetPolicy = Field(default_factory=lambda: PetPolicy(allowed=False))
    rules: HouseRules
    notices: Notices
    signatures: Signatures
    property: PropertyInfo
    landlord: Landlord
    tenant: TenantField
    captcha_token: Optional[str] = None


class LeaseClause(LeaseModel):
    heading: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)


class LeaseOutput(_TenantRecord):
    """Fully elaborated lease returned by the generation backend"""

    title: str = "Residential Lease Agreement"
    jurisdiction: Jurisdiction
    term: LeaseTerm
    financials: Financials
    pets: PetPolicy
    rules: HouseRules
    notices: Notices
    signatures: Signatures
    property: PropertyInfo
    landlord: Landlord
    tenant: TenantField
    clauses: list[LeaseClause] = []
    disclaimers: list[str] = []
