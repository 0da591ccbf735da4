"""Schema validation for lease requests and generated leases.

Input and output go through separate validator instances. Generated data
is re-checked field by field, never assumed correct because the request
that produced it was.
"""

from typing import Any, Generic, Type, TypeVar

from pydantic import BaseModel, ValidationError

from lease_generator.models.lease import TENANT_SHAPE_TAGS, LeaseInput, LeaseOutput
from lease_generator.services.errors import (
    InputValidationError,
    LeaseValidationError,
    OutputValidationError,
    ValidationIssue,
)

ModelT = TypeVar("ModelT", bound=BaseModel)

# pydantic error type -> reason reported to the client
_REASONS = {
    "missing": "missing",
    "literal_error": "invalid_enum",
    "enum": "invalid_enum",
    "date_type": "invalid_date",
    "date_parsing": "invalid_date",
    "date_from_datetime_parsing": "invalid_date",
    "date_from_datetime_inexact": "invalid_date",
    "greater_than_equal": "out_of_range",
    "finite_number": "out_of_range",
    "greater_than": "out_of_range",
    "less_than_equal": "out_of_range",
    "too_short": "out_of_range",
    "string_too_short": "out_of_range",
    "value_error": "invalid_value",
    "union_tag_invalid": "wrong_type",
}


def _reason(error_type: str) -> str:
    if error_type in _REASONS:
        return _REASONS[error_type]
    if error_type.endswith("_type") or error_type.endswith("_parsing"):
        return "wrong_type"
    return "invalid_value"


def _format_path(loc: tuple) -> str:
    """Dotted path with the tenant shape tags removed.

    ('tenant', 'many', 0, 'name') -> 'tenant.0.name'
    """
    parts = []
    for i, part in enumerate(loc):
        if i > 0 and loc[i - 1] == "tenant" and part in TENANT_SHAPE_TAGS:
            continue
        parts.append(str(part))
    return ".".join(parts)


def issues_from_error(exc: ValidationError) -> list[ValidationIssue]:
    """Convert a pydantic ValidationError into one issue per field"""
    issues = []
    for err in exc.errors(include_url=False):
        issues.append(ValidationIssue(
            path=_format_path(err["loc"]),
            reason=_reason(err["type"]),
            message=err["msg"],
        ))
    return issues


class SchemaValidator(Generic[ModelT]):
    """Validate untrusted data against one model class"""

    def __init__(self, model: Type[ModelT], error_cls: Type[LeaseValidationError]):
        self.model = model
        self.error_cls = error_cls

    def validate(self, raw: Any) -> ModelT:
        """Return the validated record or raise ``error_cls`` listing every issue"""
        try:
            return self.model.model_validate(raw)
        except ValidationError as e:
            raise self.error_cls(issues_from_error(e)) from e


input_validator: SchemaValidator[LeaseInput] = SchemaValidator(LeaseInput, InputValidationError)
output_validator: SchemaValidator[LeaseOutput] = SchemaValidator(LeaseOutput, OutputValidationError)


def validate_input(raw: Any) -> LeaseInput:
    """Validate a caller-supplied lease request"""
    return input_validator.validate(raw)


def validate_output(raw: Any) -> LeaseOutput:
    """Validate lease data produced by a generation backend"""
    return output_validator.validate(raw)
