"""
Audit Request Model
===================
Inputs for one audit and the local field validation run before any
network activity.

Validation rules:
    hotel_name — non-empty after trim, at least 3 characters
    city       — non-empty after trim, at least 2 characters

Violations are reported per field (FieldErrors) so the caller can flag
exactly which input is invalid.
"""
from typing import Optional

from pydantic import BaseModel, Field

from app.core.constants import MIN_CITY_LENGTH, MIN_HOTEL_NAME_LENGTH
from app.core.errors import InputValidationError
from app.models.report import EvaluationType


class LocationHint(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class FieldErrors(BaseModel):
    hotel_name: bool = False
    city: bool = False

    @property
    def has_errors(self) -> bool:
        return self.hotel_name or self.city


def validate_audit_input(hotel_name: Optional[str], city: Optional[str]) -> FieldErrors:
    """Flag each input that fails its minimum length after trimming."""
    hotel = (hotel_name or "").strip()
    town = (city or "").strip()
    return FieldErrors(
        hotel_name=len(hotel) < MIN_HOTEL_NAME_LENGTH,
        city=len(town) < MIN_CITY_LENGTH,
    )


class AuditRequest(BaseModel):
    hotel_name: str
    city: str
    evaluation_type: EvaluationType = EvaluationType.NEW_ONBOARDING
    location_hint: Optional[LocationHint] = None

    @classmethod
    def create(
        cls,
        hotel_name: Optional[str],
        city: Optional[str],
        evaluation_type: EvaluationType | str | None = None,
        location_hint: Optional[LocationHint] = None,
    ) -> "AuditRequest":
        """
        Validate inputs and build a request.

        Raises
        ------
        InputValidationError
            If hotel_name or city fail validation. field_errors carries
            one flag per field.
        """
        errors = validate_audit_input(hotel_name, city)
        if errors.has_errors:
            raise InputValidationError(errors.model_dump())
        return cls(
            hotel_name=hotel_name.strip(),
            city=city.strip(),
            evaluation_type=EvaluationType.from_text(
                evaluation_type, EvaluationType.NEW_ONBOARDING
            ),
            location_hint=location_hint,
        )

    def with_location(self, location_hint: Optional[LocationHint]) -> "AuditRequest":
        return self.model_copy(update={"location_hint": location_hint})
