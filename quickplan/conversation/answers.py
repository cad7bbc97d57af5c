"""
Answer validation and Preference Store writes.

validate_answer() turns a raw answer from the presentation layer into a
normalized value, raising ValidationError before any state is touched.
write_answer() and clear_answer() are the only code paths that set or unset
preference fields for a question.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from quickplan.conversation.catalog import (
    DISSATISFACTION_REASONS,
    SELECTION_ATTRS,
    get_field_spec,
)
from quickplan.conversation.schemas import (
    ConversationContext,
    Destination,
    PreferenceSet,
    QuestionDescriptor,
)
from quickplan.shared.errors import ValidationError


# =============================================================================
# Answer models
# =============================================================================


class DateRangeAnswer(BaseModel):
    """Exact dates, or a rough trip length when dates are flexible."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    trip_length: Optional[int] = Field(default=None, ge=1, le=60)

    @model_validator(mode="after")
    def check_range(self) -> "DateRangeAnswer":
        if self.start_date and self.end_date:
            if self.end_date <= self.start_date:
                raise ValueError("end_date must be after start_date")
            self.trip_length = (self.end_date - self.start_date).days
        elif self.trip_length is None:
            raise ValueError("provide start_date and end_date, or trip_length")
        return self


class PartyAnswer(BaseModel):
    adults: int = Field(ge=1, le=20)
    children: int = Field(default=0, ge=0, le=10)
    child_ages: List[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_ages(self) -> "PartyAnswer":
        if self.child_ages and len(self.child_ages) != self.children:
            raise ValueError("child_ages must list one age per child")
        if any(age < 0 or age > 17 for age in self.child_ages):
            raise ValueError("child ages must be between 0 and 17")
        return self


class BudgetAnswer(BaseModel):
    """Per-night hotel budget."""

    min: int = Field(default=0, ge=0)
    max: int = Field(gt=0)

    @model_validator(mode="after")
    def check_bounds(self) -> "BudgetAnswer":
        if self.min > self.max:
            raise ValueError("min must not exceed max")
        return self


class SatisfactionAnswer(BaseModel):
    satisfied: bool
    reasons: List[str] = Field(default_factory=list)
    feedback: Optional[str] = None

    @model_validator(mode="after")
    def check_reasons(self) -> "SatisfactionAnswer":
        known = {reason_id for reason_id, _ in DISSATISFACTION_REASONS}
        unknown = [r for r in self.reasons if r not in known]
        if unknown:
            raise ValueError(f"unknown dissatisfaction reasons: {unknown}")
        if not self.satisfied and not self.reasons:
            raise ValueError("pick at least one thing to change")
        return self


def _parse(model: type, value: Any, field: str) -> BaseModel:
    try:
        return model.model_validate(value)
    except PydanticValidationError as e:
        errors = "; ".join(err["msg"] for err in e.errors())
        raise ValidationError(f"Invalid answer for {field}: {errors}", field=field)


# =============================================================================
# Validation
# =============================================================================


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} needs a non-empty text answer", field=field)
    return value.strip()


def _require_list(value: Any, field: str, allow_empty: bool = False) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        raise ValidationError(f"{field} needs a list of option ids", field=field)
    if not value and not allow_empty:
        raise ValidationError(f"{field} needs at least one selection", field=field)
    # Preserve order, drop duplicates
    return list(dict.fromkeys(value))


def _option_ids(question: QuestionDescriptor) -> List[str]:
    return [option["id"] for option in question.input_config.get("options", [])]


def _candidate_ids(question: QuestionDescriptor) -> List[str]:
    return [str(c["id"]) for c in question.input_config.get("candidates", [])]


def validate_answer(question: QuestionDescriptor, value: Any, ctx: ConversationContext) -> Any:
    """
    Normalize a raw answer for the question.

    Raises:
        ValidationError: the answer is malformed or refers to unknown options
    """
    field = question.field
    kind = question.input_kind
    allow_custom = question.input_config.get("allow_custom_text", False)

    if kind == "destination":
        if isinstance(value, dict):
            return _parse(Destination, value, field)
        text = _require_text(value, field)
        return Destination(raw_input=text, canonical_name=text.title())

    if kind == "date_range":
        return _parse(DateRangeAnswer, value, field)

    if kind == "party":
        return _parse(PartyAnswer, value, field)

    if kind == "budget":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = {"max": int(value)}
        return _parse(BudgetAnswer, value, field)

    if kind == "yes_no":
        if isinstance(value, bool):
            return value
        if value in ("yes", "no"):
            return value == "yes"
        raise ValidationError(f"{field} needs yes or no", field=field)

    if kind == "single_select":
        choice = _require_text(value, field)
        if choice not in _option_ids(question) and not allow_custom:
            raise ValidationError(f"'{choice}' is not an option for {field}", field=field)
        return choice

    if kind == "multi_select":
        choices = _require_list(value, field)
        unknown = [c for c in choices if c not in _option_ids(question)]
        if unknown and not allow_custom:
            raise ValidationError(f"Unknown options for {field}: {unknown}", field=field)
        return choices

    if kind == "text":
        return _require_text(value, field)

    if kind == "area_select":
        area_ids = _require_list(value, field)
        unknown = [a for a in area_ids if a not in _candidate_ids(question)]
        if unknown:
            raise ValidationError(f"Unknown areas: {unknown}", field=field)
        max_selection = question.input_config.get("max_selection")
        if max_selection and len(area_ids) > max_selection:
            raise ValidationError(f"Pick at most {max_selection} areas", field=field)
        return area_ids

    if kind == "split":
        return _validate_split(question, value)

    if kind == "hotel_select":
        hotel_id = _require_text(value, field)
        if hotel_id not in _candidate_ids(question):
            raise ValidationError(f"Unknown hotel: {hotel_id}", field=field)
        return hotel_id

    if kind in ("restaurant_select", "experience_select"):
        picks = _require_list(value, field, allow_empty=True)
        unknown = [p for p in picks if p not in _candidate_ids(question)]
        if unknown:
            raise ValidationError(f"Unknown {field}: {unknown}", field=field)
        return picks

    if kind == "satisfaction":
        if isinstance(value, bool):
            value = {"satisfied": value}
        return _parse(SatisfactionAnswer, value, field)

    raise ValidationError(f"Unsupported input kind: {kind}", field=field)


def _validate_split(question: QuestionDescriptor, value: Any) -> Dict[str, int]:
    expected = [a["id"] for a in question.input_config.get("areas", [])]

    # A suggestion id picks one of the precomputed splits
    if isinstance(value, str):
        for suggestion in question.input_config.get("suggestions", []):
            if suggestion["id"] == value:
                return dict(suggestion["nights"])
        raise ValidationError(f"Unknown split option: {value}", field="split")

    if not isinstance(value, dict) or set(value) != set(expected):
        raise ValidationError("split needs nights for every selected area", field="split")
    nights: Dict[str, int] = {}
    for area_id in expected:
        n = value[area_id]
        if not isinstance(n, int) or isinstance(n, bool) or n < 1:
            raise ValidationError("each area needs at least one night", field="split")
        nights[area_id] = n
    return nights


# =============================================================================
# Writes
# =============================================================================


def write_answer(prefs: PreferenceSet, field: str, value: Any, category: Optional[str] = None) -> None:
    """Store a validated answer in the Preference Store."""
    prefs.skipped.discard(field)

    if field == "destination":
        prefs.destination = value
    elif field == "dates":
        prefs.start_date = value.start_date
        prefs.end_date = value.end_date
        prefs.trip_length = value.trip_length
    elif field == "party":
        prefs.adults = value.adults
        prefs.children = value.children
        prefs.child_ages = list(value.child_ages)
    elif field == "budget":
        prefs.budget_min = value.min
        prefs.budget_max = value.max
    elif field == "accessibility":
        prefs.has_accessibility_needs = value
    elif field == "accessibility_type":
        prefs.accessibility_needs = value
    elif field == "areas":
        prefs.selected_areas = value
        if len(value) == 1:
            prefs.split = None
    elif field == "dining":
        prefs.dining_mode = value
    elif field == "hotels":
        prefs.selected_hotels[category] = value
        prefs.hotel_areas_done.add(category)
    elif field == "restaurants":
        prefs.selected_restaurants[category] = value
        prefs.cuisines_done.add(category)
    elif field == "experiences":
        prefs.selected_experiences[category] = value
        prefs.activity_types_done.add(category)
    elif field == "satisfaction":
        prefs.satisfied = value.satisfied
        prefs.dissatisfaction_reasons = list(value.reasons)
        if value.feedback:
            prefs.notes["satisfaction"] = value.feedback
    else:
        spec = get_field_spec(field)
        setattr(prefs, spec.attrs[0], value)


def mark_skipped(prefs: PreferenceSet, field: str, category: Optional[str] = None) -> None:
    """Record an explicit skip; repeatable fields skip only one category."""
    spec = get_field_spec(field)
    if spec.repeatable:
        getattr(prefs, spec.completion_set).add(category)
    else:
        prefs.skipped.add(field)


def clear_answer(prefs: PreferenceSet, field: str, category: Optional[str] = None) -> None:
    """Return a field (or one category of a repeatable field) to unanswered."""
    spec = get_field_spec(field)

    if spec.repeatable:
        getattr(prefs, spec.completion_set).discard(category)
        getattr(prefs, SELECTION_ATTRS[field]).pop(category, None)
        return

    prefs.skipped.discard(field)
    defaults = PreferenceSet()
    for attr in spec.attrs:
        setattr(prefs, attr, getattr(defaults, attr))
    if field == "satisfaction":
        prefs.notes.pop("satisfaction", None)
