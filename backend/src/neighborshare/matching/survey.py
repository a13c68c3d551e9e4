"""Structured listing survey parsing.

Offers and needs carry the same survey shape, stored verbatim as JSON text.
Parsing is lenient: a payload that is not valid JSON, is not an object, or
carries an invalid field value falls back to defaults field by field rather
than failing the whole listing. Every fallback is logged and counted.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, AliasChoices, ValidationError, field_validator

from ..observability.metrics import survey_degradations_total

logger = logging.getLogger(__name__)

DEFAULT_TIME_WINDOW = "flexible"
DEFAULT_QUANTITY = 1.0
DEFAULT_DISTANCE_KM = 5.0


class Survey(BaseModel):
    """Parsed listing survey.

    Attributes:
        category: Item category (e.g. meal, bread, produce, other)
        tags: Dietary/compatibility tags (e.g. halal, vegan)
        quantity: Number of portions/units offered or needed
        time_window: Pickup time preference (morning, afternoon, evening, flexible)
        distance_km: Distance the owner is willing to travel
    """
    model_config = ConfigDict(extra="ignore", frozen=True)

    category: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("category", "food_type"),
    )
    tags: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("tags", "diet_constraints"),
    )
    quantity: float = Field(
        default=DEFAULT_QUANTITY,
        ge=0,
        allow_inf_nan=False,
        validation_alias=AliasChoices("quantity", "portions"),
    )
    time_window: str = Field(
        default=DEFAULT_TIME_WINDOW,
        validation_alias=AliasChoices("time_window", "pickup_time_preference"),
    )
    distance_km: float = Field(
        default=DEFAULT_DISTANCE_KM,
        gt=0,
        allow_inf_nan=False,
        validation_alias=AliasChoices("distance_km", "distance_willing_km"),
    )

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            return value or None
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [item.strip().lower() if isinstance(item, str) else item for item in value]
        return value

    @field_validator("time_window", mode="before")
    @classmethod
    def _normalize_time_window(cls, value: Any) -> Any:
        if value is None:
            return DEFAULT_TIME_WINDOW
        if isinstance(value, str):
            return value.strip().lower() or DEFAULT_TIME_WINDOW
        return value

    def tag_set(self) -> Set[str]:
        return set(self.tags)


def _field_keys() -> Dict[str, Set[str]]:
    """Map every accepted payload key to the field it populates."""
    keys = {}
    for name, info in Survey.model_fields.items():
        choices = {name}
        alias = info.validation_alias
        if isinstance(alias, AliasChoices):
            choices.update(choice for choice in alias.choices if isinstance(choice, str))
        keys[name] = choices
    return keys


_FIELD_KEYS = _field_keys()


def _degrade(field: str, reason: str) -> None:
    survey_degradations_total.labels(field=field).inc()
    logger.warning(f"Survey field '{field}' fell back to default: {reason}")


def _field_for_key(key: Any) -> Optional[str]:
    for name, keys in _FIELD_KEYS.items():
        if key in keys:
            return name
    return None


def parse_survey(raw: Any) -> Survey:
    """Parse a raw survey payload, degrading invalid parts to defaults.

    Args:
        raw: JSON text, an already-decoded dict, a Survey, or None

    Returns:
        Survey: Parsed survey; never raises for malformed input
    """
    if isinstance(raw, Survey):
        return raw
    if raw is None:
        return Survey()

    payload = raw
    if isinstance(raw, (str, bytes, bytearray)):
        if not raw.strip():
            return Survey()
        try:
            payload = json.loads(raw)
        except ValueError as e:
            _degrade("payload", f"invalid JSON ({e})")
            return Survey()
        except RecursionError:
            _degrade("payload", "JSON nested too deeply")
            return Survey()

    if not isinstance(payload, dict):
        _degrade("payload", f"expected an object, got {type(payload).__name__}")
        return Survey()

    try:
        return Survey.model_validate(payload)
    except ValidationError as e:
        invalid_fields = []
        for error in e.errors():
            field = _field_for_key(error["loc"][0]) if error["loc"] else None
            if field and field not in invalid_fields:
                invalid_fields.append(field)
                _degrade(field, error["msg"])

    cleaned = dict(payload)
    for field in invalid_fields:
        for key in _FIELD_KEYS[field]:
            cleaned.pop(key, None)

    try:
        return Survey.model_validate(cleaned)
    except ValidationError as e:
        _degrade("payload", f"unrecoverable survey ({e.error_count()} errors)")
        return Survey()
