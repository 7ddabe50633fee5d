"""
utils/validators.py — Validation policies for untrusted stored data.

Two policies:
- Strict-or-drop (validate_item / validate_items): a record is either fully
  valid and default-filled, or it is reported and discarded. One corrupt
  record in a collection never affects its siblings.
- Merge-with-defaults (validate_or_default): always produces a complete
  value. Used only for the Settings singleton, which must never be absent.
"""

from collections.abc import Mapping
from typing import List, Optional, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError
from pydantic.alias_generators import to_camel

from models import to_record

logger = structlog.get_logger(__name__)

M = TypeVar('M', bound=BaseModel)


def _summarize(error: ValidationError) -> List[str]:
    """Compact 'loc: message' strings for the log report."""
    return [
        f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
        for err in error.errors()
    ]


def validate_item(model: Type[M], raw, label: str) -> Optional[M]:
    """
    Validate one untrusted value against a schema.

    Returns the typed, default-filled entity, or None when the value is
    invalid. Invalid values are reported, never raised.
    """
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        logger.warning(
            "invalid_record_dropped",
            label=label,
            model=model.__name__,
            errors=_summarize(e),
        )
        return None


def validate_items(model: Type[M], raw, label: str) -> List[M]:
    """Strict-or-drop over a collection. Anything that is not a list is empty."""
    if not isinstance(raw, list):
        return []

    valid = []
    for index, item in enumerate(raw):
        entity = validate_item(model, item, f"{label}[{index}]")
        if entity is not None:
            valid.append(entity)
    return valid


def revalidate(model: Type[M], value, label: str) -> Optional[M]:
    """
    Validate a value on its way into storage.

    Entities are dumped to their stored form first, so whatever is written
    is exactly what validate_item will accept when it is read back.
    """
    if isinstance(value, BaseModel):
        value = to_record(value)
    return validate_item(model, value, label)


def validate_or_default(model: Type[M], raw) -> M:
    """
    Resolve a possibly partial or corrupt value into a complete entity.

    Present, valid fields are overlaid onto the schema defaults; fields that
    fail validation fall back to their defaults. Non-mapping input counts as
    an empty mapping. Never raises.
    """
    if isinstance(raw, model):
        return raw
    if not isinstance(raw, Mapping):
        raw = {}

    try:
        return model.model_validate(raw)
    except ValidationError as e:
        bad_fields = {str(err['loc'][0]) for err in e.errors() if err['loc']}
        logger.warning(
            "fields_reset_to_default",
            model=model.__name__,
            fields=sorted(bad_fields),
        )

    kept = {
        key: value for key, value in raw.items()
        if key not in bad_fields and to_camel(str(key)) not in bad_fields
    }
    try:
        return model.model_validate(kept)
    except ValidationError:
        return model()
