"""Shape validation helpers.

Shapes are pydantic models. Data moving between steps is kept as plain JSON
compatible dictionaries keyed by each field's wire name (its alias when one is
declared), so it can be persisted by any repository backend.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Type

from pydantic import BaseModel, ValidationError
from pydantic.fields import FieldInfo

from .errors import SchemaValidationError

logger = logging.getLogger(__name__)

Shape = Type[BaseModel]


def wire_name(name: str, field: FieldInfo) -> str:
    return field.alias or name


def wire_names(shape: Shape) -> set[str]:
    """All names under which ``shape`` accepts a field."""
    names: set[str] = set()
    for name, field in shape.model_fields.items():
        names.add(name)
        names.add(wire_name(name, field))
    return names


def validate_shape(shape: Shape, data: Any, *, label: str) -> Dict[str, Any]:
    """Validate ``data`` against ``shape`` and return its JSON form.

    Raises:
        SchemaValidationError: If ``data`` does not conform.
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json", by_alias=True)
    try:
        instance = shape.model_validate(data)
    except ValidationError as exc:
        errors = json.loads(exc.json(include_url=False))
        logger.debug(f"{label} failed validation against {shape.__name__}: {errors}")
        raise SchemaValidationError(
            f"{label} does not conform to {shape.__name__}: "
            f"{exc.error_count()} validation error(s)",
            errors=errors,
        ) from exc
    return instance.model_dump(mode="json", by_alias=True)


def _is_model(annotation: Any) -> bool:
    return isinstance(annotation, type) and issubclass(annotation, BaseModel)


def unsatisfied_fields(producer: Shape, consumer: Shape, prefix: str = "") -> List[str]:
    """Return required ``consumer`` fields that ``producer`` never provides.

    An empty list means data produced under ``producer`` is structurally able
    to satisfy ``consumer``. Nested model fields are checked recursively.
    """
    produced: Dict[str, FieldInfo] = {
        wire_name(name, field): field for name, field in producer.model_fields.items()
    }
    missing: List[str] = []
    for name, field in consumer.model_fields.items():
        key = wire_name(name, field)
        source = produced.get(key)
        if source is None:
            if field.is_required():
                missing.append(f"{prefix}{key}")
            continue
        if (
            _is_model(source.annotation)
            and _is_model(field.annotation)
            and source.annotation is not field.annotation
        ):
            missing.extend(
                unsatisfied_fields(source.annotation, field.annotation, f"{prefix}{key}.")
            )
    return missing
