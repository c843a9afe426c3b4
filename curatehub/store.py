"""
Helpers used by the store adapters at their boundary:

  validate()         — typed parsing of caller input, raising ValidationError
  store_operation()  — counts an operation and turns driver exceptions into
                       StoreError with the original exception as its cause
"""
import logging
from contextlib import contextmanager
from typing import Any, Iterator, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from curatehub.errors import CurateError, StoreError, ValidationError
from curatehub.telemetry import STORE_ERRORS_TOTAL, STORE_OPERATIONS_TOTAL

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def validate(model: type[ModelT], data: Any) -> ModelT:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid {model.__name__}: {exc.error_count()} error(s)", exc
        ) from exc


@contextmanager
def store_operation(
    plugin: str,
    op: str,
    message: str,
    errors: tuple[type[BaseException], ...],
) -> Iterator[None]:
    STORE_OPERATIONS_TOTAL.labels(plugin=plugin, op=op).inc()
    try:
        yield
    except CurateError:
        raise
    except errors as exc:
        STORE_ERRORS_TOTAL.labels(plugin=plugin).inc()
        logger.warning("%s: %s", message, exc)
        raise StoreError(message, exc) from exc
