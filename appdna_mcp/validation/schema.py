from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any, Protocol

from jsonschema import ValidationError, validators
from jsonschema.exceptions import best_match

__all__ = ["SchemaCache", "ValidatorProtocol", "describe_validation_error"]


class ValidatorProtocol(Protocol):
    """Protocol representing a compiled JSON schema validator."""

    def iter_errors(self, instance: object) -> Any:
        """Yield validation errors for ``instance``."""


class SchemaCache:
    """Compile tool input schemas once and share validators by content."""

    def __init__(self) -> None:
        self._cache: dict[str, ValidatorProtocol] = {}

    def compile(self, schema: Mapping[str, Any]) -> ValidatorProtocol:
        """Return a validator for ``schema``, raising ``SchemaError`` if it is malformed."""

        fingerprint = self._fingerprint(schema)
        cached = self._cache.get(fingerprint)
        if cached is not None:
            return cached
        validator_cls = validators.validator_for(schema)
        validator_cls.check_schema(schema)
        validator = validator_cls(schema)
        self._cache[fingerprint] = validator
        return validator

    def first_error(
        self, schema: Mapping[str, Any], instance: object
    ) -> ValidationError | None:
        validator = self.compile(schema)
        return best_match(validator.iter_errors(instance))

    def __len__(self) -> int:
        return len(self._cache)

    @staticmethod
    def _fingerprint(schema: Mapping[str, Any]) -> str:
        payload = json.dumps(schema, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def describe_validation_error(error: ValidationError) -> dict[str, Any]:
    return {
        "message": error.message,
        "instancePath": [str(part) for part in error.absolute_path],
        "schemaPath": [str(part) for part in error.schema_path],
    }
