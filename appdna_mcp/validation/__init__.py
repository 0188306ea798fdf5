"""JSON schema helpers for tool input validation."""

from .schema import SchemaCache, ValidatorProtocol, describe_validation_error

__all__ = ["SchemaCache", "ValidatorProtocol", "describe_validation_error"]
