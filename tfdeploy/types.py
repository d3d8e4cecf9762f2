"""Shared type definitions for tfdeploy.

This module contains enums and constants shared across subpackages to avoid
circular imports.
"""

from enum import Enum

from tfdeploy.errors import ConfigurationError

# Build selectors with special meaning; anything else names a single Lambda
BUILD_ALL = "all"
BUILD_NONE = "none"


class TerraformOperation(str, Enum):
    """Terraform lifecycle operation requested on the command line."""

    INIT = "init"
    PLAN = "plan"
    APPLY = "apply"
    DESTROY = "destroy"


VALID_OPERATIONS = tuple(op.value for op in TerraformOperation)


def parse_operation(value: str) -> TerraformOperation:
    """Parse a --tfop value.

    Args:
        value: Raw operation string.

    Returns:
        Matching TerraformOperation.

    Raises:
        ConfigurationError: If value is empty or not a recognised operation.
    """
    try:
        return TerraformOperation(value)
    except ValueError:
        raise ConfigurationError(
            "Bad operation: --tfop should be one of " + ", ".join(VALID_OPERATIONS)
        ) from None


__all__ = [
    "BUILD_ALL",
    "BUILD_NONE",
    "VALID_OPERATIONS",
    "TerraformOperation",
    "parse_operation",
]
