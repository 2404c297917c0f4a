"""
Shared request dependencies.
"""

from fastapi import Request

from logmux.core.exceptions import ValidationError
from logmux.services.logs.base import StdType


def get_std_types(request: Request) -> StdType:
    """Stream selection from the ``stdout``/``stderr`` presence flags; at least one is required."""
    std_types = StdType.from_query(request.query_params)
    if not std_types:
        raise ValidationError("stdout or stderr is required")
    return std_types
