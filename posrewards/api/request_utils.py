"""
Request body helpers shared by the API blueprints.
"""
from typing import Any, Dict, Iterable

from flask import request

from ..utils.exceptions import ValidationError


def get_json_body() -> Dict[str, Any]:
    """The request body as a dict; anything else is a 400."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def require_fields(data: Dict[str, Any], fields: Iterable[str]) -> None:
    missing = [f for f in fields if data.get(f) in (None, '')]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", field=missing[0])
