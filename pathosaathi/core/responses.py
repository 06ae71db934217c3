"""
Response Envelope

Every endpoint answers with the same JSON shape:

    {"success": true,  "message": "...", "data": {...}}
    {"success": false, "message": "...", "error": {"code": "...", "details": ...}}
"""
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder


def success_response(data: Any = None, message: str = "Operation successful") -> dict:
    """Wrap a payload in the success envelope."""
    return {
        "success": True,
        "message": message,
        "data": jsonable_encoder(data),
    }


def error_response(message: str, code: Optional[str] = None, details: Any = None) -> dict:
    """Build the error envelope used by the exception handlers."""
    return {
        "success": False,
        "message": message,
        "error": {
            "code": code,
            "details": jsonable_encoder(details),
        },
    }
