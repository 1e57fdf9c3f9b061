"""
Shared API utility functions.
"""

from uuid import UUID

from fastapi import HTTPException, status


def is_uuid(value: str) -> bool:
    try:
        UUID(value)
    except (TypeError, ValueError):
        return False
    return True


def require_uuid(value: str, detail: str, status_code: int = status.HTTP_404_NOT_FOUND) -> str:
    """
    Reject ids that cannot exist before they reach a UUID column.

    Postgres refuses to compare a UUID column with a malformed string, so an
    unchecked path id would surface as a database error instead of a 404.
    """
    if not is_uuid(value):
        raise HTTPException(status_code=status_code, detail=detail)
    return value
