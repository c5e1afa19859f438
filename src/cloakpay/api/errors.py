from __future__ import annotations

from fastapi import HTTPException, status

from ..domain.errors import EntityNotFoundError, InvalidStateError


def to_http_exception(error: Exception) -> HTTPException:
    """Map a domain error raised by a use case to its HTTP response."""
    if isinstance(error, EntityNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, InvalidStateError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
