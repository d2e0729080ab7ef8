"""
Error taxonomy for the API.

Boot-time failures (ConfigurationError, DatabaseConnectionError) are plain
exceptions: the entry point logs them and exits with status 1.

Request-time failures subclass HTTPException so services can raise them and
the server's exception handlers render the JSON error body.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from fastapi import HTTPException


class ConfigurationError(Exception):
    def __init__(self, missing: Sequence[str]):
        self.missing = list(missing)
        super().__init__(f"Missing required environment variables: {', '.join(self.missing)}")


class DatabaseConnectionError(Exception):
    pass


class ValidationError(HTTPException):
    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(status_code=400, detail=message)
        self.errors = errors or []


class ConflictError(HTTPException):
    def __init__(self, message: str):
        super().__init__(status_code=409, detail=message)


class InvalidTransitionError(ConflictError):
    def __init__(self, entity: str, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {entity} from {current} to {target}")


class NotFoundError(HTTPException):
    def __init__(self, message: str):
        super().__init__(status_code=404, detail=message)


class AuthenticationError(HTTPException):
    def __init__(self, message: str):
        super().__init__(status_code=401, detail=message, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(HTTPException):
    def __init__(self, message: str):
        super().__init__(status_code=403, detail=message)
