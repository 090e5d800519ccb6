"""
core/errors.py -- Application exception hierarchy.

Route handlers and services raise these; the handlers registered in
api/main.py turn them into the response envelope
{"success": false, "message": ..., "errors": [...]} with the matching status.

    PetKeeperError (base)        -> 500
    +-- InvalidInput             -> 400
    +-- Unauthenticated          -> 401
    +-- Forbidden                -> 403
    +-- NotFound                 -> 404
    +-- Conflict                 -> 409

message is always safe to return to the client. Anything that must not
leak (SQL, stack traces, which share-code check failed) stays in the log.

The authorization checks in auth/permissions.py never raise; they return
booleans and the route layer picks Forbidden or NotFound.
"""

from __future__ import annotations


class PetKeeperError(Exception):
    status_code = 500
    default_message = "An unexpected error occurred."

    def __init__(self, message: str | None = None, errors: list[str] | None = None) -> None:
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class InvalidInput(PetKeeperError):
    status_code = 400
    default_message = "Validation failed."


class Unauthenticated(PetKeeperError):
    status_code = 401
    default_message = "Authentication required."


class Forbidden(PetKeeperError):
    status_code = 403
    default_message = "You do not have permission to perform this action."


class NotFound(PetKeeperError):
    status_code = 404
    default_message = "Resource not found."


class Conflict(PetKeeperError):
    status_code = 409
    default_message = "Resource already exists."
