"""
Ollama Chat - Error taxonomy

Every failure of a folder operation is one of four kinds so that clients
(e.g. the sidebar refusing a drag-and-drop into a descendant) can react to
the specific reason instead of a generic 500. Shared conversation links add
two more: not public, and expired.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class FolderError(Exception):
    """Base class for errors surfaced by the organization services."""

    code = "error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(FolderError):
    code = "invalid_input"
    status_code = 400


class NotFoundError(FolderError):
    code = "not_found"
    status_code = 404


class FolderNotFoundError(NotFoundError):
    def __init__(self, folder_id):
        super().__init__(f"Folder not found: {folder_id}")
        self.folder_id = folder_id


class CyclicMoveError(FolderError):
    code = "cyclic_move"
    status_code = 409

    def __init__(self, folder_id, parent_id):
        super().__init__(f"Cannot move folder {folder_id} into its own descendant {parent_id}")
        self.folder_id = folder_id
        self.parent_id = parent_id


class ForbiddenError(FolderError):
    code = "forbidden"
    status_code = 403


class ShareExpiredError(FolderError):
    code = "share_expired"
    status_code = 410


class StoreUnavailableError(FolderError):
    """Transient persistence failure; the caller may retry."""

    code = "store_unavailable"
    status_code = 503


async def folder_error_handler(request: Request, exc: FolderError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(FolderError, folder_error_handler)
