from fastapi import HTTPException, status

class AppError(HTTPException):
    """HTTPException carrying a stable machine-readable code such as ``Item.NotFound``."""
    status_code_default = status.HTTP_400_BAD_REQUEST

    def __init__(self, code: str, message: str, status_code: int | None = None):
        super().__init__(status_code=status_code or self.status_code_default, detail=message)
        self.code = code
        self.message = message

class NotFoundError(AppError):
    status_code_default = status.HTTP_404_NOT_FOUND

class ValidationFailed(AppError):
    status_code_default = status.HTTP_400_BAD_REQUEST

class ConflictError(AppError):
    status_code_default = status.HTTP_409_CONFLICT

class ForbiddenError(AppError):
    status_code_default = status.HTTP_403_FORBIDDEN

class UnauthorizedError(AppError):
    status_code_default = status.HTTP_401_UNAUTHORIZED

    def __init__(self, code: str = "Auth.Unauthorized", message: str = "Invalid or expired token"):
        super().__init__(code, message)
        self.headers = {"WWW-Authenticate": "Bearer"}
