"""
Error taxonomy shared by every service.

Services raise these directly (they are plain HTTPException subclasses), so
FastAPI renders them as {"detail": "..."} with the matching status code and
no extra exception handlers are needed.
"""
from fastapi import HTTPException, status


class NotFoundError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class BadRequestError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class ConflictError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class PaymentRequiredError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=detail)


class InternalError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
