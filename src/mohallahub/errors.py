"""
Application error taxonomy.

Every error carries an HTTP status, an English message and a Hindi message.
The global handler in ``mohallahub.middleware.error_handler`` renders them
as ``{"detail": ..., "detail_hi": ...}``.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors that map to a client-facing response."""

    status_code: int = 400
    default_detail: str = "Request failed"
    default_detail_hi: str = "अनुरोध विफल रहा"

    def __init__(self, detail: str | None = None, detail_hi: str | None = None) -> None:
        self.detail = detail or self.default_detail
        self.detail_hi = detail_hi or self.default_detail_hi
        super().__init__(self.detail)


class ValidationFailedError(AppError):
    status_code = 400
    default_detail = "Validation failed"
    default_detail_hi = "सत्यापन विफल रहा"


class NotFoundError(AppError):
    status_code = 404
    default_detail = "Resource not found"
    default_detail_hi = "संसाधन नहीं मिला"


class UnauthorizedError(AppError):
    status_code = 401
    default_detail = "Not authorized to access this route"
    default_detail_hi = "इस मार्ग तक पहुंचने के लिए अधिकृत नहीं है"


class ForbiddenError(AppError):
    status_code = 403
    default_detail = "Forbidden"
    default_detail_hi = "निषिद्ध"


class ConflictError(AppError):
    status_code = 409
    default_detail = "Resource already exists"
    default_detail_hi = "संसाधन पहले से मौजूद है"


class RateLimitedError(AppError):
    status_code = 429
    default_detail = "Too many requests. Please try again later."
    default_detail_hi = "बहुत अधिक अनुरोध। कृपया बाद में पुनः प्रयास करें।"

    def __init__(
        self,
        detail: str | None = None,
        detail_hi: str | None = None,
        retry_after: int | None = None,
    ) -> None:
        super().__init__(detail, detail_hi)
        self.retry_after = retry_after


# Hindi fallbacks for plain HTTP errors raised by the framework (404 route, 405, ...)
HTTP_STATUS_HINDI: dict[int, str] = {
    400: "अमान्य अनुरोध",
    401: "इस मार्ग तक पहुंचने के लिए अधिकृत नहीं है",
    403: "निषिद्ध",
    404: "संसाधन नहीं मिला",
    405: "यह विधि अनुमत नहीं है",
    409: "संसाधन पहले से मौजूद है",
    422: "सत्यापन विफल रहा",
    429: "बहुत अधिक अनुरोध। कृपया बाद में पुनः प्रयास करें।",
    500: "सर्वर त्रुटि",
}
