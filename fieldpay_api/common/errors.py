# fieldpay_api/common/errors.py
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from fieldpay_api.common.http import fail


class APIError(Exception):
    """Custom API Error class."""
    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message, code=None, status_code=None, payload=None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.payload = payload


class ValidationError(APIError):
    """Malformed or out-of-range input, rejected before any calculation."""
    status_code = 422
    code = "VALIDATION_ERROR"


class RateConfigurationError(APIError):
    """Engineer or organization lacks the rate fields a calculation needs."""
    status_code = 422
    code = "RATES_NOT_CONFIGURED"


class StateTransitionError(APIError):
    status_code = 409
    code = "INVALID_STATE"


class NotFoundError(APIError):
    status_code = 404
    code = "NOT_FOUND"


def register_error_handlers(app):
    @app.errorhandler(APIError)
    def _api_error(e: APIError):
        return fail(e.message, status=e.status_code, code=e.code, detail=e.payload)

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        return fail(e.description or e.name, status=e.code or 500)

    @app.errorhandler(IntegrityError)
    def _integrity(e: IntegrityError):
        from fieldpay_api.extensions import db
        db.session.rollback()
        # 409 for unique/FK violations
        return fail("Duplicate or FK constraint failed", status=409, code="CONSTRAINT_ERROR",
                    detail=str(e.orig) if getattr(e, "orig", None) else str(e))

    @app.errorhandler(Exception)
    def _500(e: Exception):
        app.logger.exception(e)
        return fail("Internal server error", status=500)
