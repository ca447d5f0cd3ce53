"""Error taxonomy of the pricing engine."""

from __future__ import annotations

from fastapi import status

from marketplace.common.errors import ServiceError


class PricingError(ServiceError):
    code = "pricing_error"


class NotFoundError(PricingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ForbiddenError(PricingError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class StrategyValidationError(PricingError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "strategy_invalid"


class ConflictError(PricingError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class ConcurrentPricingUpdate(ConflictError):
    code = "concurrent_update"


class BadRequestError(PricingError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "bad_request"
