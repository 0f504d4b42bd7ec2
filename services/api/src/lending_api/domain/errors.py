"""Error taxonomy shared by the engines, adapters and HTTP layer."""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    INVALID_CHAIN = "INVALID_CHAIN"
    INVALID_PROTOCOL = "INVALID_PROTOCOL"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    INVALID_PARAMETER = "INVALID_PARAMETER"
    QUERY_FAILED = "QUERY_FAILED"
    DECODE_FAILED = "DECODE_FAILED"
    AGGREGATION_FAILED = "AGGREGATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class LendingAnalyticsError(Exception):
    """Base error carrying a taxonomy code, an HTTP status and source context."""

    code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR
    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.context = context or {}


class InvalidChainError(LendingAnalyticsError):
    code = ErrorCode.INVALID_CHAIN
    status_code = 400


class InvalidProtocolError(LendingAnalyticsError):
    code = ErrorCode.INVALID_PROTOCOL
    status_code = 400


class InvalidAddressError(LendingAnalyticsError):
    code = ErrorCode.INVALID_ADDRESS
    status_code = 400


class InvalidParameterError(LendingAnalyticsError):
    code = ErrorCode.INVALID_PARAMETER
    status_code = 400


class QueryFailedError(LendingAnalyticsError):
    """A chain read failed, or every item of an adapter fan-out failed."""

    code = ErrorCode.QUERY_FAILED
    status_code = 502


class DecodeFailedError(LendingAnalyticsError):
    """Raw on-chain data did not match the expected layout."""

    code = ErrorCode.DECODE_FAILED
    status_code = 500


class NotFoundError(LendingAnalyticsError):
    code = ErrorCode.NOT_FOUND
    status_code = 404


class AggregationFailedError(LendingAnalyticsError):
    """Every dispatched source of a fan-out failed and nothing was produced."""

    code = ErrorCode.AGGREGATION_FAILED
    status_code = 503

    def __init__(self, message: str, failures: list[Any] | None = None):
        self.failures = list(failures or [])
        super().__init__(
            message,
            context={"failures": [str(f) for f in self.failures]},
        )
