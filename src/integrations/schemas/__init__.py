from .token import (
    QboTokenRecord,
    XeroTokenRecord,
    TokenRecord,
    TokenParseError,
    parse_token_record,
)
from .connection import (
    AccountInfo,
    Identity,
    TokenStatusResult,
    CompanyConnection,
    AuthorizationResult,
    ApiCallLog,
    ApiCallRecord,
    ConnectionHealthRecord,
    RefreshSummary,
)

__all__ = [
    "QboTokenRecord",
    "XeroTokenRecord",
    "TokenRecord",
    "TokenParseError",
    "parse_token_record",
    "AccountInfo",
    "Identity",
    "TokenStatusResult",
    "CompanyConnection",
    "AuthorizationResult",
    "ApiCallLog",
    "ApiCallRecord",
    "ConnectionHealthRecord",
    "RefreshSummary",
]
