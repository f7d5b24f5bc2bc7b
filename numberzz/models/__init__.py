from numberzz.models.failure import (
    REASON_MESSAGES,
    STANDARD_MESSAGES,
    ApiResponse,
    CollaboratorTimeout,
    CollaboratorUnavailable,
    FailureDetail,
    FailureKind,
    KnownError,
    OutcomeType,
    PreconditionFailed,
    Reason,
    UserCancelled,
    ValidationFailed,
    create_success,
    create_unknown_failure,
    finalize_response,
    is_finalized,
)
from numberzz.models.records import (
    Certificate,
    ContractStatus,
    InterestedBuyer,
    Item,
    Offer,
    Rarity,
    RecordShapeError,
    SaleContract,
    SaleMode,
    Table,
    from_row,
    normalize_address,
    parse_price,
    to_row,
)

__all__ = [
    "REASON_MESSAGES",
    "STANDARD_MESSAGES",
    "ApiResponse",
    "Certificate",
    "CollaboratorTimeout",
    "CollaboratorUnavailable",
    "ContractStatus",
    "FailureDetail",
    "FailureKind",
    "InterestedBuyer",
    "Item",
    "KnownError",
    "Offer",
    "OutcomeType",
    "PreconditionFailed",
    "Rarity",
    "Reason",
    "RecordShapeError",
    "SaleContract",
    "SaleMode",
    "Table",
    "UserCancelled",
    "ValidationFailed",
    "create_success",
    "create_unknown_failure",
    "finalize_response",
    "from_row",
    "is_finalized",
    "normalize_address",
    "parse_price",
    "to_row",
]
