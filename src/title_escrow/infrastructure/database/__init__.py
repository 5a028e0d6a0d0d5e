"""Database infrastructure — engine, ORM models, and repositories."""

from title_escrow.infrastructure.database.engine import (
    build_engine,
    build_session_factory,
    close_db,
    create_tables,
    get_session_factory,
    init_db,
)
from title_escrow.infrastructure.database.orm_models import (
    AssetCustody,
    Base,
    EscrowApproval,
    EscrowDeposit,
    EscrowEvent,
    EscrowPayout,
    EscrowRecord,
)
from title_escrow.infrastructure.database.repositories import (
    CustodyRepository,
    DepositRepository,
    EscrowRepository,
    EventRepository,
    PayoutRepository,
)

__all__ = [
    "AssetCustody",
    "Base",
    "EscrowApproval",
    "EscrowDeposit",
    "EscrowEvent",
    "EscrowPayout",
    "EscrowRecord",
    "CustodyRepository",
    "DepositRepository",
    "EscrowRepository",
    "EventRepository",
    "PayoutRepository",
    "build_engine",
    "build_session_factory",
    "close_db",
    "create_tables",
    "get_session_factory",
    "init_db",
]
