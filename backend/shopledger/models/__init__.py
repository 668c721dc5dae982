from .entities import (
    TrackedEntity,
    ENTITY_STOCK_ITEM,
    ENTITY_CUSTOMER,
    ENTITY_SUPPLIER,
    ENTITY_BANK_ACCOUNT,
    ENTITY_TYPES,
)
from .documents import Document, DocumentLine, SequenceCounter, STATUS_DRAFT, STATUS_POSTED, STATUS_VOIDED
from .ledger import LedgerMovement, BalanceProjection, LedgerImmutabilityError

__all__ = [
    'TrackedEntity',
    'ENTITY_STOCK_ITEM', 'ENTITY_CUSTOMER', 'ENTITY_SUPPLIER', 'ENTITY_BANK_ACCOUNT', 'ENTITY_TYPES',
    'Document', 'DocumentLine', 'SequenceCounter',
    'STATUS_DRAFT', 'STATUS_POSTED', 'STATUS_VOIDED',
    'LedgerMovement', 'BalanceProjection', 'LedgerImmutabilityError',
]
