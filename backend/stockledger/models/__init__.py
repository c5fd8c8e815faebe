from .tenancy import Tenant, User, Counter
from .inventory import (
    Item,
    StockMovement,
    ImmutableMovementError,
    MOVEMENT_OPENING,
    MOVEMENT_RESTOCK,
    MOVEMENT_SALE,
    MOVEMENT_CLOSING,
    MOVEMENT_TYPES,
    STOCK_IN_TYPES,
)
from .sessions import DailySession

__all__ = [
    'Tenant', 'User', 'Counter',
    'Item', 'StockMovement', 'ImmutableMovementError',
    'MOVEMENT_OPENING', 'MOVEMENT_RESTOCK', 'MOVEMENT_SALE', 'MOVEMENT_CLOSING',
    'MOVEMENT_TYPES', 'STOCK_IN_TYPES',
    'DailySession',
]
