from .inventory import InventoryItem
from .usage import InventoryUsage
from .activity import ActivityLog

__all__ = [
    'InventoryItem',
    'InventoryUsage',
    'ActivityLog',
]
