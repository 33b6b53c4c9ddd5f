"""ORM models for the stock kernel."""

from stock_kernel.models.access import UserLocationAssignment
from stock_kernel.models.count import CountArea, CountItem, InventoryCount
from stock_kernel.models.inventory import InventoryItem
from stock_kernel.models.location import Location
from stock_kernel.models.movement import StockMovement
from stock_kernel.models.product import Product

__all__ = [
    "Location",
    "Product",
    "UserLocationAssignment",
    "InventoryItem",
    "StockMovement",
    "InventoryCount",
    "CountArea",
    "CountItem",
]
