from .tenancy import Organization, Location
from .catalog import Product, ProductVariant, ProductPrice, Tax
from .inventory import StockMovement, InventorySummary
from .orders import Order, OrderLine, Payment
from .documents import DocumentSequence

__all__ = [
    'Organization', 'Location',
    'Product', 'ProductVariant', 'ProductPrice', 'Tax',
    'StockMovement', 'InventorySummary',
    'Order', 'OrderLine', 'Payment',
    'DocumentSequence',
]
