from .catalog import Category, Product, Supplier
from .orders import Order, Sale, Purchase, OrderLine
from .stock import StockLedgerEntry, StockAdjustment, StockAdjustmentLine, DocumentSequence

__all__ = [
    'Category', 'Product', 'Supplier',
    'Order', 'Sale', 'Purchase', 'OrderLine',
    'StockLedgerEntry', 'StockAdjustment', 'StockAdjustmentLine', 'DocumentSequence',
]
