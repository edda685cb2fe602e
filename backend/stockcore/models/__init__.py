from .catalog import Unit, Variant
from .stock import StockRecord
from .settlement import Contact, OutstandingTransaction

__all__ = [
    'Unit', 'Variant',
    'StockRecord',
    'Contact', 'OutstandingTransaction',
]
