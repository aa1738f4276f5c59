from .inventory import (
    Product,
    Batch,
    StockTransaction,
    ProductCategory,
    TransactionType,
    OutflowReason,
)
from .settings import AppSetting

__all__ = [
    'Product', 'Batch', 'StockTransaction',
    'ProductCategory', 'TransactionType', 'OutflowReason',
    'AppSetting',
]
