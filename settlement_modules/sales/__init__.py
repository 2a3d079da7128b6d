"""
Sales Ledger Module.

Products, sales and service orders as consumed by the commission
calculator and the vendor performance aggregator.
"""

from settlement_modules.sales.models import (
    Product,
    Sale,
    SaleItem,
    SaleLineInput,
    SaleStatus,
    ServiceItemInput,
    ServiceOrder,
    ServiceOrderItem,
    ServiceOrderStatus,
)
from settlement_modules.sales.service import SalesLedgerService

__all__ = [
    "Product",
    "Sale",
    "SaleItem",
    "SaleLineInput",
    "SaleStatus",
    "SalesLedgerService",
    "ServiceItemInput",
    "ServiceOrder",
    "ServiceOrderItem",
    "ServiceOrderStatus",
]
