"""
Vendor Performance Module.

Monthly sales goals per salesperson and the derived performance rollup
(sales, profit, commissions, goal achievement and bonus).
"""

from settlement_modules.performance.models import SalesGoal, SalesGoalInput, VendorPerformance
from settlement_modules.performance.service import SalesGoalService, VendorPerformanceService

__all__ = [
    "SalesGoal",
    "SalesGoalInput",
    "SalesGoalService",
    "VendorPerformance",
    "VendorPerformanceService",
]
