from pharmacy.services import export
from pharmacy.services.base_service import BaseService
from pharmacy.services.client_registry import ClientRegistry
from pharmacy.services.sales_ledger import BasketLine, SalesLedger
from pharmacy.services.shelf_analytics import AnalyticsFilters, Period, ShelfAnalytics
from pharmacy.services.shelf_transfer import ShelfTransferEngine
from pharmacy.services.stock_ledger import StockLedger
from pharmacy.services.stock_validator import StockValidator, ValidationResult

__all__ = [
    "AnalyticsFilters",
    "BaseService",
    "BasketLine",
    "ClientRegistry",
    "Period",
    "SalesLedger",
    "ShelfAnalytics",
    "ShelfTransferEngine",
    "StockLedger",
    "StockValidator",
    "ValidationResult",
    "export",
]
