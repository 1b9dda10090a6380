from pharmacy.models.pharmacy import (
    AlertSeverity,
    AlertType,
    Client,
    Medication,
    MedicationForm,
    OperationResult,
    PaymentMethod,
    Placement,
    PlacementStatus,
    PlacementView,
    Sale,
    SaleLine,
    SaleStatus,
    Shelf,
    StockAlert,
    Transfer,
    TransferKind,
    TransferView,
    ensure_utc,
    utcnow,
)

__all__ = [
    "AlertSeverity",
    "AlertType",
    "Client",
    "Medication",
    "MedicationForm",
    "OperationResult",
    "PaymentMethod",
    "Placement",
    "PlacementStatus",
    "PlacementView",
    "Sale",
    "SaleLine",
    "SaleStatus",
    "Shelf",
    "StockAlert",
    "Transfer",
    "TransferKind",
    "TransferView",
    "ensure_utc",
    "utcnow",
]
