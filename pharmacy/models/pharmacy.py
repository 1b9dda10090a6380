"""Modèles de données de l'officine : stock, ventes, clients et rayons."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utcnow() -> datetime:
    """Horodatage UTC tronqué à la milliseconde (format persisté)."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Les dates sans fuseau sont considérées comme UTC."""
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TransferKind(str, Enum):
    STOCK_TO_SHELF = "stock_to_shelf"
    SHELF_TO_STOCK = "shelf_to_stock"
    SHELF_TO_SHELF = "shelf_to_shelf"


class PlacementStatus(str, Enum):
    FOR_SALE = "for_sale"
    RESERVED = "reserved"
    EXPIRED = "expired"


class MedicationForm(str, Enum):
    TABLET = "tablet"
    CAPSULE = "capsule"
    SYRUP = "syrup"
    INJECTION = "injection"
    OINTMENT = "ointment"
    OTHER = "other"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    CHEQUE = "cheque"
    TRANSFER = "transfer"


class SaleStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AlertType(str, Enum):
    LOW_STOCK = "low_stock"
    EXPIRATION = "expiration"


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class Medication:
    id: str
    name: str
    price: float
    quantity: int
    alert_threshold: int
    expiration_date: datetime
    category: str
    supplier: str
    form: MedicationForm = MedicationForm.OTHER
    prescription: bool = False
    description: str = ""
    barcode: Optional[str] = None
    dosage: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    modified_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.form = MedicationForm(self.form)
        self.expiration_date = ensure_utc(self.expiration_date)
        self.created_at = ensure_utc(self.created_at)
        self.modified_at = ensure_utc(self.modified_at)


@dataclass
class Shelf:
    id: str
    name: str
    capacity: int
    description: str = ""
    location: str = ""
    created_at: datetime = field(default_factory=utcnow)
    modified_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.created_at = ensure_utc(self.created_at)
        self.modified_at = ensure_utc(self.modified_at)


@dataclass
class Placement:
    id: str
    item_id: str
    shelf_id: str
    quantity: int
    minimum_quantity: int
    transferred_at: datetime = field(default_factory=utcnow)
    status: PlacementStatus = PlacementStatus.FOR_SALE

    def __post_init__(self) -> None:
        self.status = PlacementStatus(self.status)
        self.transferred_at = ensure_utc(self.transferred_at)


@dataclass
class Transfer:
    id: str
    item_id: str
    shelf_id: str
    quantity: int
    kind: TransferKind
    user: str
    timestamp: datetime = field(default_factory=utcnow)
    destination_shelf_id: Optional[str] = None
    comment: Optional[str] = None

    def __post_init__(self) -> None:
        self.kind = TransferKind(self.kind)
        self.timestamp = ensure_utc(self.timestamp)


@dataclass
class SaleLine:
    id: str
    item_id: str
    quantity: int
    unit_price: float
    discount: float
    subtotal: float


@dataclass
class Sale:
    id: str
    invoice_number: str
    lines: list[SaleLine]
    subtotal: float
    global_discount: float
    discount_amount: float
    tax: float
    total: float
    payment_method: PaymentMethod
    seller: str
    client_id: Optional[str] = None
    status: SaleStatus = SaleStatus.COMPLETED
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.payment_method = PaymentMethod(self.payment_method)
        self.status = SaleStatus(self.status)
        self.timestamp = ensure_utc(self.timestamp)
        # Les lignes relues depuis le stockage arrivent sous forme de dict
        self.lines = [
            SaleLine(**line) if isinstance(line, dict) else line
            for line in self.lines
        ]


@dataclass
class Client:
    id: str
    last_name: str
    first_name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    birth_date: Optional[datetime] = None
    social_security_number: Optional[str] = None
    registered_at: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.birth_date = ensure_utc(self.birth_date)
        self.registered_at = ensure_utc(self.registered_at)


@dataclass
class StockAlert:
    alert_type: AlertType
    item_id: str
    item_name: str
    quantity: int
    message: str
    severity: AlertSeverity


@dataclass
class PlacementView:
    """Placement joint à son médicament et à son rayon au moment de la lecture."""

    placement: Placement
    item: Optional[Medication]
    shelf: Optional[Shelf]


@dataclass
class TransferView:
    transfer: Transfer
    item: Optional[Medication]
    shelf: Optional[Shelf]
    destination_shelf: Optional[Shelf] = None


@dataclass
class OperationResult:
    """Résultat d'une opération métier : succès ou liste de messages d'erreur."""

    success: bool
    errors: list[str] = field(default_factory=list)
    value: Any = None

    @classmethod
    def ok(cls, value: Any = None) -> OperationResult:
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, *errors: str) -> OperationResult:
        return cls(success=False, errors=list(errors))
