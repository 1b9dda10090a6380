"""Registre du stock central - catalogue des médicaments et quantités hors rayon.

- CRUD du catalogue
- Retrait/ajout de quantités sans jamais passer sous zéro
- Alertes de stock faible et d'expiration
- Statistiques de stock
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from pharmacy.models import (
    AlertSeverity,
    AlertType,
    Medication,
    MedicationForm,
    OperationResult,
    StockAlert,
    ensure_utc,
)
from pharmacy.services.base_service import BaseService
from pharmacy.services.stock_validator import StockValidator, is_non_negative_integer
from pharmacy.storage import Repository

logger = logging.getLogger(__name__)

_PROTECTED_FIELDS = {"id", "created_at", "modified_at"}


def days_until_expiration(item: Medication, now: datetime) -> int:
    return math.ceil((item.expiration_date - now) / timedelta(days=1))


def is_low_stock(item: Medication) -> bool:
    return item.quantity <= item.alert_threshold


def is_expired(item: Medication, now: datetime) -> bool:
    return now > item.expiration_date


def is_expiring_soon(item: Medication, now: datetime, days: int = 30) -> bool:
    remaining = days_until_expiration(item, now)
    return 0 < remaining <= days


class StockLedger(BaseService):
    """Catalogue des médicaments et stock central."""

    def __init__(
        self,
        items: Repository[Medication],
        validator: Optional[StockValidator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        expiring_soon_days: int = 30,
    ):
        super().__init__(service_name="StockLedger", clock=clock)
        self._items = items
        self._validator = validator or StockValidator()
        self.expiring_soon_days = expiring_soon_days

    # --- Validation ---

    def validate_item(self, data: dict[str, Any]) -> list[str]:
        errors = []
        if not str(data.get("name") or "").strip():
            errors.append("Le nom du médicament est obligatoire")
        price = data.get("price")
        if isinstance(price, bool) or not isinstance(price, (int, float)) or price < 0:
            errors.append(f"Le prix doit être un nombre positif ou nul: {price!r}")
        if not is_non_negative_integer(data.get("quantity")):
            errors.append(f"La quantité en stock doit être un entier positif ou nul: {data.get('quantity')!r}")
        if not is_non_negative_integer(data.get("alert_threshold")):
            errors.append(f"Le seuil d'alerte doit être un entier positif ou nul: {data.get('alert_threshold')!r}")
        if not isinstance(data.get("expiration_date"), datetime):
            errors.append("La date d'expiration est obligatoire")
        form = data.get("form", MedicationForm.OTHER)
        try:
            MedicationForm(form)
        except ValueError:
            errors.append(f"Forme galénique inconnue: {form!r}")
        return errors

    # --- CRUD ---

    def add_item(self, **data: Any) -> OperationResult:
        """Ajoute un médicament au catalogue."""
        errors = self.validate_item(data)
        unknown = set(data) - set(Medication.__dataclass_fields__) | (set(data) & _PROTECTED_FIELDS)
        if unknown:
            errors.append(f"Champs non modifiables ou inconnus: {', '.join(sorted(unknown))}")
        if errors:
            return self.reject("Ajout de médicament", errors)

        data.setdefault("category", "")
        data.setdefault("supplier", "")
        now = self.now()
        item = Medication(id=self.new_id(), created_at=now, modified_at=now, **data)
        self._items.add(item)
        return self.accept(f"Ajout de médicament {item.name}", item)

    def update_item(self, item_id: str, **changes: Any) -> OperationResult:
        """Applique des modifications partielles et rafraîchit la date de modification."""
        item = self._items.get(item_id)
        if item is None:
            return self.reject("Modification de médicament", [f"Médicament introuvable: {item_id}"])

        unknown = set(changes) - set(Medication.__dataclass_fields__) | (set(changes) & _PROTECTED_FIELDS)
        if unknown:
            return self.reject(
                "Modification de médicament",
                [f"Champs non modifiables ou inconnus: {', '.join(sorted(unknown))}"],
            )

        merged = {name: getattr(item, name) for name in Medication.__dataclass_fields__}
        merged.update(changes)
        errors = self.validate_item(merged)
        if errors:
            return self.reject("Modification de médicament", errors)

        for name, value in changes.items():
            setattr(item, name, value)
        item.form = MedicationForm(item.form)
        item.expiration_date = ensure_utc(item.expiration_date)
        item.modified_at = self.now()
        self._items.persist()
        return self.accept(f"Modification de médicament {item.name}", item)

    def delete_item(self, item_id: str) -> OperationResult:
        if not self._items.remove(item_id):
            return self.reject("Suppression de médicament", [f"Médicament introuvable: {item_id}"])
        return self.accept(f"Suppression de médicament {item_id}")

    def get_item(self, item_id: str) -> Optional[Medication]:
        return self._items.get(item_id)

    def list_items(self) -> list[Medication]:
        return self._items.all()

    # --- Mouvements du stock central ---

    def decrement(self, item_id: str, amount: int) -> OperationResult:
        """Retire une quantité du stock central (vente ou mise en rayon)."""
        item = self._items.get(item_id)
        if item is None:
            return self.reject("Retrait de stock", [f"Médicament introuvable: {item_id}"])

        result = self._validator.validate_decrement(item, amount)
        if not result.is_valid:
            return self.reject("Retrait de stock", result.errors)

        item.quantity -= amount
        item.modified_at = self.now()
        self._items.persist()
        return self.accept(f"Retrait de {amount} x {item.name}", item)

    def increment(self, item_id: str, amount: int) -> OperationResult:
        """Ajoute une quantité au stock central (retour de rayon)."""
        item = self._items.get(item_id)
        if item is None:
            return self.reject("Ajout de stock", [f"Médicament introuvable: {item_id}"])

        result = self._validator.validate_quantity(amount)
        if not result.is_valid:
            return self.reject("Ajout de stock", result.errors)

        item.quantity += amount
        item.modified_at = self.now()
        self._items.persist()
        return self.accept(f"Ajout de {amount} x {item.name}", item)

    # --- Recherche ---

    def search_items(
        self,
        name: Optional[str] = None,
        category: Optional[str] = None,
        supplier: Optional[str] = None,
        low_stock: Optional[bool] = None,
        expiring_soon: Optional[bool] = None,
        prescription: Optional[bool] = None,
    ) -> list[Medication]:
        """Filtre le catalogue ; chaque critère non renseigné est ignoré."""
        now = self.now()
        items = self._items.all()
        if name:
            term = name.lower().strip()
            items = [i for i in items if term in i.name.lower()]
        if category:
            items = [i for i in items if i.category == category]
        if supplier:
            items = [i for i in items if i.supplier == supplier]
        if low_stock is not None:
            items = [i for i in items if is_low_stock(i) == low_stock]
        if expiring_soon is not None:
            items = [
                i for i in items
                if is_expiring_soon(i, now, self.expiring_soon_days) == expiring_soon
            ]
        if prescription is not None:
            items = [i for i in items if i.prescription == prescription]
        return items

    # --- Alertes ---

    def alerts(self, now: Optional[datetime] = None) -> list[StockAlert]:
        """Alertes de stock faible puis d'expiration proche."""
        now = now or self.now()
        alerts: list[StockAlert] = []

        for item in self._items:
            if is_low_stock(item):
                alerts.append(
                    StockAlert(
                        alert_type=AlertType.LOW_STOCK,
                        item_id=item.id,
                        item_name=item.name,
                        quantity=item.quantity,
                        message=f"Stock faible pour {item.name} ({item.quantity} restant)",
                        severity=AlertSeverity.HIGH if item.quantity == 0 else AlertSeverity.MEDIUM,
                    )
                )

        for item in self._items:
            expired = is_expired(item, now)
            if expired or is_expiring_soon(item, now, self.expiring_soon_days):
                alerts.append(
                    StockAlert(
                        alert_type=AlertType.EXPIRATION,
                        item_id=item.id,
                        item_name=item.name,
                        quantity=item.quantity,
                        message=f"{item.name} est expiré" if expired else f"{item.name} expire bientôt",
                        severity=AlertSeverity.HIGH if expired else AlertSeverity.MEDIUM,
                    )
                )

        if alerts:
            logger.info("%d alerte(s) de stock détectée(s)", len(alerts))
        return alerts

    # --- Statistiques ---

    def statistics(self, now: Optional[datetime] = None) -> dict:
        now = now or self.now()
        items = self._items.all()
        low = [i for i in items if is_low_stock(i)]
        return {
            "total_items": len(items),
            "low_stock": len(low),
            "expired": sum(1 for i in items if is_expired(i, now)),
            "total_value": sum(i.price * i.quantity for i in items),
            "low_stock_items": [
                {"item_id": i.id, "name": i.name, "quantity": i.quantity} for i in low
            ],
        }
