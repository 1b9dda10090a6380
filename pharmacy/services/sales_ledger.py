"""Registre des ventes.

Une vente est validée en entier avant toute écriture : panier non vide,
médicaments connus, quantités entières positives, remises entre 0 et 100 %,
client connu s'il est renseigné et stock central suffisant pour le panier
agrégé. Une vente refusée ne laisse aucune trace.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional, Union

from pharmacy.models import (
    OperationResult,
    PaymentMethod,
    Sale,
    SaleLine,
    SaleStatus,
)
from pharmacy.services.base_service import BaseService
from pharmacy.services.stock_ledger import StockLedger
from pharmacy.services.stock_validator import is_positive_integer
from pharmacy.storage import Repository

logger = logging.getLogger(__name__)

INVOICE_PREFIX = "FAC"
TOP_SOLD_LIMIT = 5


@dataclass
class BasketLine:
    item_id: str
    quantity: int
    discount: float = 0


def _valid_discount(value) -> bool:
    return not isinstance(value, bool) and isinstance(value, (int, float)) and 0 <= value <= 100


def _money(value: float) -> float:
    return round(value, 2)


class SalesLedger(BaseService):
    """Enregistrement des ventes et chiffre d'affaires."""

    def __init__(
        self,
        sales: Repository[Sale],
        stock: StockLedger,
        clients=None,
        tax_rate: float = 18.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(service_name="SalesLedger", clock=clock)
        self._sales = sales
        self._stock = stock
        # Dépôt des clients, pour vérifier l'existence du client d'une vente
        self._clients = clients
        self.tax_rate = tax_rate

    # --- Validation ---

    def validate_sale(
        self,
        basket: list[BasketLine],
        client_id: Optional[str],
        payment_method: Union[PaymentMethod, str],
        global_discount: float,
    ) -> list[str]:
        errors = []
        if not basket:
            return ["Le panier est vide"]

        requested: dict[str, int] = {}
        for line in basket:
            item = self._stock.get_item(line.item_id)
            if item is None:
                errors.append(f"Médicament introuvable: {line.item_id}")
                continue
            if not is_positive_integer(line.quantity):
                errors.append(f"Quantité invalide pour {item.name}: {line.quantity!r}")
                continue
            if not _valid_discount(line.discount):
                errors.append(f"Remise invalide pour {item.name}: {line.discount!r}")
            requested[item.id] = requested.get(item.id, 0) + line.quantity

        for item_id, quantity in requested.items():
            item = self._stock.get_item(item_id)
            if quantity > item.quantity:
                errors.append(
                    f"Stock insuffisant pour {item.name}: demandé {quantity}, disponible {item.quantity}"
                )

        if not _valid_discount(global_discount):
            errors.append(f"Remise globale invalide: {global_discount!r}")
        try:
            PaymentMethod(payment_method)
        except ValueError:
            errors.append(f"Mode de paiement inconnu: {payment_method!r}")
        if client_id and (self._clients is None or self._clients.get(client_id) is None):
            errors.append(f"Client introuvable: {client_id}")
        return errors

    # --- Enregistrement ---

    def next_invoice_number(self, when: datetime) -> str:
        """Numéro de facture ``FAC<aammjj><nnnn>``, séquence remise à zéro chaque jour."""
        day_prefix = f"{INVOICE_PREFIX}{when.strftime('%y%m%d')}"
        sequences = [
            int(s.invoice_number[len(day_prefix):])
            for s in self._sales
            if s.invoice_number.startswith(day_prefix) and s.invoice_number[len(day_prefix):].isdigit()
        ]
        return f"{day_prefix}{max(sequences, default=0) + 1:04d}"

    def record_sale(
        self,
        basket: Iterable[BasketLine],
        seller: str,
        payment_method: Union[PaymentMethod, str] = PaymentMethod.CASH,
        client_id: Optional[str] = None,
        global_discount: float = 0,
    ) -> OperationResult:
        """Enregistre une vente et retire les quantités du stock central."""
        basket = list(basket)
        errors = self.validate_sale(basket, client_id, payment_method, global_discount)
        if errors:
            return self.reject("Vente", errors)

        lines = []
        for line in basket:
            item = self._stock.get_item(line.item_id)
            subtotal = item.price * line.quantity * (1 - line.discount / 100)
            lines.append(
                SaleLine(
                    id=self.new_id(),
                    item_id=item.id,
                    quantity=line.quantity,
                    unit_price=item.price,
                    discount=line.discount,
                    subtotal=_money(subtotal),
                )
            )

        subtotal = sum(line.subtotal for line in lines)
        discount_amount = subtotal * global_discount / 100
        taxable = subtotal - discount_amount
        tax = taxable * self.tax_rate / 100
        now = self.now()

        sale = Sale(
            id=self.new_id(),
            invoice_number=self.next_invoice_number(now),
            lines=lines,
            subtotal=_money(subtotal),
            global_discount=global_discount,
            discount_amount=_money(discount_amount),
            tax=_money(tax),
            total=_money(taxable + tax),
            payment_method=PaymentMethod(payment_method),
            seller=seller,
            client_id=client_id or None,
            status=SaleStatus.COMPLETED,
            timestamp=now,
        )

        for line in lines:
            # Quantités agrégées déjà vérifiées : ces retraits ne peuvent échouer
            self._stock.decrement(line.item_id, line.quantity)
        self._sales.add(sale)
        return self.accept(f"Vente {sale.invoice_number} ({sale.total:.2f})", sale)

    # --- Consultation ---

    def list_sales(self) -> list[Sale]:
        return self._sales.all()

    def get_sale(self, sale_id: str) -> Optional[Sale]:
        return self._sales.get(sale_id)

    def sales_for_client(self, client_id: str) -> list[Sale]:
        return self._sales.filter(lambda s: s.client_id == client_id)

    # --- Statistiques ---

    def statistics(self, now: Optional[datetime] = None) -> dict:
        now = now or self.now()
        completed = self._sales.filter(lambda s: s.status == SaleStatus.COMPLETED)

        def revenue(predicate) -> float:
            return _money(sum(s.total for s in completed if predicate(s.timestamp)))

        sold: dict[str, int] = {}
        for sale in completed:
            for line in sale.lines:
                sold[line.item_id] = sold.get(line.item_id, 0) + line.quantity

        top_sold = []
        for item_id, quantity in sorted(sold.items(), key=lambda kv: kv[1], reverse=True)[:TOP_SOLD_LIMIT]:
            item = self._stock.get_item(item_id)
            top_sold.append(
                {"item_id": item_id, "name": item.name if item else "", "quantity": quantity}
            )

        return {
            "revenue_today": revenue(lambda ts: ts.date() == now.date()),
            "revenue_month": revenue(lambda ts: (ts.year, ts.month) == (now.year, now.month)),
            "revenue_year": revenue(lambda ts: ts.year == now.year),
            "transactions": len(completed),
            "top_sold": top_sold,
        }
