"""Moteur de transferts entre stock central et rayons.

- Gestion des rayons (création, modification, suppression)
- Transferts stock -> rayon, rayon -> stock et rayon -> rayon
- Fusion des placements par couple (médicament, rayon), suppression à zéro
- Journal des transferts en ajout seul

Toutes les préconditions sont vérifiées avant la moindre mutation : un
transfert refusé laisse le stock central, les placements et le journal
inchangés. La somme stock central + quantités en rayon d'un médicament est
conservée par chaque transfert.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Any, Callable, Optional

from pharmacy.models import (
    Medication,
    OperationResult,
    Placement,
    PlacementStatus,
    PlacementView,
    Shelf,
    Transfer,
    TransferKind,
    TransferView,
)
from pharmacy.services.base_service import BaseService
from pharmacy.services.stock_ledger import StockLedger
from pharmacy.services.stock_validator import StockValidator, ValidationResult, is_positive_integer
from pharmacy.storage import Repository

logger = logging.getLogger(__name__)

SYSTEM_USER = "Système (suppression rayon)"
SHELF_DELETION_COMMENT = "Retour automatique lors de la suppression du rayon"
MINIMUM_QUANTITY_RATIO = 0.2

_EDITABLE_SHELF_FIELDS = {"name", "description", "location", "capacity"}


def minimum_quantity_for(quantity: int) -> int:
    """Seuil minimal d'un nouveau placement : 20 % de la quantité posée, arrondi au supérieur."""
    return math.ceil(quantity * MINIMUM_QUANTITY_RATIO)


class ShelfTransferEngine(BaseService):
    """Rayons, placements et journal des transferts."""

    def __init__(
        self,
        shelves: Repository[Shelf],
        placements: Repository[Placement],
        transfers: Repository[Transfer],
        stock: StockLedger,
        validator: Optional[StockValidator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        default_user: str = "admin",
    ):
        super().__init__(service_name="ShelfTransferEngine", clock=clock)
        self._shelves = shelves
        self._placements = placements
        self._transfers = transfers
        self._stock = stock
        self._validator = validator or StockValidator()
        self.default_user = default_user

    # --- Gestion des rayons ---

    def _validate_shelf(self, data: dict[str, Any]) -> list[str]:
        errors = []
        if not str(data.get("name") or "").strip():
            errors.append("Le nom du rayon est obligatoire")
        if not is_positive_integer(data.get("capacity")):
            errors.append(f"La capacité doit être un entier positif: {data.get('capacity')!r}")
        return errors

    def create_shelf(
        self, name: str, capacity: int, description: str = "", location: str = ""
    ) -> OperationResult:
        errors = self._validate_shelf({"name": name, "capacity": capacity})
        if errors:
            return self.reject("Création de rayon", errors)

        now = self.now()
        shelf = Shelf(
            id=self.new_id(),
            name=name,
            capacity=capacity,
            description=description,
            location=location,
            created_at=now,
            modified_at=now,
        )
        self._shelves.add(shelf)
        return self.accept(f"Création du rayon {shelf.name}", shelf)

    def update_shelf(self, shelf_id: str, **changes: Any) -> OperationResult:
        """Modifie un rayon.

        Une capacité abaissée sous l'occupation actuelle est acceptée ; seul le
        prochain transfert vers ce rayon sera refusé.
        """
        shelf = self._shelves.get(shelf_id)
        if shelf is None:
            return self.reject("Modification de rayon", [f"Rayon introuvable: {shelf_id}"])

        unknown = set(changes) - _EDITABLE_SHELF_FIELDS
        if unknown:
            return self.reject(
                "Modification de rayon",
                [f"Champs non modifiables ou inconnus: {', '.join(sorted(unknown))}"],
            )

        merged = {"name": shelf.name, "capacity": shelf.capacity, **changes}
        errors = self._validate_shelf(merged)
        if errors:
            return self.reject("Modification de rayon", errors)

        for name, value in changes.items():
            setattr(shelf, name, value)
        shelf.modified_at = self.now()
        self._shelves.persist()

        ceiling = self._validator.check_capacity_ceiling(
            [shelf], {shelf.id: self.shelf_occupancy(shelf.id)}
        )
        for warning in ceiling.warnings:
            logger.warning(warning)
        return self.accept(f"Modification du rayon {shelf.name}", shelf)

    def delete_shelf(self, shelf_id: str) -> OperationResult:
        """Supprime un rayon après avoir renvoyé tout son contenu au stock central.

        Chaque placement donne lieu à un transfert rayon -> stock journalisé au
        nom du système.
        """
        shelf = self._shelves.get(shelf_id)
        if shelf is None:
            return self.reject("Suppression de rayon", [f"Rayon introuvable: {shelf_id}"])

        returned: list[Transfer] = []
        for placement in self._placements.filter(lambda p: p.shelf_id == shelf_id):
            if self._stock.get_item(placement.item_id) is None:
                logger.warning(
                    "Médicament %s absent du catalogue, %d unité(s) du rayon %s non restituée(s)",
                    placement.item_id, placement.quantity, shelf.name,
                )
                continue

            self._stock.increment(placement.item_id, placement.quantity)
            returned.append(
                self._log_transfer(
                    item_id=placement.item_id,
                    shelf_id=shelf_id,
                    quantity=placement.quantity,
                    kind=TransferKind.SHELF_TO_STOCK,
                    user=SYSTEM_USER,
                    comment=SHELF_DELETION_COMMENT,
                )
            )

        self._placements.remove_where(lambda p: p.shelf_id == shelf_id)
        self._shelves.remove(shelf_id)
        return self.accept(f"Suppression du rayon {shelf.name}", returned)

    def get_shelf(self, shelf_id: str) -> Optional[Shelf]:
        return self._shelves.get(shelf_id)

    def list_shelves(self) -> list[Shelf]:
        return self._shelves.all()

    def shelf_occupancy(self, shelf_id: str) -> int:
        """Quantité totale actuellement posée sur le rayon."""
        return sum(p.quantity for p in self._placements if p.shelf_id == shelf_id)

    # --- Placements ---

    def find_placement(self, item_id: str, shelf_id: str) -> Optional[Placement]:
        return self._placements.find(lambda p: p.item_id == item_id and p.shelf_id == shelf_id)

    def _place(self, item_id: str, shelf_id: str, quantity: int, now: datetime) -> Placement:
        """Ajoute au placement existant du couple (médicament, rayon) ou en crée un."""
        placement = self.find_placement(item_id, shelf_id)
        if placement is not None:
            placement.quantity += quantity
            placement.transferred_at = now
            self._placements.persist()
            return placement

        placement = Placement(
            id=self.new_id(),
            item_id=item_id,
            shelf_id=shelf_id,
            quantity=quantity,
            minimum_quantity=minimum_quantity_for(quantity),
            transferred_at=now,
            status=PlacementStatus.FOR_SALE,
        )
        return self._placements.add(placement)

    def _withdraw(self, placement: Placement, quantity: int, now: datetime) -> Optional[Placement]:
        """Retire une quantité d'un placement ; le supprime s'il tombe à zéro."""
        if placement.quantity == quantity:
            self._placements.remove(placement.id)
            return None
        placement.quantity -= quantity
        placement.transferred_at = now
        self._placements.persist()
        return placement

    def set_placement_status(self, placement_id: str, status: PlacementStatus) -> OperationResult:
        placement = self._placements.get(placement_id)
        if placement is None:
            return self.reject("Changement de statut", [f"Placement introuvable: {placement_id}"])
        try:
            placement.status = PlacementStatus(status)
        except ValueError:
            return self.reject("Changement de statut", [f"Statut inconnu: {status!r}"])
        self._placements.persist()
        return self.accept(f"Statut du placement {placement_id} -> {placement.status.value}", placement)

    # --- Transferts ---

    def transfer(
        self,
        item_id: str,
        shelf_id: str,
        quantity: int,
        kind: TransferKind,
        destination_shelf_id: Optional[str] = None,
        comment: Optional[str] = None,
        user: Optional[str] = None,
    ) -> OperationResult:
        """Déplace une quantité entre le stock central et les rayons.

        ``shelf_id`` est le rayon concerné : destination pour ``stock_to_shelf``,
        source pour ``shelf_to_stock`` et ``shelf_to_shelf``. Le résultat porte
        le ``Transfer`` journalisé en cas de succès, la liste des erreurs sinon.
        """
        item = self._stock.get_item(item_id)
        shelf = self._shelves.get(shelf_id)
        destination = self._shelves.get(destination_shelf_id) if destination_shelf_id else None
        source_placement = self.find_placement(item_id, shelf_id)

        result = self._validator.validate_shelf_transfer(
            kind=kind,
            quantity=quantity,
            item=item,
            shelf=shelf,
            destination=destination,
            destination_shelf_id=destination_shelf_id,
            source_placement=source_placement,
            shelf_occupied=self.shelf_occupancy(shelf_id),
            destination_occupied=self.shelf_occupancy(destination_shelf_id) if destination_shelf_id else 0,
        )
        if not result.is_valid:
            return self.reject("Transfert", result.errors)

        kind = TransferKind(kind)
        now = self.now()
        total_before = self.total_quantity(item_id)

        if kind == TransferKind.STOCK_TO_SHELF:
            self._stock.decrement(item_id, quantity)
            self._place(item_id, shelf_id, quantity, now)
        elif kind == TransferKind.SHELF_TO_STOCK:
            self._stock.increment(item_id, quantity)
            self._withdraw(source_placement, quantity, now)
        else:
            self._withdraw(source_placement, quantity, now)
            self._place(item_id, destination_shelf_id, quantity, now)

        conservation = self._validator.verify_stock_conservation(
            {item_id: total_before}, {item_id: self.total_quantity(item_id)}
        )
        for error in conservation.errors:
            logger.error(error)

        transfer = self._log_transfer(
            item_id=item_id,
            shelf_id=shelf_id,
            quantity=quantity,
            kind=kind,
            user=user or self.default_user,
            comment=comment,
            destination_shelf_id=destination_shelf_id if kind == TransferKind.SHELF_TO_SHELF else None,
            timestamp=now,
        )
        return self.accept(
            f"Transfert {kind.value} de {quantity} x {item.name} ({shelf.name})", transfer
        )

    def _log_transfer(
        self,
        item_id: str,
        shelf_id: str,
        quantity: int,
        kind: TransferKind,
        user: str,
        comment: Optional[str] = None,
        destination_shelf_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Transfer:
        transfer = Transfer(
            id=self.new_id(),
            item_id=item_id,
            shelf_id=shelf_id,
            destination_shelf_id=destination_shelf_id,
            quantity=quantity,
            kind=kind,
            user=user,
            comment=comment,
            timestamp=timestamp or self.now(),
        )
        return self._transfers.add(transfer)

    # --- Vues jointes ---

    def _item(self, item_id: str) -> Optional[Medication]:
        return self._stock.get_item(item_id)

    def placements(self) -> list[PlacementView]:
        """Placements joints à leur médicament et à leur rayon actuels."""
        return [
            PlacementView(placement=p, item=self._item(p.item_id), shelf=self._shelves.get(p.shelf_id))
            for p in self._placements
        ]

    def placements_on_shelf(self, shelf_id: str) -> list[PlacementView]:
        return [view for view in self.placements() if view.placement.shelf_id == shelf_id]

    def transfers(self) -> list[TransferView]:
        return [
            TransferView(
                transfer=t,
                item=self._item(t.item_id),
                shelf=self._shelves.get(t.shelf_id),
                destination_shelf=(
                    self._shelves.get(t.destination_shelf_id) if t.destination_shelf_id else None
                ),
            )
            for t in self._transfers
        ]

    def raw_placements(self) -> list[Placement]:
        return self._placements.all()

    def raw_transfers(self) -> list[Transfer]:
        return self._transfers.all()

    # --- Statistiques et conservation ---

    def shelf_statistics(self, shelf_id: str) -> Optional[dict]:
        shelf = self._shelves.get(shelf_id)
        if shelf is None:
            return None

        views = self.placements_on_shelf(shelf_id)
        total = sum(v.placement.quantity for v in views)
        return {
            "total_quantity": total,
            "fill_percentage": (total / shelf.capacity) * 100 if shelf.capacity else 0.0,
            "distinct_items": len(views),
            "total_value": sum(v.item.price * v.placement.quantity for v in views if v.item),
            "remaining_capacity": shelf.capacity - total,
        }

    def total_quantity(self, item_id: str) -> int:
        """Stock central + quantités en rayon pour un médicament."""
        item = self._stock.get_item(item_id)
        central = item.quantity if item else 0
        return central + sum(p.quantity for p in self._placements if p.item_id == item_id)

    def quantity_snapshot(self) -> dict[str, int]:
        """Totaux (stock central + rayons) par médicament."""
        snapshot = {item.id: item.quantity for item in self._stock.list_items()}
        for p in self._placements:
            snapshot[p.item_id] = snapshot.get(p.item_id, 0) + p.quantity
        return snapshot

    def check_invariants(self) -> ValidationResult:
        """Contrôle global : aucune quantité négative, rayons sous leur capacité.

        Les dépassements de capacité (rayon dont la capacité a été abaissée)
        sont remontés comme avertissements.
        """
        quantities = {f"stock/{item.id}": item.quantity for item in self._stock.list_items()}
        quantities.update({f"rayon/{p.shelf_id}/{p.item_id}": p.quantity for p in self._placements})
        negative = self._validator.check_no_negative_stock(quantities)

        shelves = self.list_shelves()
        ceiling = self._validator.check_capacity_ceiling(
            shelves, {shelf.id: self.shelf_occupancy(shelf.id) for shelf in shelves}
        )
        return ValidationResult(is_valid=negative.is_valid, errors=negative.errors, warnings=ceiling.warnings)
