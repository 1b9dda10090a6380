"""Contrôles d'intégrité du stock et des rayons.

- Quantités strictement positives et entières
- Aucune quantité négative (stock central comme rayons)
- Plafond de capacité des rayons
- Conservation des quantités entre stock central et rayons
- Préconditions des transferts stock/rayon
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from pharmacy.models import Medication, Placement, Shelf, TransferKind


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def is_positive_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def is_non_negative_integer(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


class StockValidator:
    """Règles d'intégrité partagées par les registres et le moteur de transferts."""

    # --- Quantités ---

    def validate_quantity(self, quantity: Any, label: str = "La quantité") -> ValidationResult:
        errors = []
        if not is_positive_integer(quantity):
            errors.append(f"{label} doit être un entier positif: {quantity!r}")
        return ValidationResult(is_valid=len(errors) == 0, errors=errors)

    def validate_decrement(self, item: Medication, amount: Any) -> ValidationResult:
        """Vérifie qu'un retrait du stock central ne le rend pas négatif."""
        result = self.validate_quantity(amount)
        if result.is_valid and item.quantity < amount:
            result.errors.append(
                f"Stock insuffisant pour {item.name}: disponible={item.quantity}, demandé={amount}"
            )
            result.is_valid = False
        return result

    def check_no_negative_stock(self, quantities: dict[str, int]) -> ValidationResult:
        """Vérifie qu'aucune quantité n'est négative (invariant)."""
        errors = [
            f"Quantité négative détectée: {key} = {quantity}"
            for key, quantity in quantities.items()
            if quantity < 0
        ]
        return ValidationResult(is_valid=len(errors) == 0, errors=errors)

    # --- Capacité des rayons ---

    def validate_capacity(
        self, shelf: Shelf, occupied: int, quantity: int, label: str = "Capacité du rayon dépassée"
    ) -> ValidationResult:
        errors = []
        if occupied + quantity > shelf.capacity:
            errors.append(
                f"{label}: {shelf.name} occupé={occupied}, ajout={quantity}, capacité={shelf.capacity}"
            )
        return ValidationResult(is_valid=len(errors) == 0, errors=errors)

    def check_capacity_ceiling(self, shelves: list[Shelf], occupancy: dict[str, int]) -> ValidationResult:
        """Signale les rayons dont l'occupation dépasse la capacité.

        Un rayon dont la capacité a été abaissée peut rester au-dessus du
        plafond : c'est un avertissement, pas une erreur.
        """
        warnings = [
            f"Rayon au-dessus de sa capacité: {shelf.name} ({occupancy.get(shelf.id, 0)}/{shelf.capacity})"
            for shelf in shelves
            if occupancy.get(shelf.id, 0) > shelf.capacity
        ]
        return ValidationResult(is_valid=True, warnings=warnings)

    # --- Conservation ---

    def verify_stock_conservation(
        self,
        before: dict[str, int],
        after: dict[str, int],
        item_id: Optional[str] = None,
    ) -> ValidationResult:
        """Compare les totaux (stock central + rayons) par médicament avant et après."""
        keys = [item_id] if item_id else sorted(set(before) | set(after))
        errors = []
        for key in keys:
            total_before = before.get(key, 0)
            total_after = after.get(key, 0)
            if total_before != total_after:
                errors.append(
                    f"Violation de conservation: {key} "
                    f"total avant={total_before}, total après={total_after}"
                )
        return ValidationResult(is_valid=len(errors) == 0, errors=errors)

    # --- Transferts stock/rayon ---

    def validate_shelf_transfer(
        self,
        kind: Any,
        quantity: Any,
        item: Optional[Medication],
        shelf: Optional[Shelf],
        destination: Optional[Shelf] = None,
        destination_shelf_id: Optional[str] = None,
        source_placement: Optional[Placement] = None,
        shelf_occupied: int = 0,
        destination_occupied: int = 0,
    ) -> ValidationResult:
        """Préconditions d'un transfert, vérifiées avant toute mutation."""
        errors = []

        try:
            kind = TransferKind(kind)
        except ValueError:
            errors.append(f"Type de transfert inconnu: {kind!r}")
            kind = None

        if item is None:
            errors.append("Médicament introuvable")
        if shelf is None:
            errors.append("Rayon introuvable")
        errors.extend(self.validate_quantity(quantity).errors)

        if kind == TransferKind.SHELF_TO_SHELF:
            if not destination_shelf_id or destination is None:
                errors.append("Rayon de destination introuvable")
            elif shelf is not None and destination.id == shelf.id:
                errors.append("Le rayon source et le rayon de destination doivent être différents")

        if errors:
            return ValidationResult(is_valid=False, errors=errors)

        if kind == TransferKind.STOCK_TO_SHELF:
            if item.quantity < quantity:
                errors.append(
                    f"Stock insuffisant: {item.name} disponible={item.quantity}, demandé={quantity}"
                )
            errors.extend(self.validate_capacity(shelf, shelf_occupied, quantity).errors)
        else:
            label = "source" if kind == TransferKind.SHELF_TO_SHELF else ""
            available = source_placement.quantity if source_placement else 0
            if available < quantity:
                errors.append(
                    f"Quantité insuffisante dans le rayon {label}".rstrip()
                    + f": {shelf.name} disponible={available}, demandé={quantity}"
                )
            if kind == TransferKind.SHELF_TO_SHELF:
                errors.extend(
                    self.validate_capacity(
                        destination,
                        destination_occupied,
                        quantity,
                        label="Capacité du rayon de destination dépassée",
                    ).errors
                )

        return ValidationResult(is_valid=len(errors) == 0, errors=errors)
