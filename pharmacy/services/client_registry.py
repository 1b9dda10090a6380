"""Fichier clients de l'officine.

L'historique d'achat, le total dépensé et l'âge ne sont jamais stockés :
ils sont recalculés à chaque lecture à partir du registre des ventes.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any, Callable, Optional

from pharmacy.models import Client, OperationResult, Sale, SaleStatus, ensure_utc
from pharmacy.services import export
from pharmacy.services.base_service import BaseService
from pharmacy.storage import Repository

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^[0-9\s\-+()]{8,}$")
SOCIAL_SECURITY_LENGTH = 13
LOYAL_PURCHASES = 5
LOYAL_LIMIT = 10
UNKNOWN_AGE = "Non renseigné"

# (libellé, âge minimum, âge maximum inclus)
AGE_BRACKETS = [
    ("18-25", 18, 25),
    ("26-35", 26, 35),
    ("36-45", 36, 45),
    ("46-55", 46, 55),
    ("56-65", 56, 65),
    ("65+", 66, None),
]

CSV_HEADERS = [
    "Nom", "Prénom", "Téléphone", "Email", "Adresse",
    "Date de naissance", "N° Sécurité Sociale", "Date d'inscription",
    "Nombre d'achats", "Total dépensé",
]

_EDITABLE_FIELDS = {
    "last_name", "first_name", "phone", "email", "address",
    "birth_date", "social_security_number",
}
_TEXT_FIELDS = ("email", "phone", "address", "social_security_number")


def age_on(birth_date: Optional[datetime], today: date) -> Optional[int]:
    if birth_date is None:
        return None
    born = birth_date.date()
    return today.year - born.year - ((today.month, today.day) < (born.month, born.day))


def age_bracket(age: Optional[int]) -> str:
    if age is None:
        return UNKNOWN_AGE
    for label, low, high in AGE_BRACKETS:
        if age >= low and (high is None or age <= high):
            return label
    return UNKNOWN_AGE


class ClientRegistry(BaseService):
    """CRUD des clients et statistiques dérivées des ventes."""

    def __init__(self, clients: Repository[Client], sales, clock: Optional[Callable[[], datetime]] = None):
        super().__init__(service_name="ClientRegistry", clock=clock)
        self._clients = clients
        # Registre des ventes (SalesLedger)
        self._sales = sales

    def validate_client(self, data: dict[str, Any]) -> list[str]:
        errors = []
        if not str(data.get("last_name") or "").strip():
            errors.append("Le nom est obligatoire")
        if not str(data.get("first_name") or "").strip():
            errors.append("Le prénom est obligatoire")
        for name in _TEXT_FIELDS:
            value = data.get(name)
            if value is not None and not isinstance(value, str):
                errors.append(f"Le champ {name} doit être une chaîne de caractères: {value!r}")

        email = data.get("email")
        if isinstance(email, str) and email and not EMAIL_PATTERN.match(email):
            errors.append(f"Format d'email invalide: {email}")
        phone = data.get("phone")
        if isinstance(phone, str) and phone and not PHONE_PATTERN.match(phone):
            errors.append(f"Format de téléphone invalide: {phone}")
        ssn = data.get("social_security_number")
        if isinstance(ssn, str) and ssn and len(ssn) != SOCIAL_SECURITY_LENGTH:
            errors.append(
                f"Le numéro de sécurité sociale doit contenir {SOCIAL_SECURITY_LENGTH} caractères"
            )
        birth_date = data.get("birth_date")
        if birth_date is not None and not isinstance(birth_date, datetime):
            errors.append("La date de naissance doit être une date")
        return errors

    # --- CRUD ---

    def add_client(self, **data: Any) -> OperationResult:
        unknown = set(data) - _EDITABLE_FIELDS
        errors = self.validate_client(data)
        if unknown:
            errors.append(f"Champs non modifiables ou inconnus: {', '.join(sorted(unknown))}")
        if errors:
            return self.reject("Ajout de client", errors)

        client = Client(id=self.new_id(), registered_at=self.now(), **data)
        self._clients.add(client)
        return self.accept(f"Ajout du client {client.first_name} {client.last_name}", client)

    def update_client(self, client_id: str, **changes: Any) -> OperationResult:
        client = self._clients.get(client_id)
        if client is None:
            return self.reject("Modification de client", [f"Client introuvable: {client_id}"])

        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            return self.reject(
                "Modification de client",
                [f"Champs non modifiables ou inconnus: {', '.join(sorted(unknown))}"],
            )
        merged = {name: getattr(client, name) for name in _EDITABLE_FIELDS}
        merged.update(changes)
        errors = self.validate_client(merged)
        if errors:
            return self.reject("Modification de client", errors)

        for name, value in changes.items():
            setattr(client, name, value)
        client.birth_date = ensure_utc(client.birth_date)
        self._clients.persist()
        return self.accept(f"Modification du client {client_id}", client)

    def delete_client(self, client_id: str) -> OperationResult:
        # Les ventes gardent leur client_id ; l'historique devient orphelin
        if not self._clients.remove(client_id):
            return self.reject("Suppression de client", [f"Client introuvable: {client_id}"])
        return self.accept(f"Suppression du client {client_id}")

    def get_client(self, client_id: str) -> Optional[Client]:
        return self._clients.get(client_id)

    def list_clients(self) -> list[Client]:
        return self._clients.all()

    def search_clients(self, term: str) -> list[Client]:
        """Recherche sur nom, prénom, téléphone et email (insensible à la casse)."""
        term = (term or "").lower().strip()
        if not term:
            return self._clients.all()
        return self._clients.filter(
            lambda c: any(
                term in (value or "").lower()
                for value in (c.last_name, c.first_name, c.phone, c.email)
            )
        )

    # --- Données dérivées ---

    def purchase_history(self, client_id: str) -> list[Sale]:
        sales = self._sales.sales_for_client(client_id)
        return sorted(sales, key=lambda s: s.timestamp, reverse=True)

    def lifetime_spend(self, client_id: str) -> float:
        return round(
            sum(s.total for s in self._sales.sales_for_client(client_id) if s.status == SaleStatus.COMPLETED),
            2,
        )

    def age(self, client: Client, today: Optional[date] = None) -> Optional[int]:
        return age_on(client.birth_date, today or self.now().date())

    def statistics(self, now: Optional[datetime] = None) -> dict:
        now = now or self.now()
        clients = self._clients.all()
        purchases = {c.id: len(self._sales.sales_for_client(c.id)) for c in clients}

        loyal = sorted(
            (c for c in clients if purchases[c.id] >= LOYAL_PURCHASES),
            key=lambda c: purchases[c.id],
            reverse=True,
        )[:LOYAL_LIMIT]

        brackets = {label: 0 for label, _, _ in AGE_BRACKETS}
        brackets[UNKNOWN_AGE] = 0
        for client in clients:
            label = age_bracket(self.age(client, now.date()))
            brackets[label] = brackets.get(label, 0) + 1

        return {
            "total": len(clients),
            "new_this_month": sum(
                1 for c in clients
                if (c.registered_at.year, c.registered_at.month) == (now.year, now.month)
            ),
            "active": sum(1 for c in clients if purchases[c.id] > 0),
            "loyal": [
                {
                    "client_id": c.id,
                    "name": f"{c.first_name} {c.last_name}",
                    "purchases": purchases[c.id],
                    "total_spent": self.lifetime_spend(c.id),
                }
                for c in loyal
            ],
            "age_brackets": brackets,
        }

    # --- Exports ---

    def _row(self, client: Client) -> list:
        return [
            client.last_name,
            client.first_name,
            client.phone or "",
            client.email or "",
            client.address or "",
            client.birth_date.date().isoformat() if client.birth_date else "",
            client.social_security_number or "",
            client.registered_at.date().isoformat(),
            len(self._sales.sales_for_client(client.id)),
            self.lifetime_spend(client.id),
        ]

    def export_csv(self) -> str:
        return export.to_csv(CSV_HEADERS, [self._row(c) for c in self._clients])

    def export_json(self) -> str:
        return export.to_json(
            [
                {
                    **{name: getattr(c, name) for name in Client.__dataclass_fields__},
                    "purchases": len(self._sales.sales_for_client(c.id)),
                    "total_spent": self.lifetime_spend(c.id),
                }
                for c in self._clients
            ]
        )
