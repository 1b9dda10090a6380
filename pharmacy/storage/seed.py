"""Données de démonstration chargées quand une collection n'existe pas encore."""

from __future__ import annotations

from datetime import datetime, timezone

from pharmacy.models import (
    Client,
    Medication,
    MedicationForm,
    Placement,
    PlacementStatus,
    Shelf,
)


def _date(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, tzinfo=timezone.utc)


def demo_medications() -> list[Medication]:
    return [
        Medication(
            id="1",
            name="Paracétamol 500mg",
            description="Antalgique et antipyrétique",
            price=250,
            quantity=150,
            alert_threshold=20,
            expiration_date=_date(2025, 12, 31),
            category="Antalgiques",
            supplier="Pharma Plus",
            barcode="3401579804567",
            dosage="500mg",
            form=MedicationForm.TABLET,
            prescription=False,
            created_at=_date(2024, 1, 15),
            modified_at=_date(2024, 1, 15),
        ),
        Medication(
            id="2",
            name="Amoxicilline 1g",
            description="Antibiotique à large spectre",
            price=1200,
            quantity=8,
            alert_threshold=10,
            expiration_date=_date(2025, 6, 30),
            category="Antibiotiques",
            supplier="MediCorp",
            barcode="3401579804568",
            dosage="1g",
            form=MedicationForm.TABLET,
            prescription=True,
            created_at=_date(2024, 2, 1),
            modified_at=_date(2024, 2, 1),
        ),
        Medication(
            id="3",
            name="Sirop contre la toux",
            description="Sirop expectorant",
            price=850,
            quantity=25,
            alert_threshold=15,
            expiration_date=_date(2025, 3, 15),
            category="Sirops",
            supplier="Pharma Plus",
            barcode="3401579804569",
            dosage="100ml",
            form=MedicationForm.SYRUP,
            prescription=False,
            created_at=_date(2024, 1, 20),
            modified_at=_date(2024, 1, 20),
        ),
    ]


# (id, nom, prénom, téléphone, email, adresse, naissance, n° sécu, inscription)
CLIENTS = [
    ("1", "Diallo", "Amadou", "70 12 34 56", "amadou.diallo@email.com",
     "Quartier Liberté, Niamey", _date(1985, 3, 15), "1850315123456", _date(2024, 1, 10)),
    ("2", "Kone", "Fatima", "96 78 90 12", "fatima.kone@email.com",
     "Plateau, Niamey", _date(1992, 7, 22), "2920722654321", _date(2024, 2, 15)),
    ("3", "Oumarou", "Ibrahim", "90 45 67 89", None,
     "Gamkallé, Niamey", _date(1978, 11, 8), None, _date(2024, 3, 1)),
    ("4", "Saidou", "Aïcha", "70 98 76 54", "aicha.saidou@email.com",
     "Kirkissoye, Niamey", _date(1990, 5, 12), "2900512987654", _date(2024, 1, 25)),
    ("5", "Mamadou", "Zeinab", "96 12 34 78", None,
     "Lazaret, Niamey", _date(1988, 9, 30), None, _date(2024, 2, 28)),
]


def demo_clients() -> list[Client]:
    return [
        Client(
            id=cid,
            last_name=last_name,
            first_name=first_name,
            phone=phone,
            email=email,
            address=address,
            birth_date=birth_date,
            social_security_number=ssn,
            registered_at=registered_at,
        )
        for cid, last_name, first_name, phone, email, address, birth_date, ssn, registered_at in CLIENTS
    ]


def demo_shelves() -> list[Shelf]:
    created = _date(2024, 1, 1)
    return [
        Shelf("1", "Rayon A", 100, "Médicaments sans ordonnance", "Allée 1, Étagère 1-3", created, created),
        Shelf("2", "Rayon B", 80, "Antibiotiques et médicaments sur ordonnance", "Allée 2, Étagère 1-2", created, created),
        Shelf("3", "Rayon C", 60, "Sirops et médicaments liquides", "Allée 1, Étagère 4-5", created, created),
    ]


def demo_placements() -> list[Placement]:
    return [
        Placement("1", "1", "1", 50, 10, _date(2024, 1, 15), PlacementStatus.FOR_SALE),
        Placement("2", "2", "2", 5, 5, _date(2024, 2, 1), PlacementStatus.FOR_SALE),
        Placement("3", "3", "3", 15, 8, _date(2024, 1, 20), PlacementStatus.FOR_SALE),
    ]
