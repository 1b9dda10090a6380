"""Point d'assemblage de l'officine.

Chaque collection est chargée une seule fois depuis le stockage configuré,
puis les services sont construits autour des mêmes dépôts.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from pharmacy.config import Settings, load_settings
from pharmacy.models import Client, Medication, Placement, Sale, Shelf, Transfer
from pharmacy.services import (
    ClientRegistry,
    SalesLedger,
    ShelfAnalytics,
    ShelfTransferEngine,
    StockLedger,
    StockValidator,
)
from pharmacy.storage import KeyedStore, Repository, create_store, seed

logger = logging.getLogger(__name__)

MEDICATIONS_KEY = "medications"
SALES_KEY = "sales"
CLIENTS_KEY = "clients"
SHELVES_KEY = "shelves"
PLACEMENTS_KEY = "shelf_placements"
TRANSFERS_KEY = "shelf_transfers"


class PharmacyApp:
    """Services de l'officine partageant un même stockage."""

    def __init__(
        self,
        store: KeyedStore,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or Settings()
        self.store = store
        demo = self.settings.seed_demo_data

        medications = Repository(store, MEDICATIONS_KEY, Medication, seed.demo_medications() if demo else ())
        sales = Repository(store, SALES_KEY, Sale)
        clients = Repository(store, CLIENTS_KEY, Client, seed.demo_clients() if demo else ())
        shelves = Repository(store, SHELVES_KEY, Shelf, seed.demo_shelves() if demo else ())
        placements = Repository(store, PLACEMENTS_KEY, Placement, seed.demo_placements() if demo else ())
        transfers = Repository(store, TRANSFERS_KEY, Transfer)

        validator = StockValidator()
        self.stock = StockLedger(
            medications,
            validator=validator,
            clock=clock,
            expiring_soon_days=self.settings.expiring_soon_days,
        )
        self.shelves = ShelfTransferEngine(
            shelves,
            placements,
            transfers,
            stock=self.stock,
            validator=validator,
            clock=clock,
            default_user=self.settings.default_user,
        )
        self.sales = SalesLedger(
            sales,
            stock=self.stock,
            clients=clients,
            tax_rate=self.settings.tax_rate,
            clock=clock,
        )
        self.clients = ClientRegistry(clients, sales=self.sales, clock=clock)
        self.analytics = ShelfAnalytics(self.shelves, self.stock, clock=clock)

        logger.info(
            "Officine chargée: %d médicament(s), %d rayon(s), %d client(s), %d vente(s)",
            len(medications), len(shelves), len(clients), len(sales),
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> PharmacyApp:
        settings = settings or load_settings()
        return cls(create_store(settings), settings=settings, clock=clock)
