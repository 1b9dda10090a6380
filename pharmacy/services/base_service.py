"""Classe de base des services métier de l'officine."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Optional

from pharmacy.models import OperationResult, utcnow

logger = logging.getLogger(__name__)


class BaseService:
    """Service adossé à des dépôts injectés et à une horloge remplaçable."""

    def __init__(self, service_name: str, clock: Optional[Callable[[], datetime]] = None):
        self.service_name = service_name
        # Horloge injectable pour les tests
        self._clock = clock or utcnow
        logger.debug("Service initialisé: %s", service_name)

    def now(self) -> datetime:
        return self._clock()

    @staticmethod
    def new_id() -> str:
        return str(uuid.uuid4())

    def reject(self, operation: str, errors: list[str]) -> OperationResult:
        """Journalise un refus et le retourne sous forme de résultat."""
        logger.warning("[%s] %s refusé: %s", self.service_name, operation, "; ".join(errors))
        return OperationResult.fail(*errors)

    def accept(self, operation: str, value: Any = None) -> OperationResult:
        logger.info("[%s] %s effectué", self.service_name, operation)
        return OperationResult.ok(value)
