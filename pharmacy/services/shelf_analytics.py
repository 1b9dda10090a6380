"""Statistiques des rayons - projection en lecture seule du journal des transferts.

Les agrégats (totaux, répartition par type, rayons les plus actifs,
médicaments les plus transférés, évolution journalière) portent sur les
transferts de la période retenue qui passent les filtres. Le taux
d'occupation reflète l'état actuel des placements, quelle que soit la période.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Iterable, Optional, Union

from pharmacy.models import (
    Medication,
    Placement,
    Shelf,
    Transfer,
    TransferKind,
    TransferView,
    ensure_utc,
    utcnow,
)
from pharmacy.services import export
from pharmacy.storage import codec

logger = logging.getLogger(__name__)

TOP_LIMIT = 5
ALL_KINDS = "all"
END_MARGIN = timedelta(milliseconds=1)

CSV_HEADERS = ["Date", "Médicament", "Rayon", "Type", "Quantité", "Utilisateur", "Commentaire"]


class Period(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
    CUSTOM = "custom"


@dataclass
class AnalyticsFilters:
    period: Period = Period.MONTH
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    shelf_id: Optional[str] = None
    item_id: Optional[str] = None
    kind: Union[TransferKind, str] = ALL_KINDS


@dataclass
class ShelfActivity:
    shelf: Shelf
    transfer_count: int = 0
    quantity: int = 0


@dataclass
class ItemActivity:
    item: Medication
    transfer_count: int = 0
    quantity: int = 0


@dataclass
class ShelfOccupancy:
    shelf: Shelf
    total_quantity: int
    occupancy_rate: float
    placement_count: int

    @property
    def display_rate(self) -> int:
        return round(self.occupancy_rate)


@dataclass
class ShelfAnalyticsReport:
    period: Period
    start: datetime
    end: datetime
    total_transfers: int
    total_quantity: int
    by_kind: dict[str, int]
    top_shelves: list[ShelfActivity]
    top_items: list[ItemActivity]
    daily_evolution: dict[str, int]
    occupancy: list[ShelfOccupancy]
    transfers: list[TransferView] = field(default_factory=list)


def resolve_period(
    period: Union[Period, str],
    now: datetime,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> tuple[datetime, datetime]:
    """Traduit une période en intervalle ``[début, fin)``.

    Les périodes glissantes se terminent juste après ``now`` (une milliseconde,
    la précision des horodatages) pour inclure un transfert fait à l'instant
    même ; la période personnalisée utilise les bornes fournies (par défaut :
    1er janvier de l'année et cette même borne de fin).
    """
    period = Period(period)
    now = ensure_utc(now)
    horizon = now + END_MARGIN

    if period == Period.DAY:
        return now.replace(hour=0, minute=0, second=0, microsecond=0), horizon
    if period == Period.WEEK:
        return now - timedelta(days=7), horizon
    if period == Period.MONTH:
        return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0), horizon
    if period == Period.QUARTER:
        first_month = ((now.month - 1) // 3) * 3 + 1
        return now.replace(month=first_month, day=1, hour=0, minute=0, second=0, microsecond=0), horizon
    if period == Period.YEAR:
        return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0), horizon

    range_start = ensure_utc(start) or now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    range_end = ensure_utc(end) or horizon
    if range_end < range_start:
        raise ValueError(f"Période personnalisée invalide: {range_start} > {range_end}")
    return range_start, range_end


def filter_transfers(
    transfers: Iterable[Transfer],
    start: datetime,
    end: datetime,
    shelf_id: Optional[str] = None,
    item_id: Optional[str] = None,
    kind: Union[TransferKind, str] = ALL_KINDS,
) -> list[Transfer]:
    """Transferts de l'intervalle ``[start, end)`` passant les filtres optionnels."""
    kind_filter = None if not kind or kind == ALL_KINDS else TransferKind(kind)
    return [
        t for t in transfers
        if start <= t.timestamp < end
        and (not shelf_id or t.shelf_id == shelf_id)
        and (not item_id or t.item_id == item_id)
        and (kind_filter is None or t.kind == kind_filter)
    ]


def compute_occupancy(shelves: Iterable[Shelf], placements: Iterable[Placement]) -> list[ShelfOccupancy]:
    """Taux d'occupation actuel de chaque rayon, du plus rempli au moins rempli."""
    placements = list(placements)
    rows = []
    for shelf in shelves:
        on_shelf = [p for p in placements if p.shelf_id == shelf.id]
        total = sum(p.quantity for p in on_shelf)
        rate = (total / shelf.capacity) * 100 if shelf.capacity > 0 else 0.0
        rows.append(ShelfOccupancy(shelf, total, rate, len(on_shelf)))
    return sorted(rows, key=lambda r: r.occupancy_rate, reverse=True)


def build_report(
    transfers: Iterable[Transfer],
    placements: Iterable[Placement],
    shelves: Iterable[Shelf],
    items: Iterable[Medication],
    filters: AnalyticsFilters,
    now: datetime,
) -> ShelfAnalyticsReport:
    """Calcule l'ensemble des agrégats ; fonction pure des données fournies."""
    shelves = list(shelves)
    shelf_by_id = {s.id: s for s in shelves}
    item_by_id = {i.id: i for i in items}

    start, end = resolve_period(filters.period, now, filters.start, filters.end)
    selected = filter_transfers(
        transfers, start, end, filters.shelf_id, filters.item_id, filters.kind
    )

    by_kind = {kind.value: 0 for kind in TransferKind}
    shelf_activity: dict[str, ShelfActivity] = {}
    item_activity: dict[str, ItemActivity] = {}
    daily: dict[str, int] = {}

    for t in selected:
        by_kind[t.kind.value] += 1

        shelf = shelf_by_id.get(t.shelf_id)
        if shelf is not None:
            activity = shelf_activity.setdefault(t.shelf_id, ShelfActivity(shelf))
            activity.transfer_count += 1
            activity.quantity += t.quantity

        item = item_by_id.get(t.item_id)
        if item is not None:
            activity = item_activity.setdefault(t.item_id, ItemActivity(item))
            activity.transfer_count += 1
            activity.quantity += t.quantity

        day = t.timestamp.date().isoformat()
        daily[day] = daily.get(day, 0) + 1

    # Tri stable : à égalité, l'ordre de première apparition est conservé
    top_shelves = sorted(shelf_activity.values(), key=lambda a: a.transfer_count, reverse=True)
    top_items = sorted(item_activity.values(), key=lambda a: a.quantity, reverse=True)

    return ShelfAnalyticsReport(
        period=Period(filters.period),
        start=start,
        end=end,
        total_transfers=len(selected),
        total_quantity=sum(t.quantity for t in selected),
        by_kind=by_kind,
        top_shelves=top_shelves[:TOP_LIMIT],
        top_items=top_items[:TOP_LIMIT],
        daily_evolution=daily,
        occupancy=compute_occupancy(shelves, placements),
        transfers=[
            TransferView(
                transfer=t,
                item=item_by_id.get(t.item_id),
                shelf=shelf_by_id.get(t.shelf_id),
                destination_shelf=shelf_by_id.get(t.destination_shelf_id) if t.destination_shelf_id else None,
            )
            for t in selected
        ],
    )


class ShelfAnalytics:
    """Statistiques des rayons calculées à la demande sur l'état du moteur."""

    def __init__(self, engine, stock, clock: Optional[Callable[[], datetime]] = None):
        self._engine = engine
        self._stock = stock
        self._clock = clock or utcnow

    def report(self, filters: Optional[AnalyticsFilters] = None, now: Optional[datetime] = None) -> ShelfAnalyticsReport:
        filters = filters or AnalyticsFilters()
        report = build_report(
            transfers=self._engine.raw_transfers(),
            placements=self._engine.raw_placements(),
            shelves=self._engine.list_shelves(),
            items=self._stock.list_items(),
            filters=filters,
            now=now or self._clock(),
        )
        logger.debug(
            "Statistiques rayons %s: %d transfert(s), %d unité(s)",
            report.period.value, report.total_transfers, report.total_quantity,
        )
        return report

    # --- Exports ---

    @staticmethod
    def transfer_rows(report: ShelfAnalyticsReport) -> list[list]:
        return [
            [
                codec.format_timestamp(view.transfer.timestamp),
                view.item.name if view.item else "",
                view.shelf.name if view.shelf else "",
                view.transfer.kind.value,
                view.transfer.quantity,
                view.transfer.user,
                view.transfer.comment or "",
            ]
            for view in report.transfers
        ]

    def export_csv(self, report: ShelfAnalyticsReport) -> str:
        """Une ligne par transfert : Date, Médicament, Rayon, Type, Quantité, Utilisateur, Commentaire."""
        return export.to_csv(CSV_HEADERS, self.transfer_rows(report))

    def export_json(self, report: ShelfAnalyticsReport) -> str:
        document = {
            "period": report.period.value,
            "start": report.start,
            "end": report.end,
            "statistics": {
                "total_transfers": report.total_transfers,
                "total_quantity": report.total_quantity,
                "by_kind": report.by_kind,
                "top_shelves": [
                    {"shelf_id": a.shelf.id, "name": a.shelf.name,
                     "transfers": a.transfer_count, "quantity": a.quantity}
                    for a in report.top_shelves
                ],
                "top_items": [
                    {"item_id": a.item.id, "name": a.item.name,
                     "transfers": a.transfer_count, "quantity": a.quantity}
                    for a in report.top_items
                ],
                "daily_evolution": report.daily_evolution,
                "occupancy": [
                    {"shelf_id": o.shelf.id, "name": o.shelf.name, "total_quantity": o.total_quantity,
                     "occupancy_rate": o.occupancy_rate, "placements": o.placement_count}
                    for o in report.occupancy
                ],
            },
            "transfers": [
                dict(zip(["date", "item", "shelf", "kind", "quantity", "user", "comment"], row))
                for row in self.transfer_rows(report)
            ],
        }
        return export.to_json(document)
