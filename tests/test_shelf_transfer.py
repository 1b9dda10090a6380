"""Moteur de transferts stock/rayons : tests unitaires."""

import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from pharmacy.app import PharmacyApp
from pharmacy.config import Settings
from pharmacy.models import PlacementStatus, TransferKind
from pharmacy.services import StockValidator
from pharmacy.services.shelf_transfer import SYSTEM_USER, minimum_quantity_for
from pharmacy.storage import InMemoryStore

FIXED_NOW = datetime(2024, 6, 15, 10, 0, tzinfo=timezone.utc)


def _create_app(store=None) -> PharmacyApp:
    settings = Settings(store_backend="memory", seed_demo_data=False)
    return PharmacyApp(store or InMemoryStore(), settings=settings, clock=lambda: FIXED_NOW)


def _add_item(app, name="Paracétamol 500mg", quantity=100, price=250):
    result = app.stock.add_item(
        name=name,
        price=price,
        quantity=quantity,
        alert_threshold=10,
        expiration_date=FIXED_NOW + timedelta(days=365),
    )
    assert result.success, result.errors
    return result.value


def _add_shelf(app, name="Rayon A", capacity=30):
    result = app.shelves.create_shelf(name, capacity)
    assert result.success, result.errors
    return result.value


def _state(app):
    return (
        {i.id: i.quantity for i in app.stock.list_items()},
        sorted((p.item_id, p.shelf_id, p.quantity) for p in app.shelves.raw_placements()),
        len(app.shelves.raw_transfers()),
    )


class TestCapacityScenario:
    """Plafond de capacité avec 100 unités en stock (rayons de 30 et de 50)."""

    def test_first_transfer_accepted(self):
        app = _create_app()
        item = _add_item(app, quantity=100)
        shelf = _add_shelf(app, capacity=30)

        result = app.shelves.transfer(item.id, shelf.id, 25, TransferKind.STOCK_TO_SHELF)

        assert result.success is True
        assert app.stock.get_item(item.id).quantity == 75
        assert app.shelves.find_placement(item.id, shelf.id).quantity == 25
        assert len(app.shelves.raw_transfers()) == 1

    def test_second_transfer_rejected_without_mutation(self):
        app = _create_app()
        item = _add_item(app, quantity=100)
        shelf = _add_shelf(app, capacity=30)
        app.shelves.transfer(item.id, shelf.id, 25, TransferKind.STOCK_TO_SHELF)
        before = _state(app)

        result = app.shelves.transfer(item.id, shelf.id, 20, TransferKind.STOCK_TO_SHELF)

        assert result.success is False
        assert any("Capacité du rayon dépassée" in e for e in result.errors)
        assert _state(app) == before
        assert app.stock.get_item(item.id).quantity == 75
        assert app.shelves.shelf_occupancy(shelf.id) == 25

    def test_exact_fill_accepted(self):
        app = _create_app()
        item = _add_item(app, quantity=100)
        shelf = _add_shelf(app, capacity=30)
        app.shelves.transfer(item.id, shelf.id, 25, TransferKind.STOCK_TO_SHELF)

        result = app.shelves.transfer(item.id, shelf.id, 5, TransferKind.STOCK_TO_SHELF)

        assert result.success is True
        assert app.shelves.shelf_occupancy(shelf.id) == 30

    def test_capacity_fifty_sequence(self):
        """Capacité 50 : 30 acceptées, 25 refusées, 20 acceptées."""
        app = _create_app()
        item = _add_item(app, quantity=100)
        shelf = _add_shelf(app, capacity=50)

        first = app.shelves.transfer(item.id, shelf.id, 30, TransferKind.STOCK_TO_SHELF)
        before = _state(app)
        second = app.shelves.transfer(item.id, shelf.id, 25, TransferKind.STOCK_TO_SHELF)
        after_rejection = _state(app)
        third = app.shelves.transfer(item.id, shelf.id, 20, TransferKind.STOCK_TO_SHELF)

        assert [first.success, second.success, third.success] == [True, False, True]
        assert any("Capacité du rayon dépassée" in e for e in second.errors)
        assert after_rejection == before
        assert app.shelves.shelf_occupancy(shelf.id) == 50
        assert app.stock.get_item(item.id).quantity == 50
        assert [t.quantity for t in app.shelves.raw_transfers()] == [30, 20]
        assert app.shelves.total_quantity(item.id) == 100


class TestStockToShelf:

    def test_insufficient_central_stock(self):
        app = _create_app()
        item = _add_item(app, quantity=10)
        shelf = _add_shelf(app, capacity=100)

        result = app.shelves.transfer(item.id, shelf.id, 11, TransferKind.STOCK_TO_SHELF)

        assert result.success is False
        assert any("Stock insuffisant" in e for e in result.errors)
        assert app.stock.get_item(item.id).quantity == 10
        assert app.shelves.raw_transfers() == []

    @pytest.mark.parametrize("quantity", [0, -5, 2.5, True, None, "3"])
    def test_invalid_quantity_rejected(self, quantity):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app)

        result = app.shelves.transfer(item.id, shelf.id, quantity, TransferKind.STOCK_TO_SHELF)

        assert result.success is False
        assert app.shelves.raw_transfers() == []

    def test_unknown_item_and_shelf(self):
        app = _create_app()

        result = app.shelves.transfer("absent", "absent", 5, TransferKind.STOCK_TO_SHELF)

        assert result.success is False
        assert "Médicament introuvable" in result.errors
        assert "Rayon introuvable" in result.errors

    def test_unknown_kind(self):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app)

        result = app.shelves.transfer(item.id, shelf.id, 5, "teleport")

        assert result.success is False
        assert any("Type de transfert inconnu" in e for e in result.errors)

    def test_merge_into_existing_placement(self):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app)

        app.shelves.transfer(item.id, shelf.id, 10, TransferKind.STOCK_TO_SHELF)
        app.shelves.transfer(item.id, shelf.id, 5, TransferKind.STOCK_TO_SHELF)

        placements = [p for p in app.shelves.raw_placements() if p.item_id == item.id]
        assert len(placements) == 1
        assert placements[0].quantity == 15
        # Le seuil minimal reste celui fixé à la création du placement
        assert placements[0].minimum_quantity == minimum_quantity_for(10) == 2

    def test_new_placement_defaults(self):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app)

        app.shelves.transfer(item.id, shelf.id, 7, TransferKind.STOCK_TO_SHELF)

        placement = app.shelves.find_placement(item.id, shelf.id)
        assert placement.minimum_quantity == 2
        assert placement.status == PlacementStatus.FOR_SALE
        assert placement.transferred_at == FIXED_NOW

    def test_transfer_record(self):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app)

        transfer = app.shelves.transfer(
            item.id, shelf.id, 4, TransferKind.STOCK_TO_SHELF, comment="Réassort", user="marie"
        ).value

        assert transfer.kind == TransferKind.STOCK_TO_SHELF
        assert transfer.quantity == 4
        assert transfer.user == "marie"
        assert transfer.comment == "Réassort"
        assert transfer.destination_shelf_id is None
        assert transfer.timestamp == FIXED_NOW

    def test_default_user(self):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app)

        transfer = app.shelves.transfer(item.id, shelf.id, 4, TransferKind.STOCK_TO_SHELF).value

        assert transfer.user == "admin"


class TestShelfToStock:

    def test_partial_return(self):
        app = _create_app()
        item = _add_item(app, quantity=100)
        shelf = _add_shelf(app)
        app.shelves.transfer(item.id, shelf.id, 20, TransferKind.STOCK_TO_SHELF)

        result = app.shelves.transfer(item.id, shelf.id, 5, TransferKind.SHELF_TO_STOCK)

        assert result.success is True
        assert app.stock.get_item(item.id).quantity == 85
        assert app.shelves.find_placement(item.id, shelf.id).quantity == 15

    def test_full_return_removes_placement(self):
        app = _create_app()
        item = _add_item(app, quantity=100)
        shelf = _add_shelf(app)
        app.shelves.transfer(item.id, shelf.id, 20, TransferKind.STOCK_TO_SHELF)

        result = app.shelves.transfer(item.id, shelf.id, 20, TransferKind.SHELF_TO_STOCK)

        assert result.success is True
        assert app.shelves.find_placement(item.id, shelf.id) is None
        assert app.stock.get_item(item.id).quantity == 100

    def test_more_than_placed_rejected(self):
        app = _create_app()
        item = _add_item(app, quantity=100)
        shelf = _add_shelf(app)
        app.shelves.transfer(item.id, shelf.id, 20, TransferKind.STOCK_TO_SHELF)
        before = _state(app)

        result = app.shelves.transfer(item.id, shelf.id, 21, TransferKind.SHELF_TO_STOCK)

        assert result.success is False
        assert any("Quantité insuffisante dans le rayon" in e for e in result.errors)
        assert _state(app) == before

    def test_without_placement_rejected(self):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app)

        result = app.shelves.transfer(item.id, shelf.id, 1, TransferKind.SHELF_TO_STOCK)

        assert result.success is False


class TestShelfToShelf:

    def test_full_move(self):
        app = _create_app()
        item = _add_item(app, quantity=100)
        source = _add_shelf(app, "Rayon A", 30)
        destination = _add_shelf(app, "Rayon B", 30)
        app.shelves.transfer(item.id, source.id, 10, TransferKind.STOCK_TO_SHELF)

        result = app.shelves.transfer(
            item.id, source.id, 10, TransferKind.SHELF_TO_SHELF, destination_shelf_id=destination.id
        )

        assert result.success is True
        assert app.shelves.find_placement(item.id, source.id) is None
        assert app.shelves.find_placement(item.id, destination.id).quantity == 10
        assert app.stock.get_item(item.id).quantity == 90
        assert result.value.destination_shelf_id == destination.id
        assert result.value.shelf_id == source.id

    def test_merges_into_destination(self):
        app = _create_app()
        item = _add_item(app, quantity=100)
        source = _add_shelf(app, "Rayon A", 30)
        destination = _add_shelf(app, "Rayon B", 30)
        app.shelves.transfer(item.id, source.id, 10, TransferKind.STOCK_TO_SHELF)
        app.shelves.transfer(item.id, destination.id, 5, TransferKind.STOCK_TO_SHELF)

        app.shelves.transfer(
            item.id, source.id, 4, TransferKind.SHELF_TO_SHELF, destination_shelf_id=destination.id
        )

        assert app.shelves.find_placement(item.id, source.id).quantity == 6
        assert app.shelves.find_placement(item.id, destination.id).quantity == 9
        assert len([p for p in app.shelves.raw_placements() if p.shelf_id == destination.id]) == 1

    def test_destination_capacity_exceeded(self):
        app = _create_app()
        item = _add_item(app, quantity=100)
        source = _add_shelf(app, "Rayon A", 30)
        destination = _add_shelf(app, "Rayon B", 5)
        app.shelves.transfer(item.id, source.id, 10, TransferKind.STOCK_TO_SHELF)
        before = _state(app)

        result = app.shelves.transfer(
            item.id, source.id, 10, TransferKind.SHELF_TO_SHELF, destination_shelf_id=destination.id
        )

        assert result.success is False
        assert any("Capacité du rayon de destination dépassée" in e for e in result.errors)
        assert _state(app) == before

    def test_missing_destination(self):
        app = _create_app()
        item = _add_item(app)
        source = _add_shelf(app)
        app.shelves.transfer(item.id, source.id, 10, TransferKind.STOCK_TO_SHELF)

        result = app.shelves.transfer(item.id, source.id, 5, TransferKind.SHELF_TO_SHELF)
        unknown = app.shelves.transfer(
            item.id, source.id, 5, TransferKind.SHELF_TO_SHELF, destination_shelf_id="absent"
        )

        assert "Rayon de destination introuvable" in result.errors
        assert "Rayon de destination introuvable" in unknown.errors

    def test_same_shelf_rejected(self):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app)
        app.shelves.transfer(item.id, shelf.id, 10, TransferKind.STOCK_TO_SHELF)

        result = app.shelves.transfer(
            item.id, shelf.id, 5, TransferKind.SHELF_TO_SHELF, destination_shelf_id=shelf.id
        )

        assert result.success is False
        assert app.shelves.find_placement(item.id, shelf.id).quantity == 10


class TestConservation:

    def test_totals_preserved_across_sequence(self):
        app = _create_app()
        first = _add_item(app, "Paracétamol", quantity=100)
        second = _add_item(app, "Amoxicilline", quantity=40)
        shelf_a = _add_shelf(app, "Rayon A", 50)
        shelf_b = _add_shelf(app, "Rayon B", 20)
        expected = app.shelves.quantity_snapshot()

        operations = [
            (first.id, shelf_a.id, 30, TransferKind.STOCK_TO_SHELF, None),
            (second.id, shelf_a.id, 15, TransferKind.STOCK_TO_SHELF, None),
            (first.id, shelf_a.id, 10, TransferKind.SHELF_TO_SHELF, shelf_b.id),
            (second.id, shelf_a.id, 50, TransferKind.SHELF_TO_STOCK, None),
            (first.id, shelf_b.id, 15, TransferKind.STOCK_TO_SHELF, None),
            (first.id, shelf_b.id, 10, TransferKind.SHELF_TO_STOCK, None),
            (second.id, shelf_a.id, 15, TransferKind.SHELF_TO_SHELF, shelf_b.id),
        ]
        for item_id, shelf_id, quantity, kind, destination in operations:
            app.shelves.transfer(item_id, shelf_id, quantity, kind, destination_shelf_id=destination)
            snapshot = app.shelves.quantity_snapshot()

            assert StockValidator().verify_stock_conservation(expected, snapshot).is_valid
            assert all(i.quantity >= 0 for i in app.stock.list_items())
            assert all(p.quantity > 0 for p in app.shelves.raw_placements())
            for shelf in app.shelves.list_shelves():
                assert app.shelves.shelf_occupancy(shelf.id) <= shelf.capacity

    def test_single_placement_per_pair(self):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app, capacity=100)

        for _ in range(4):
            app.shelves.transfer(item.id, shelf.id, 3, TransferKind.STOCK_TO_SHELF)

        pairs = [(p.item_id, p.shelf_id) for p in app.shelves.raw_placements()]
        assert len(pairs) == len(set(pairs)) == 1

    def test_conservation_violation_logged(self, caplog, monkeypatch):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app)
        app.shelves.transfer(item.id, shelf.id, 10, TransferKind.STOCK_TO_SHELF)
        # Stock central qui ne reçoit pas le retour
        monkeypatch.setattr(app.stock, "increment", MagicMock())
        caplog.set_level(logging.ERROR, logger="pharmacy.services.shelf_transfer")

        app.shelves.transfer(item.id, shelf.id, 4, TransferKind.SHELF_TO_STOCK)

        assert f"Violation de conservation: {item.id} total avant=100, total après=96" in caplog.text

    def test_no_error_logged_on_regular_transfer(self, caplog):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app)
        caplog.set_level(logging.ERROR, logger="pharmacy.services.shelf_transfer")

        app.shelves.transfer(item.id, shelf.id, 10, TransferKind.STOCK_TO_SHELF)

        assert caplog.records == []

    def test_check_invariants(self):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app, capacity=30)
        app.shelves.transfer(item.id, shelf.id, 20, TransferKind.STOCK_TO_SHELF)

        clean = app.shelves.check_invariants()
        assert clean.is_valid is True
        assert clean.warnings == []

        app.shelves.update_shelf(shelf.id, capacity=10)
        app.stock.get_item(item.id).quantity = -1
        result = app.shelves.check_invariants()

        assert result.is_valid is False
        assert result.errors == [f"Quantité négative détectée: stock/{item.id} = -1"]
        assert result.warnings == ["Rayon au-dessus de sa capacité: Rayon A (20/10)"]


class TestShelfManagement:

    def test_create_shelf_validation(self):
        app = _create_app()

        assert app.shelves.create_shelf("", 10).success is False
        assert app.shelves.create_shelf("Rayon", 0).success is False
        assert app.shelves.create_shelf("Rayon", -3).success is False
        assert app.shelves.list_shelves() == []

    def test_update_shelf(self):
        app = _create_app()
        shelf = _add_shelf(app)

        result = app.shelves.update_shelf(shelf.id, name="Rayon Z", location="Allée 3")

        assert result.success is True
        assert app.shelves.get_shelf(shelf.id).name == "Rayon Z"
        assert app.shelves.get_shelf(shelf.id).location == "Allée 3"

    def test_update_rejects_unknown_fields(self):
        app = _create_app()
        shelf = _add_shelf(app)

        assert app.shelves.update_shelf(shelf.id, id="autre").success is False
        assert app.shelves.update_shelf("absent", name="X").success is False

    def test_lowered_capacity_blocks_next_transfer(self):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app, capacity=30)
        app.shelves.transfer(item.id, shelf.id, 20, TransferKind.STOCK_TO_SHELF)

        result = app.shelves.update_shelf(shelf.id, capacity=10)

        assert result.success is True
        assert app.shelves.shelf_occupancy(shelf.id) == 20
        assert app.shelves.transfer(item.id, shelf.id, 1, TransferKind.STOCK_TO_SHELF).success is False
        # Le retrait reste possible
        assert app.shelves.transfer(item.id, shelf.id, 5, TransferKind.SHELF_TO_STOCK).success is True

    def test_lowered_capacity_logs_warning(self, caplog):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app, capacity=30)
        app.shelves.transfer(item.id, shelf.id, 20, TransferKind.STOCK_TO_SHELF)
        caplog.set_level(logging.WARNING, logger="pharmacy.services.shelf_transfer")

        app.shelves.update_shelf(shelf.id, capacity=10)
        app.shelves.update_shelf(shelf.id, capacity=25)

        warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
        assert warnings == ["Rayon au-dessus de sa capacité: Rayon A (20/10)"]

    def test_delete_shelf_returns_stock(self):
        app = _create_app()
        first = _add_item(app, "Paracétamol", quantity=100)
        second = _add_item(app, "Amoxicilline", quantity=50)
        shelf = _add_shelf(app, capacity=60)
        app.shelves.transfer(first.id, shelf.id, 20, TransferKind.STOCK_TO_SHELF)
        app.shelves.transfer(second.id, shelf.id, 10, TransferKind.STOCK_TO_SHELF)
        before = app.shelves.quantity_snapshot()

        result = app.shelves.delete_shelf(shelf.id)

        assert result.success is True
        assert app.shelves.get_shelf(shelf.id) is None
        assert app.shelves.raw_placements() == []
        assert app.stock.get_item(first.id).quantity == 100
        assert app.stock.get_item(second.id).quantity == 50
        assert app.shelves.quantity_snapshot() == before

        returned = result.value
        assert len(returned) == 2
        assert all(t.kind == TransferKind.SHELF_TO_STOCK for t in returned)
        assert all(t.user == SYSTEM_USER for t in returned)
        assert len(app.shelves.raw_transfers()) == 4

    def test_delete_shelf_skips_deleted_items(self):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app)
        app.shelves.transfer(item.id, shelf.id, 5, TransferKind.STOCK_TO_SHELF)
        app.stock.delete_item(item.id)

        result = app.shelves.delete_shelf(shelf.id)

        assert result.success is True
        assert result.value == []
        assert app.shelves.raw_placements() == []

    def test_delete_unknown_shelf(self):
        app = _create_app()

        assert app.shelves.delete_shelf("absent").success is False


class TestViewsAndStatistics:

    def test_placement_views_join_current_records(self):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app)
        app.shelves.transfer(item.id, shelf.id, 5, TransferKind.STOCK_TO_SHELF)
        app.stock.update_item(item.id, name="Paracétamol 1g")

        view = app.shelves.placements_on_shelf(shelf.id)[0]

        assert view.item.name == "Paracétamol 1g"
        assert view.shelf.id == shelf.id

    def test_transfer_views_tolerate_deleted_shelf(self):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app)
        app.shelves.transfer(item.id, shelf.id, 5, TransferKind.STOCK_TO_SHELF)
        app.shelves.delete_shelf(shelf.id)

        views = app.shelves.transfers()

        assert len(views) == 2
        assert all(v.shelf is None for v in views)

    def test_shelf_statistics(self):
        app = _create_app()
        item = _add_item(app, price=250)
        shelf = _add_shelf(app, capacity=40)
        app.shelves.transfer(item.id, shelf.id, 10, TransferKind.STOCK_TO_SHELF)

        stats = app.shelves.shelf_statistics(shelf.id)

        assert stats["total_quantity"] == 10
        assert stats["fill_percentage"] == 25.0
        assert stats["distinct_items"] == 1
        assert stats["total_value"] == 2500
        assert stats["remaining_capacity"] == 30
        assert app.shelves.shelf_statistics("absent") is None

    def test_set_placement_status(self):
        app = _create_app()
        item = _add_item(app)
        shelf = _add_shelf(app)
        app.shelves.transfer(item.id, shelf.id, 5, TransferKind.STOCK_TO_SHELF)
        placement = app.shelves.find_placement(item.id, shelf.id)

        assert app.shelves.set_placement_status(placement.id, PlacementStatus.RESERVED).success
        assert app.shelves.find_placement(item.id, shelf.id).status == PlacementStatus.RESERVED
        assert app.shelves.set_placement_status(placement.id, "lost").success is False


class TestPersistence:

    def test_state_survives_reload(self):
        store = InMemoryStore()
        app = _create_app(store)
        item = _add_item(app)
        shelf = _add_shelf(app)
        app.shelves.transfer(item.id, shelf.id, 12, TransferKind.STOCK_TO_SHELF, comment="Réassort")

        reloaded = _create_app(store)

        assert reloaded.stock.get_item(item.id).quantity == 88
        assert reloaded.shelves.find_placement(item.id, shelf.id).quantity == 12
        transfer = reloaded.shelves.raw_transfers()[0]
        assert transfer.kind == TransferKind.STOCK_TO_SHELF
        assert transfer.timestamp == FIXED_NOW
        assert transfer.comment == "Réassort"
