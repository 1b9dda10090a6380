"""
Démonstration des transferts entre stock central et rayons.

Utilisation:
    export PHARMACY_STORE_BACKEND=memory   # ou local / s3
    python demo.py
"""

import logging
from datetime import datetime, timedelta, timezone

from pharmacy.app import PharmacyApp
from pharmacy.config import load_settings
from pharmacy.models import TransferKind
from pharmacy.services import AnalyticsFilters, BasketLine, Period

settings = load_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("demo")


def show_result(label, result):
    if result.success:
        print(f"✅ {label}")
    else:
        print(f"❌ {label}: {'; '.join(result.errors)}")
    return result


def run_capacity_scenario(app: PharmacyApp):
    """Rayon de capacité 50, 100 unités en stock : 30 posées, 25 refusées, 20 posées."""
    print("\n--- Scénario capacité ---")
    item = show_result(
        "Création du médicament",
        app.stock.add_item(
            name="Ibuprofène 400mg",
            price=300,
            quantity=100,
            alert_threshold=10,
            expiration_date=datetime.now(timezone.utc) + timedelta(days=365),
        ),
    ).value
    shelf = show_result("Création du rayon", app.shelves.create_shelf("Rayon D", 50)).value

    show_result(
        "Transfert de 30 unités vers le rayon",
        app.shelves.transfer(item.id, shelf.id, 30, TransferKind.STOCK_TO_SHELF),
    )
    show_result(
        "Transfert de 25 unités supplémentaires",
        app.shelves.transfer(item.id, shelf.id, 25, TransferKind.STOCK_TO_SHELF),
    )
    show_result(
        "Transfert de 20 unités supplémentaires",
        app.shelves.transfer(item.id, shelf.id, 20, TransferKind.STOCK_TO_SHELF),
    )
    print(f"   Stock central: {app.stock.get_item(item.id).quantity}")
    print(f"   Occupation du rayon: {app.shelves.shelf_occupancy(shelf.id)}/{shelf.capacity}")
    print(f"   Total conservé: {app.shelves.total_quantity(item.id)}")
    return item, shelf


def run_sale(app: PharmacyApp, item):
    print("\n--- Vente ---")
    result = show_result(
        "Vente de 3 unités",
        app.sales.record_sale([BasketLine(item.id, 3)], seller=settings.default_user),
    )
    if result.success:
        sale = result.value
        print(f"   Facture {sale.invoice_number}: {sale.subtotal:.2f} + TVA {sale.tax:.2f} = {sale.total:.2f}")


def run_analytics(app: PharmacyApp):
    print("\n--- Statistiques des rayons (jour) ---")
    report = app.analytics.report(AnalyticsFilters(period=Period.DAY))
    print(f"   Transferts: {report.total_transfers}, unités déplacées: {report.total_quantity}")
    for kind, count in report.by_kind.items():
        print(f"   {kind}: {count}")
    for row in report.occupancy:
        print(f"   {row.shelf.name}: {row.display_rate}% ({row.total_quantity}/{row.shelf.capacity})")
    print("\n" + app.analytics.export_csv(report))


def main():
    app = PharmacyApp.from_settings(settings)
    logger.info("Backend de stockage: %s", settings.store_backend)

    item, _ = run_capacity_scenario(app)
    run_sale(app, item)
    run_analytics(app)

    alerts = app.stock.alerts()
    print(f"\n--- Alertes de stock: {len(alerts)} ---")
    for alert in alerts:
        print(f"   [{alert.severity.value}] {alert.message}")

    invariants = app.shelves.check_invariants()
    print("\n--- Contrôle des invariants ---")
    print(f"   Stock négatif: {'✅ Aucun' if invariants.is_valid else '❌ Détecté'}")
    for warning in invariants.warnings:
        print(f"   ⚠️  {warning}")


if __name__ == "__main__":
    main()
