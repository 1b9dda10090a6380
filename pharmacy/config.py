"""Configuration centrale. Le fichier .env du projet est chargé à l'import."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Le .env à la racine du projet ne remplace jamais l'environnement existant
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)

TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass
class Settings:
    store_backend: str = "local"
    data_dir: str = "data"
    s3_bucket: str = ""
    s3_prefix: str = "pharmacy/"
    region_name: str = "us-east-1"
    tax_rate: float = 18.0
    default_user: str = "admin"
    seed_demo_data: bool = True
    expiring_soon_days: int = 30
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Construit la configuration à partir des variables d'environnement."""
    return Settings(
        store_backend=os.environ.get("PHARMACY_STORE_BACKEND", "local").lower(),
        data_dir=os.environ.get("PHARMACY_DATA_DIR", "data"),
        s3_bucket=os.environ.get("PHARMACY_S3_BUCKET", ""),
        s3_prefix=os.environ.get("PHARMACY_S3_PREFIX", "pharmacy/"),
        region_name=os.environ.get("AWS_DEFAULT_REGION", "us-east-1"),
        tax_rate=float(os.environ.get("PHARMACY_TAX_RATE", "18")),
        default_user=os.environ.get("PHARMACY_DEFAULT_USER", "admin"),
        seed_demo_data=os.environ.get("PHARMACY_SEED_DEMO", "true").lower() in TRUE_VALUES,
        expiring_soon_days=int(os.environ.get("PHARMACY_EXPIRING_SOON_DAYS", "30")),
        log_level=os.environ.get("PHARMACY_LOG_LEVEL", "INFO").upper(),
    )
