"""Gestion d'officine : stock central, rayons, ventes et clients."""

__version__ = "0.1.0"
