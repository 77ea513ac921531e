"""Dispatcher: (class, operation) routing and catalog discovery."""

from idconnect.dispatch.router import CatalogProvider, Router
from idconnect.dispatch.schemas import ClassCatalogEntry

__all__ = [
    "CatalogProvider",
    "ClassCatalogEntry",
    "Router",
]
