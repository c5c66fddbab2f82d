"""Persistence layer: store boundary, SQLite store and write gateway."""

from .gateway import PersistenceGateway, canonical_url, marketplace_of
from .store import ProductStore, SQLiteProductStore

__all__ = ['PersistenceGateway', 'canonical_url', 'marketplace_of', 'ProductStore', 'SQLiteProductStore']
