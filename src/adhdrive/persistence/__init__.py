"""Persistence gateways and the background writer."""

from .encrypted import EncryptedGateway, encryption_status
from .factory import build_gateway, build_writer
from .gateway import JsonFileGateway, MemoryGateway, PersistenceGateway
from .sql import SQLGateway
from .writer import PersistenceWriter

__all__ = [
    "EncryptedGateway",
    "JsonFileGateway",
    "MemoryGateway",
    "PersistenceGateway",
    "PersistenceWriter",
    "SQLGateway",
    "build_gateway",
    "build_writer",
    "encryption_status",
]
