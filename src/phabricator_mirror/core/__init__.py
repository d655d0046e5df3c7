"""Transports to Phabricator shared by the review tool."""

from .conduit import ConduitClient, ConduitError
from .database import DatabaseError, DatabaseSchemaError, DifferentialDatabase

__all__ = [
    "ConduitClient",
    "ConduitError",
    "DatabaseError",
    "DatabaseSchemaError",
    "DifferentialDatabase",
]
