"""Reference data store contract and HTTP implementation."""

from .base import ReferenceDataStore
from .client import OlcaRestStore

__all__ = ["OlcaRestStore", "ReferenceDataStore"]
