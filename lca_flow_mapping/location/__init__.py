"""Location lookup helpers."""

from .service import LocationResolver, build_location_record

__all__ = ["LocationResolver", "build_location_record"]
