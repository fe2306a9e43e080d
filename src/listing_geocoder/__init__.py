"""Listing geocoder: durable queue that turns listing addresses into coordinates."""

__version__ = "0.1.0"
