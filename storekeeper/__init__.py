"""Storekeeper: authoritative store of parking lot metadata and live state."""
