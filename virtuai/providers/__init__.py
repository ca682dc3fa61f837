"""Concrete adapters for the interfaces in :mod:`virtuai.interfaces`."""
