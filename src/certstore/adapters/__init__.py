"""Adapters (infrastructure) for certstore.

Concrete implementations of the storage contract (memory, local filesystem,
SQL database) plus persistence mapping and wiring (engines, metadata,
migrations).

Dependency rule: may import `certstore.interfaces`; interfaces must not
import this package.
"""
