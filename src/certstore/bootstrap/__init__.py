"""Bootstrap (composition root) for certstore.

Turns a storage target string into a configured `Storage` backend.

Import rules:
- Entry points import *this* package rather than individual adapters.
- This package may import `certstore.adapters`, `certstore.infrastructure`,
  `certstore.interfaces` and `certstore.config`.
- Inner layers must not import `certstore.bootstrap`.
"""

from .bootstrap import build_storage

__all__ = ["build_storage"]
