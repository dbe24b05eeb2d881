"""certstore

A hierarchical key-value storage contract with advisory locking, used as the
pluggable persistence layer of a TLS certificate cache, together with a
conformance suite that checks any backend against the contract.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
