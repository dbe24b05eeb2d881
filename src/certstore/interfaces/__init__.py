"""Interfaces (application boundary) for certstore.

Defines framework-free contracts: the `Storage` ABC, its DTOs, the error
taxonomy and the cancellation `Context` shared by adapters and the
conformance suite.

Dependency rule: this package is independent and must not import from
`certstore.adapters`, `certstore.conformance` or `certstore.entrypoints`.
"""
