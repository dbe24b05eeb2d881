"""Conformance checks any `Storage` backend can be run against."""

from .suite import CHECK_NAMES, KEY_PREFIX, ConformanceError, ConformanceSuite

__all__ = ["CHECK_NAMES", "KEY_PREFIX", "ConformanceError", "ConformanceSuite"]
