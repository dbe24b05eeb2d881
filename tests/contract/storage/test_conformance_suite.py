"""Every shipped backend passes the conformance suite."""

from __future__ import annotations

import random

from certstore.conformance import CHECK_NAMES, ConformanceSuite
from certstore.interfaces.storage import Storage


def test_suite_passes(storage: Storage):
    """All check groups pass and report in order."""
    passed: list[str] = []
    ConformanceSuite(storage, random.Random(7)).run(on_pass=passed.append)
    assert passed == list(CHECK_NAMES)


def test_suite_leaves_no_generated_keys(storage: Storage):
    """Cleanup removes every key the suite stored."""
    suite = ConformanceSuite(storage, random.Random(7))
    suite.run()
    for key in suite.generated_keys:
        assert not storage.exists(key)


def test_suite_is_repeatable_with_same_seed(storage: Storage):
    """A second run with the same seed reuses the same keys and still passes."""
    first = ConformanceSuite(storage, random.Random(42))
    first.run()
    second = ConformanceSuite(storage, random.Random(42))
    second.run()
    assert first.generated_keys == second.generated_keys


def test_single_key_check_can_run_twice(storage: Storage):
    """The single-key lifecycle leaves its key absent and unlocked."""
    suite = ConformanceSuite(storage)
    suite.check_single_key()
    suite.check_single_key()
    suite.cleanup()


def test_suite_ignores_unrelated_data(storage: Storage):
    """Existing keys outside the prefix survive a run untouched."""
    storage.store("acme/example.com/cert.pem", b"cert")
    ConformanceSuite(storage).run()
    assert storage.load("acme/example.com/cert.pem") == b"cert"
