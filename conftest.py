"""
conftest.py
===========
Session-level pytest configuration for the test suite.

Custom marks
------------
slow
    Applied to tests that build trees or traces large enough to take more
    than a second on a single CPU core.  Deselect with ``-m "not slow"``.

    Registration here suppresses PytestUnknownMarkWarning and makes the mark
    visible in ``pytest --markers``.
"""


def pytest_configure(config):
    """Register custom marks before test collection begins."""
    config.addinivalue_line(
        "markers",
        "slow: test builds large trees or traces (deselect with -m 'not slow')",
    )
