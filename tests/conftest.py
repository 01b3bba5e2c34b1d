"""Root-level test configuration for archive-cache.

Unit-specific fixtures live in unit/conftest.py.

NOTE: Do NOT add __init__.py to test directories - pytest uses importlib mode
which can cause namespace collisions with __init__.py files.
"""

from __future__ import annotations

from pathlib import Path


# Early import check for better error messages
def _check_test_environment() -> None:
    """Verify archive_cache is importable before collecting tests."""
    try:
        import archive_cache as _ac
    except ImportError:
        raise ImportError(
            "archive_cache not found. Install the package first.\n"
            f"Run: cd {Path(__file__).resolve().parent.parent} && pip install -e '.[test]'"
        ) from None
    _ = _ac.__name__


_check_test_environment()
