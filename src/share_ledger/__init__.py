"""Share Ledger Server: fractional ownership of finite-inventory listings.

A transactional ledger engine that converts buy and sell orders into share
reservations, per-user holdings and an append-only, hash-chained journal.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
``server.py`` and ``health.py`` import ``__version__`` from here.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

# ---------------------------------------------------------------------------
# Package version, read from pyproject.toml via importlib.metadata.
#
# When the package is imported without being installed (for example straight
# from a source checkout), fall back to the version declared in
# pyproject.toml so the application can still start.
# ---------------------------------------------------------------------------
try:
    __version__: str = version("share-ledger")
except PackageNotFoundError:
    __version__ = "0.3.0"
