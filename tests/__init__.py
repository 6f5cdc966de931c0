# tests/__init__.py

from tests.helpers.factories import (
    FailingLedger,
    FakeClock,
    RecordingQueryExecutor,
    make_config,
    make_ledger,
)

__all__ = [
    "FailingLedger",
    "FakeClock",
    "RecordingQueryExecutor",
    "make_config",
    "make_ledger",
]
