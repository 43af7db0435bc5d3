"""
Persistence — cart snapshot storage.

    from cartflow import persistence as P

    adapter = P.MemoryPersistence()
    adapter = P.adapter_from(save=repo.save, load=repo.load)
    adapter = P.SQLAlchemyPersistence(session_factory)   # needs sqlalchemy
"""

from __future__ import annotations

from cartflow.persistence._adapter import (
    PersistenceAdapter,
    FunctionalAdapter,
    adapter_from,
    MemoryPersistence,
)
from cartflow.persistence._queue import WriteQueue, SaveError

__all__ = [
    "PersistenceAdapter",
    "FunctionalAdapter",
    "adapter_from",
    "MemoryPersistence",
    "WriteQueue",
    "SaveError",
]

# SQLAlchemy (optional)
try:
    from cartflow.persistence._sqlalchemy import (
        SnapshotBase,
        CartSnapshotRow,
        create_schema,
        SQLAlchemyPersistence,
    )

    __all__ += [
        "SnapshotBase",
        "CartSnapshotRow",
        "create_schema",
        "SQLAlchemyPersistence",
    ]
except ImportError:
    pass
