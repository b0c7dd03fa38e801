from __future__ import annotations

from marketplace.database import Base, engine
from marketplace import models  # noqa: F401  registers the tables on Base.metadata


def init_db() -> None:
    Base.metadata.create_all(bind=engine)
