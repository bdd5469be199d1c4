from sqlalchemy.engine import Engine
from consent_engine.db.base import Base
from consent_engine.db.session import get_engine
import consent_engine.models.consent  # noqa: F401  (registers the consents table)

def init_db(engine: Engine | None = None) -> None:
    Base.metadata.create_all(bind=engine or get_engine())
