from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from epic_notes.config import settings


# ── Engine ────────────────────────────────────────────────────────────────────
# pool_pre_ping=True: SQLAlchemy will test every connection before using it.
# This prevents "connection reset" errors after Postgres restarts or idle timeouts.
engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
)

# ── Session Factory ───────────────────────────────────────────────────────────
# Named DBSession so it never gets confused with the login Session model.
DBSession = sessionmaker(
    autocommit=False,   # we manage commits explicitly
    autoflush=False,    # don't auto-flush; we control when SQL is sent to DB
    bind=engine,
)


# ── Declarative Base ──────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    pass


# ── Dependency ────────────────────────────────────────────────────────────────
def get_db():
    """
    FastAPI dependency that yields a DB session and guarantees cleanup.
    Use as: db: Session = Depends(get_db)
    The session is closed even if an exception is raised inside the endpoint.
    """
    db = DBSession()
    try:
        yield db
    finally:
        db.close()
