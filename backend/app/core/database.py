from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import QueuePool
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

# Create engine with connection pooling
engine = create_engine(
    settings.DATABASE_URL,
    poolclass=QueuePool,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_timeout=settings.DB_POOL_TIMEOUT,
    pool_recycle=settings.DB_POOL_RECYCLE,
    pool_pre_ping=True,
    echo=False,
)


@event.listens_for(engine, "connect")
def connect(dbapi_connection, connection_record):
    connection_record.info["pid"] = id(dbapi_connection)
    logger.debug(f"New database connection established: {connection_record.info['pid']}")


@event.listens_for(engine, "checkout")
def checkout(dbapi_connection, connection_record, connection_proxy):
    logger.debug(f"Connection checked out: {connection_record.info.get('pid')}")


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


# Similarity search over both embedding tables. Rows produced by another
# embedding provider/model are filtered out before the distance is computed,
# since vectors of different models (and dimensions) are not comparable.
MATCH_FUNCTION_SQL = """
CREATE OR REPLACE FUNCTION match_manual_embeddings(
    query_embedding vector,
    match_threshold float,
    match_count int,
    filter_company_id int DEFAULT NULL,
    filter_provider text DEFAULT NULL,
    filter_model text DEFAULT NULL
)
RETURNS TABLE (
    id int,
    manual_id int,
    manual_title text,
    source text,
    page_number int,
    content text,
    image_url text,
    similarity float
)
LANGUAGE sql STABLE
AS $$
    SELECT * FROM (
        SELECT c.id, c.manual_id, m.title::text, 'text'::text, NULL::int,
               c.content, NULL::text,
               1 - (c.embedding <=> query_embedding) AS similarity
        FROM manual_chunks c
        JOIN manuals m ON m.id = c.manual_id
        WHERE (filter_company_id IS NULL OR m.company_id = filter_company_id)
          AND (filter_provider IS NULL OR c.embedding_provider = filter_provider)
          AND (filter_model IS NULL OR c.embedding_model = filter_model)
        UNION ALL
        SELECT p.id, p.manual_id, m.title::text, 'page'::text, p.page_number,
               p.image_description, p.image_url::text,
               1 - (p.embedding <=> query_embedding) AS similarity
        FROM manual_page_images p
        JOIN manuals m ON m.id = p.manual_id
        WHERE (filter_company_id IS NULL OR m.company_id = filter_company_id)
          AND (filter_provider IS NULL OR p.embedding_provider = filter_provider)
          AND (filter_model IS NULL OR p.embedding_model = filter_model)
    ) matches
    WHERE matches.similarity > match_threshold
    ORDER BY matches.similarity DESC
    LIMIT match_count;
$$;
"""


def get_db():
    """Database session dependency with error handling."""
    db = SessionLocal()
    try:
        yield db
    except OperationalError as e:
        logger.error(f"Database operational error: {e}")
        db.rollback()
        raise
    except Exception as e:
        logger.error(f"Database error: {e}")
        db.rollback()
        raise
    finally:
        db.close()


def get_session_factory():
    """Session factory for work that outlives the request (background processing)."""
    return SessionLocal


def init_db(bind=None) -> None:
    """Create the pgvector extension, all tables and the match function."""
    # Register every model on Base.metadata
    import app.models  # noqa: F401

    bind = bind or engine
    with bind.begin() as conn:
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
    Base.metadata.create_all(bind=bind)
    with bind.begin() as conn:
        # create_all never alters a table that already exists
        conn.execute(text(
            "ALTER TABLE manuals ADD COLUMN IF NOT EXISTS processing_started_at TIMESTAMPTZ"
        ))
        conn.execute(text(MATCH_FUNCTION_SQL))
    logger.info("Database schema initialised")


def check_database_health() -> dict:
    """Check database connectivity and return health status."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))

            result = conn.execute(
                text("SELECT 1 FROM pg_extension WHERE extname = 'vector'")
            )
            pgvector_installed = result.fetchone() is not None

            pool_status = {
                "pool_size": engine.pool.size(),
                "checked_in": engine.pool.checkedin(),
                "checked_out": engine.pool.checkedout(),
                "overflow": engine.pool.overflow(),
            }

            return {
                "status": "healthy",
                "connected": True,
                "pgvector_installed": pgvector_installed,
                "pool": pool_status,
            }
    except OperationalError as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "connected": False,
            "error": str(e),
        }
