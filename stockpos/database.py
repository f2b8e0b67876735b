"""Database configuration and initialization."""
from sqlalchemy import BigInteger, Integer, create_engine
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base

# Create SQLAlchemy base
Base = declarative_base()

# Global session and engine
engine = None
db_session = None


def _engine_options(app) -> dict:
    """Build dialect-specific engine options (pool, store-side timeout)."""
    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    timeout_ms = app.config.get('DB_STATEMENT_TIMEOUT_MS', 5000)

    if database_uri.startswith('sqlite'):
        # SQLite waits on the database lock for `timeout` seconds, then raises
        # OperationalError ("database is locked")
        return {
            'connect_args': {
                'check_same_thread': False,
                'timeout': timeout_ms / 1000.0,
            },
        }

    return {
        'pool_pre_ping': True,  # Enable connection health checks
        'pool_size': app.config.get('DB_POOL_SIZE', 10),
        'max_overflow': app.config.get('DB_MAX_OVERFLOW', 20),
        'connect_args': {
            'options': f'-c statement_timeout={timeout_ms}',
        },
    }


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    engine = create_engine(
        app.config['SQLALCHEMY_DATABASE_URI'],
        echo=app.config.get('SQLALCHEMY_ECHO', False),
        **_engine_options(app)
    )

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    Base.query = db_session.query_property()

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_schema():
    """Create all tables for the registered models."""
    # Models must be imported so their tables are attached to Base.metadata
    import stockpos.models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def drop_schema():
    """Drop all tables (used by the test-suite)."""
    import stockpos.models  # noqa: F401
    Base.metadata.drop_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session


# BIGINT primary keys on PostgreSQL; SQLite only auto-increments INTEGER PRIMARY KEY
BigIntId = BigInteger().with_variant(Integer, 'sqlite')
