"""Database configuration and initialization."""
import uuid
from flask import current_app
from sqlalchemy import JSON, create_engine
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base

# Create SQLAlchemy base
Base = declarative_base()


def init_db(app):
    """
    Initialize the engine and session factory once per application.

    The scoped session lives in ``app.extensions['db_session']`` so every
    request handler and service receives the same process-wide handle.
    """
    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine_options = {'echo': app.config.get('SQLALCHEMY_ECHO', False)}

    if database_uri.startswith('sqlite'):
        engine_options['connect_args'] = {'check_same_thread': False}
    else:
        engine_options.update(
            pool_pre_ping=True,  # Enable connection health checks
            pool_size=10,
            max_overflow=20
        )

    engine = create_engine(database_uri, **engine_options)
    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    app.extensions['db_engine'] = engine
    app.extensions['db_session'] = db_session

    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()

    return db_session


def create_schema(app):
    """Create all tables for the registered models."""
    import tasador.models  # noqa: F401  (register mappers)
    Base.metadata.create_all(bind=app.extensions['db_engine'])


def drop_schema(app):
    """Drop all tables (used by the test-suite)."""
    import tasador.models  # noqa: F401
    Base.metadata.drop_all(bind=app.extensions['db_engine'])


def get_session():
    """Get the database session of the current application."""
    return current_app.extensions['db_session']


def new_id():
    """Primary keys are UUID strings."""
    return str(uuid.uuid4())


# JSON payload columns: JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), 'postgresql')
