"""Database configuration and lifecycle."""
import atexit

from flask import current_app
from sqlalchemy import create_engine, BigInteger, Integer
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Create SQLAlchemy base
Base = declarative_base()


class Database:
    """
    Data-store client owned by the application.

    Constructed explicitly, bound to an app with init_app() and disposed on
    shutdown(). Services never reach for a global connection: request code
    obtains the scoped session through get_session() and passes it down.
    """

    def __init__(self, app=None):
        self.engine = None
        self.session = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        """Create engine and scoped session from app config."""
        database_uri = app.config['SQLALCHEMY_DATABASE_URI']
        engine_options = {
            'echo': app.config.get('SQLALCHEMY_ECHO', False),
            'pool_pre_ping': True,  # Enable connection health checks
        }
        if database_uri.startswith('sqlite'):
            # In-memory SQLite must share one connection across sessions
            engine_options['connect_args'] = {'check_same_thread': False}
            engine_options['poolclass'] = StaticPool
        else:
            engine_options['pool_size'] = app.config.get('DB_POOL_SIZE', 10)
            engine_options['max_overflow'] = app.config.get('DB_MAX_OVERFLOW', 20)

        self.engine = create_engine(database_uri, **engine_options)
        self.session = scoped_session(
            sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        )

        if not hasattr(app, 'extensions'):
            app.extensions = {}
        app.extensions['db'] = self

        # Return pooled connections when the worker process exits
        atexit.register(self.shutdown)

        @app.teardown_appcontext
        def shutdown_session(exception=None):
            """Close database session and rollback on error."""
            if exception:
                self.session.rollback()
            self.session.remove()

    def create_all(self):
        """Create all tables known to the metadata."""
        # Import models so every table is registered on Base.metadata
        import jewelbox.models  # noqa: F401
        Base.metadata.create_all(bind=self.engine)

    def drop_all(self):
        import jewelbox.models  # noqa: F401
        Base.metadata.drop_all(bind=self.engine)

    def shutdown(self):
        """Release pooled connections."""
        if self.session is not None:
            self.session.remove()
        if self.engine is not None:
            self.engine.dispose()


def get_database() -> Database:
    """Get the Database bound to the current app."""
    return current_app.extensions['db']


def get_session():
    """Get database session for the current app."""
    return get_database().session


# BIGINT primary keys only autoincrement on SQLite when declared as INTEGER
IdType = BigInteger().with_variant(Integer, 'sqlite')
