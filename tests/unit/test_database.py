"""
Unit tests for the database lifecycle.
"""

import atexit

from jewelbox import create_app


class TestDatabaseLifecycle:

    def test_engine_disposed_at_exit(self, monkeypatch):
        registered = []
        monkeypatch.setattr(atexit, 'register', lambda func, *args, **kwargs: registered.append(func) or func)

        app = create_app('config.TestConfig')
        db = app.extensions['db']

        assert db.shutdown in registered
        db.shutdown()

    def test_shutdown_is_repeatable(self):
        app = create_app('config.TestConfig')
        db = app.extensions['db']

        db.shutdown()
        db.shutdown()
