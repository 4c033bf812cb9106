"""Flask application factory."""
from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # CSRF protection; JSON clients send the token in the X-CSRFToken header
    CSRFProtect(app)

    from flask_wtf.csrf import CSRFError

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'Session expired or missing CSRF token'}), 400

    # Sentry error tracking in production
    sentry_dsn = app.config.get('SENTRY_DSN')
    if sentry_dsn and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            environment=app.config.get('ENV'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache (degrades to no-cache when Redis is down)
    from jewelbox.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from jewelbox.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind a reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Database
    from jewelbox.database import Database
    db = Database(app)
    if app.config.get('AUTO_CREATE_TABLES'):
        db.create_all()

    from jewelbox.decorators.admin_security import load_admin_user

    @app.before_request
    def before_request_handler():
        """Load the logged-in admin (if any) for each request."""
        load_admin_user()

    # Error Handlers
    from jewelbox.exceptions import JewelboxError, TransientStoreError
    from sqlalchemy.exc import OperationalError, DisconnectionError

    @app.errorhandler(JewelboxError)
    def handle_jewelbox_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"JewelboxError [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"JewelboxError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(OperationalError)
    @app.errorhandler(DisconnectionError)
    def handle_store_error(error):
        """Connection-level database failures are reported as retryable."""
        app.logger.error(f"Database unavailable: {error}")
        db.session.rollback()
        transient = TransientStoreError()
        return jsonify(transient.to_dict()), transient.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        import traceback
        from werkzeug.exceptions import HTTPException
        if isinstance(error, HTTPException):
            return jsonify({'status': 'error', 'message': error.description}), error.code

        app.logger.error(f"Unhandled Exception on {request.method} {request.path}: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from jewelbox.blueprints.main import main_bp
    from jewelbox.blueprints.auth import auth_bp
    from jewelbox.blueprints.catalog import catalog_bp
    from jewelbox.blueprints.products import products_bp
    from jewelbox.blueprints.pricing import pricing_bp
    from jewelbox.blueprints.customers import customers_bp
    from jewelbox.blueprints.bills import bills_bp
    from jewelbox.blueprints.metrics import metrics_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(pricing_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(bills_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from jewelbox.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"Jewelbox started (env={app.config.get('ENV')}, cache={app.config.get('CACHE_ENABLED')})")

    return app
