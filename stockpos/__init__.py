"""Flask application factory."""
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from stockpos.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Sentry error tracking in production
    if app.config.get('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Flask-Mail for sale receipts
    from stockpos.services.email_service import init_mail
    init_mail(app)

    # Redis cache (sales reports)
    from stockpos.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from stockpos.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust X-Forwarded-* from the reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Multi-Tenant: load the authenticated tenant before each request
    from stockpos.middleware import load_tenant

    @app.before_request
    def before_request_handler():
        """Load tenant context for each request."""
        load_tenant()

    # Error Handlers
    from stockpos.exceptions import StockPosError

    @app.errorhandler(StockPosError)
    def handle_stockpos_error(error):
        """Render application exceptions as JSON."""
        if error.status_code >= 500:
            app.logger.error(f"StockPosError [{error.status_code}] {error.kind}: {error.message}")
        else:
            app.logger.info(f"StockPosError [{error.status_code}] {error.kind}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({'status': 'error', 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.exception(f"Unhandled Exception: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from stockpos.blueprints.auth import auth_bp
    from stockpos.blueprints.catalog import catalog_bp
    from stockpos.blueprints.sales import sales_bp
    from stockpos.blueprints.metrics import metrics_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from stockpos.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
