"""Flask application factory."""
from flask import Flask, jsonify, request
from wms.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache (packaging hierarchies)
    from wms.services.cache_service import init_cache
    init_cache(app)

    # Prometheus request instrumentation
    from wms.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Initialize database
    init_db(app)

    # Error Handlers
    from wms.exceptions import WmsError

    @app.errorhandler(WmsError)
    def handle_wms_error(error):
        """Handle application exceptions as JSON."""
        if error.status_code >= 500:
            app.logger.error(f"WmsError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"WmsError [{error.status_code}] {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(400)
    def bad_request_error(error):
        return jsonify({'status': 'error', 'message': 'Bad Request'}), 400

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
        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from wms.blueprints.packaging import packaging_bp
    from wms.blueprints.compositions import compositions_bp
    from wms.blueprints.metrics import metrics_bp

    app.register_blueprint(packaging_bp)
    app.register_blueprint(compositions_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from wms.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
