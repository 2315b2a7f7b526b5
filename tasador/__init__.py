"""Flask application factory."""
from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError
from werkzeug.exceptions import HTTPException
from tasador.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # JSON clients send the token in the X-CSRFToken header
    csrf = CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'La sesión ha expirado. Recarga la página.'}), 400

    if os.getenv('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=app.config.get('ENV'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    from tasador.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: trust X-Forwarded-* from the reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    init_db(app)

    from tasador.middleware import load_actor

    @app.before_request
    def before_request_handler():
        """Load the acting identity for each request."""
        load_actor()

    # Error Handlers
    from tasador.exceptions import SaasError

    @app.errorhandler(SaasError)
    def handle_saas_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"SaasError [{error.status_code}] {request.path}: {error.message}")
        else:
            app.logger.info(f"SaasError [{error.status_code}] {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'status': 'error', 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.exception(f"Unhandled Exception: {error}")
        return jsonify({'status': 'error', 'message': 'Error interno del servidor.'}), 500

    # Register blueprints
    from tasador.blueprints.billing import billing_bp
    from tasador.blueprints.admin import admin_bp
    from tasador.blueprints.metrics import metrics_bp
    from tasador.blueprints.webhooks import webhooks_bp

    app.register_blueprint(billing_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(metrics_bp)

    # Webhooks must be exempt from CSRF
    csrf.exempt(webhooks_bp)
    app.register_blueprint(webhooks_bp)

    from tasador.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
