from flask import Flask, g

from config import Config, Settings
from extensions import limiter
from audit.request_context import init_request_id, REQUEST_ID_HEADER
from routes.monitor import monitor_bp
from routes.webhooks import webhooks_bp
from routes.airtable import airtable_bp
from services.registry import init_services


def create_app(overrides=None):
    app = Flask(__name__)

    # Environment is read once here; components get per-capability
    # credentials and never look at os.environ themselves.
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    settings = Settings.from_mapping(app.config)
    services = init_services(app, settings)

    # MIDDLEWARES (OBSERVABILITY)
    # Initialize request correlation ID at the beginning of each request
    @app.before_request
    def _before_request():
        init_request_id()

    # Propagate request_id back to the caller for cross-service tracing
    @app.after_request
    def _after_request(response):
        response.headers[REQUEST_ID_HEADER] = g.request_id
        return response

    # INIT EXTENSIONS
    limiter.init_app(app)

    # REGISTER BLUEPRINTS
    app.register_blueprint(monitor_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(airtable_bp)

    for name, state in settings.service_status().items():
        if state == "missing":
            services.log_buffer.warn("Integration not configured", name)

    services.log_buffer.info("Stripe Payment Monitor Agent started")
    services.log_buffer.info("Ready to monitor failed payments")

    return app


# ENTRYPOINT
if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", port=app.config["PORT"])
