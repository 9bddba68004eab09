import logging

from flask import Flask, jsonify
from flask_migrate import Migrate
from models import db
from routes import register_blueprints
from services.artifact_storage import build_artifact_storage
from services.esign import (
    EnvelopeLifecycleManager,
    StubEnvelopeStore,
    WebhookIngress,
    get_esign_provider,
    parse_provider_name,
)


def init_esign(app):
    """
    Build the app-scoped e-sign services.

    The stub provider's envelope store lives here, one per app, so separate
    apps (and test runs) never share stub state.
    """
    # Fail fast on an unknown provider name
    default_provider = parse_provider_name(app.config['ESIGN_PROVIDER']).value

    stub_store = StubEnvelopeStore()
    storage = build_artifact_storage(app.config)
    manager = EnvelopeLifecycleManager(
        lambda name: get_esign_provider(name, app.config, stub_store),
        default_provider,
        storage
    )

    app.extensions['esign'] = {
        'manager': manager,
        'ingress': WebhookIngress(manager),
        'stub_store': stub_store,
        'storage': storage
    }


def create_app(config_object='config.Config'):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(level=logging.INFO)

    # Initialize extensions
    db.init_app(app)
    migrate = Migrate(app, db)

    init_esign(app)

    # Register blueprints
    register_blueprints(app)

    @app.errorhandler(413)
    def request_too_large(e):
        return jsonify({'success': False, 'error': 'Request body too large'}), 413

    return app

app = create_app()

if __name__ == '__main__':
    with app.app_context():
        db.create_all()
    app.run(host='0.0.0.0', port=5005, debug=True)
