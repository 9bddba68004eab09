from .compliance import compliance_bp
from .deals import deals_bp
from .esign import esign_bp

def register_blueprints(app):
    app.register_blueprint(compliance_bp)
    app.register_blueprint(deals_bp)
    app.register_blueprint(esign_bp)
