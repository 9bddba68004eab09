import os

from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(os.path.abspath(__file__)), '.env'))


def _env_flag(name, default='true'):
    """Anything but 'false' is on."""
    return os.getenv(name, default).strip().lower() != 'false'


class Config:
    # Environment
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')

    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///dealdesk.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # E-sign provider selection ('stub' or 'dropboxsign')
    ESIGN_PROVIDER = os.getenv('ESIGN_PROVIDER', 'stub')
    ESIGN_STUB_AUTO_COMPLETE = _env_flag('ESIGN_STUB_AUTO_COMPLETE')
    ESIGN_HTTP_TIMEOUT = float(os.getenv('ESIGN_HTTP_TIMEOUT', 30))

    # Dropbox Sign configuration
    ESIGN_DROPBOXSIGN_API_KEY = os.getenv('ESIGN_DROPBOXSIGN_API_KEY', '')
    ESIGN_DROPBOXSIGN_BASE_URL = os.getenv('ESIGN_DROPBOXSIGN_BASE_URL', 'https://api.hellosign.com/v3')
    ESIGN_DROPBOXSIGN_TEST_MODE = _env_flag('ESIGN_DROPBOXSIGN_TEST_MODE')

    # Signed artifact storage ('memory' or 'supabase')
    ARTIFACT_STORAGE = os.getenv('ARTIFACT_STORAGE', 'memory')
    SUPABASE_URL = os.getenv('SUPABASE_URL')
    SUPABASE_KEY = os.getenv('SUPABASE_KEY')
    SIGNED_ARTIFACTS_BUCKET = os.getenv('SIGNED_ARTIFACTS_BUCKET', 'deal-documents')

    # Request size limits (bytes)
    REQUEST_MAX_BYTES_RULESETS = int(os.getenv('REQUEST_MAX_BYTES_RULESETS', 1048576))
    REQUEST_MAX_BYTES_ESIGN = int(os.getenv('REQUEST_MAX_BYTES_ESIGN', 26214400))

    # Shared secret for worker-triggered reconciliation; unset disables the endpoint
    WORKER_SECRET = os.getenv('WORKER_SECRET')

    # Starter rule sets loaded by `init_db.py seed-rules`
    COMPLIANCE_RULES_DIR = os.getenv(
        'COMPLIANCE_RULES_DIR',
        os.path.join(os.path.dirname(os.path.abspath(__file__)), 'compliance_rules')
    )


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    ESIGN_PROVIDER = 'stub'
    ESIGN_STUB_AUTO_COMPLETE = False
    ESIGN_DROPBOXSIGN_API_KEY = 'test-api-key'
    ARTIFACT_STORAGE = 'memory'
    WORKER_SECRET = 'test-worker-secret'
