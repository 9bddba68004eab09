"""
Shared fixtures for the deal document test suite.

Each test gets a fresh app on an in-memory SQLite database, with its own
stub envelope store and artifact storage.
"""

import base64
import copy
import pytest
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from app import create_app
from models import db
from services.esign import EnvelopeDocument

ORG_ID = 'org-1'
OTHER_ORG_ID = 'org-2'

PDF_BYTES = b'%PDF-1.4\n% deal packet\n%%EOF\n'

BASE_SNAPSHOT = {
    'dealId': 'deal-1',
    'orgId': ORG_ID,
    'jurisdiction': 'TX',
    'buyerState': 'TX',
    'dealType': 'FINANCE',
    'hasTradeIn': False,
    'isFinanced': True,
    'hasLienholder': True,
    'salePrice': 32000,
    'financedAmount': 28000,
    'customer': {
        'firstName': 'Jane',
        'lastName': 'Buyer',
        'email': 'jane@example.com',
        'phone': '555-0100'
    },
    'vehicle': {
        'year': 2022,
        'make': 'Ford',
        'model': 'F-150',
        'vin': '1FTFW1E50NFA00001',
        'mileage': 18000,
        'stockNumber': 'STK-100'
    },
    'dealer': {
        'name': 'Lone Star Motors',
        'taxRate': 0.0625,
        'docFee': 150,
        'licenseFee': 90
    }
}

RECIPIENTS = [
    {'role': 'buyer', 'name': 'Jane Buyer', 'email': 'jane@example.com', 'order': 1},
    {'role': 'dealer', 'name': 'Sam Manager', 'email': 'sam@lonestar.example.com', 'order': 2},
]


@pytest.fixture
def app():
    """Fresh app and schema per test."""
    app = create_app('config.TestingConfig')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def esign_services(app):
    return app.extensions['esign']


@pytest.fixture
def manager(esign_services):
    return esign_services['manager']


@pytest.fixture
def stub_store(esign_services):
    return esign_services['stub_store']


@pytest.fixture
def org_headers():
    return {'X-Org-Id': ORG_ID}


@pytest.fixture
def snapshot_data():
    """Factory for camelCase snapshot payloads; kwargs override top-level keys."""
    def build(**overrides):
        data = copy.deepcopy(BASE_SNAPSHOT)
        data.update(overrides)
        return data
    return build


@pytest.fixture
def documents():
    return [EnvelopeDocument(name='deal-packet.pdf', content=PDF_BYTES)]


@pytest.fixture
def recipients():
    return copy.deepcopy(RECIPIENTS)


@pytest.fixture
def send_body():
    """JSON body for the send-for-esign route."""
    return {
        'documents': [{
            'name': 'deal-packet.pdf',
            'contentBase64': base64.b64encode(PDF_BYTES).decode('ascii')
        }],
        'recipients': copy.deepcopy(RECIPIENTS)
    }
