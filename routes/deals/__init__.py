# routes/deals/__init__.py
"""
Deal Document Routes Package

This package splits the deal document routes into logical modules:
- checklist.py: Required-document checklist for a deal
- envelopes.py: Send for e-signature, status, void, reconcile, signed download
"""

from flask import Blueprint

# Create the blueprint - all sub-modules will register routes on this
deals_bp = Blueprint('deals', __name__, url_prefix='/deals')

# Import all route modules AFTER blueprint creation
from . import checklist
from . import envelopes
