# models.py
from flask_sqlalchemy import SQLAlchemy
from datetime import datetime
import uuid

db = SQLAlchemy()


def _new_id():
    return uuid.uuid4().hex


class ComplianceRuleSet(db.Model):
    """
    One published version of a jurisdiction's compliance rules.

    Versions are never edited or deleted; a successor only bounds its
    predecessor's effective_to. org_id NULL marks a platform-wide starter set.
    """
    __tablename__ = 'compliance_rule_sets'
    __table_args__ = (
        db.UniqueConstraint('org_id', 'jurisdiction', 'version', name='uq_rule_set_version'),
        db.Index('ix_rule_sets_scope', 'jurisdiction', 'org_id', 'effective_from'),
    )

    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    org_id = db.Column(db.String(64), nullable=True)
    jurisdiction = db.Column(db.String(2), nullable=False)
    version = db.Column(db.Integer, nullable=False, default=1)
    effective_from = db.Column(db.DateTime, nullable=False)
    effective_to = db.Column(db.DateTime, nullable=True)  # exclusive; NULL = current
    rules_json = db.Column(db.JSON, nullable=False)
    metadata_json = db.Column(db.JSON, nullable=True)
    not_legal_advice_notice = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def is_active_on(self, as_of):
        return self.effective_from <= as_of and (self.effective_to is None or as_of < self.effective_to)

    def to_dict(self):
        return {
            'id': self.id,
            'orgId': self.org_id,
            'jurisdiction': self.jurisdiction,
            'version': self.version,
            'effectiveFrom': self.effective_from.isoformat(),
            'effectiveTo': self.effective_to.isoformat() if self.effective_to else None,
            'rulesJson': self.rules_json,
            'metadata': self.metadata_json or {},
            'notLegalAdvice': self.not_legal_advice_notice,
            'createdAt': self.created_at.isoformat() if self.created_at else None
        }

    def __repr__(self):
        return f'<ComplianceRuleSet {self.jurisdiction} v{self.version} org={self.org_id}>'


class DocumentEnvelope(db.Model):
    """Canonical record of one signing request for a deal."""
    __tablename__ = 'document_envelopes'
    __table_args__ = (
        db.UniqueConstraint('org_id', 'request_id', name='uq_envelope_request_id'),
        db.Index('ix_envelopes_provider_ref', 'provider', 'provider_envelope_id'),
        db.Index('ix_envelopes_deal', 'org_id', 'deal_id'),
    )

    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    org_id = db.Column(db.String(64), nullable=False)
    deal_id = db.Column(db.String(64), nullable=False)
    provider = db.Column(db.String(32), nullable=False)
    provider_envelope_id = db.Column(db.String(128))
    request_id = db.Column(db.String(120), nullable=True)
    status = db.Column(db.String(20), nullable=False)
    recipients_json = db.Column(db.JSON, nullable=False, default=list)
    documents_json = db.Column(db.JSON, nullable=False, default=list)

    # Signed artifact in object storage
    signed_file_key = db.Column(db.String(500))
    signed_file_sha256 = db.Column(db.String(64))

    void_reason = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    sent_at = db.Column(db.DateTime)
    completed_at = db.Column(db.DateTime)
    voided_at = db.Column(db.DateTime)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    events = db.relationship('DocumentEvent', backref='envelope', lazy='dynamic',
                             cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'dealId': self.deal_id,
            'providerName': self.provider,
            'providerEnvelopeId': self.provider_envelope_id,
            'requestId': self.request_id,
            'status': self.status,
            'recipients': self.recipients_json or [],
            'documents': self.documents_json or [],
            'signedAvailable': bool(self.signed_file_key),
            'voidReason': self.void_reason,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'sentAt': self.sent_at.isoformat() if self.sent_at else None,
            'completedAt': self.completed_at.isoformat() if self.completed_at else None,
            'voidedAt': self.voided_at.isoformat() if self.voided_at else None
        }

    def __repr__(self):
        return f'<DocumentEnvelope {self.id} {self.provider} {self.status}>'


class DocumentEvent(db.Model):
    """
    A consumed provider webhook event.

    The unique idempotency_key is the de-duplication record: a replayed
    delivery fails to insert and is treated as a no-op.
    """
    __tablename__ = 'document_events'

    id = db.Column(db.Integer, primary_key=True)
    envelope_id = db.Column(db.String(32), db.ForeignKey('document_envelopes.id', ondelete='CASCADE'),
                            nullable=False)
    provider = db.Column(db.String(32), nullable=False)
    event_type = db.Column(db.String(80), nullable=False)
    status = db.Column(db.String(20), nullable=False)
    provider_event_id = db.Column(db.String(255))
    idempotency_key = db.Column(db.String(300), unique=True, nullable=False)
    payload_json = db.Column(db.JSON)
    applied = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f'<DocumentEvent {self.idempotency_key} applied={self.applied}>'


class AuditEvent(db.Model):
    """Audit trail row for envelope and rule-set mutations."""
    __tablename__ = 'audit_events'

    # Event types
    RULE_SET_PUBLISHED = 'rule_set_published'
    RULE_SET_SUPERSEDED = 'rule_set_superseded'
    ENVELOPE_SENT = 'envelope_sent'
    ENVELOPE_STATUS_CHANGED = 'envelope_status_changed'
    ENVELOPE_VOIDED = 'envelope_voided'
    ENVELOPE_SIGNED_DOWNLOADED = 'envelope_signed_downloaded'
    WEBHOOK_RECEIVED = 'webhook_received'

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.String(64), nullable=True, index=True)
    entity_type = db.Column(db.String(50), nullable=False)
    entity_id = db.Column(db.String(64), nullable=True, index=True)
    event_type = db.Column(db.String(50), nullable=False, index=True)
    description = db.Column(db.String(500))
    event_data = db.Column(db.JSON)
    source = db.Column(db.String(50), default='app')
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    @classmethod
    def log(cls, **kwargs):
        """Create and add an audit event to the current session (caller commits)."""
        event = cls(**kwargs)
        db.session.add(event)
        return event

    def __repr__(self):
        return f'<AuditEvent {self.event_type} {self.entity_type}:{self.entity_id}>'
