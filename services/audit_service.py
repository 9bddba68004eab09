"""
Audit Service - Centralized audit trail logging for rule sets and signing envelopes.

Provides helper functions to log audit events consistently throughout the application.
Events are added to the current session; the caller's commit persists them together
with the change they describe.
"""

from flask import request
from models import AuditEvent


def get_request_context():
    """
    Extract IP address and user agent from the current request.
    Returns (ip_address, user_agent) tuple.
    """
    ip_address = None
    user_agent = None

    try:
        if request:
            # Get IP, handling proxies
            ip_address = request.headers.get('X-Forwarded-For', request.remote_addr)
            if ip_address and ',' in ip_address:
                ip_address = ip_address.split(',')[0].strip()

            user_agent = request.headers.get('User-Agent', '')[:500]  # Truncate if too long
    except RuntimeError:
        # Outside of request context
        pass

    return ip_address, user_agent


def log_event(event_type, entity_type, entity_id=None, org_id=None,
              description=None, event_data=None, source='app'):
    """
    Log an audit event with automatic context extraction.

    Args:
        event_type: One of the AuditEvent type constants
        entity_type: 'ComplianceRuleSet' or 'DocumentEnvelope'
        entity_id: ID of the related entity
        org_id: Owning organization (None for platform-wide rows)
        description: Human-readable description of the event
        event_data: Dict of additional context data
        source: Source of the event ('app', 'webhook', 'worker', 'system')

    Returns:
        The created AuditEvent instance
    """
    ip_address, user_agent = get_request_context()

    return AuditEvent.log(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        org_id=org_id,
        description=description,
        event_data=event_data or {},
        source=source,
        ip_address=ip_address,
        user_agent=user_agent
    )


# =============================================================================
# RULE SET EVENTS
# =============================================================================

def log_rule_set_published(rule_set):
    """Log when a new rule-set version is published."""
    return log_event(
        event_type=AuditEvent.RULE_SET_PUBLISHED,
        entity_type='ComplianceRuleSet',
        entity_id=rule_set.id,
        org_id=rule_set.org_id,
        description=f"Rule set {rule_set.jurisdiction} v{rule_set.version} published",
        event_data={
            'jurisdiction': rule_set.jurisdiction,
            'version': rule_set.version,
            'effective_from': rule_set.effective_from.isoformat(),
            'effective_to': rule_set.effective_to.isoformat() if rule_set.effective_to else None
        }
    )


def log_rule_set_superseded(rule_set, successor):
    """Log when a published version is bounded by its successor."""
    return log_event(
        event_type=AuditEvent.RULE_SET_SUPERSEDED,
        entity_type='ComplianceRuleSet',
        entity_id=rule_set.id,
        org_id=rule_set.org_id,
        description=f"Rule set {rule_set.jurisdiction} v{rule_set.version} superseded by v{successor.version}",
        event_data={
            'successor_id': successor.id,
            'effective_to': rule_set.effective_to.isoformat()
        }
    )


# =============================================================================
# ENVELOPE EVENTS
# =============================================================================

def log_envelope_sent(envelope):
    """Log when an envelope is created with a provider."""
    return log_event(
        event_type=AuditEvent.ENVELOPE_SENT,
        entity_type='DocumentEnvelope',
        entity_id=envelope.id,
        org_id=envelope.org_id,
        description=f"Envelope sent via {envelope.provider} for deal {envelope.deal_id}",
        event_data={
            'deal_id': envelope.deal_id,
            'provider': envelope.provider,
            'provider_envelope_id': envelope.provider_envelope_id,
            'request_id': envelope.request_id,
            'status': envelope.status,
            'recipient_count': len(envelope.recipients_json or []),
            'document_count': len(envelope.documents_json or [])
        }
    )


def log_envelope_status_changed(envelope, old_status, new_status, source='app', event_data=None):
    """Log a canonical status transition."""
    data = {
        'deal_id': envelope.deal_id,
        'old_status': old_status,
        'new_status': new_status
    }
    data.update(event_data or {})
    return log_event(
        event_type=AuditEvent.ENVELOPE_STATUS_CHANGED,
        entity_type='DocumentEnvelope',
        entity_id=envelope.id,
        org_id=envelope.org_id,
        description=f"Envelope status changed from '{old_status}' to '{new_status}'",
        event_data=data,
        source=source
    )


def log_envelope_voided(envelope, old_status, reason):
    """Log when a user voids an envelope."""
    return log_event(
        event_type=AuditEvent.ENVELOPE_VOIDED,
        entity_type='DocumentEnvelope',
        entity_id=envelope.id,
        org_id=envelope.org_id,
        description=f"Envelope voided: {reason[:100]}",
        event_data={
            'deal_id': envelope.deal_id,
            'old_status': old_status,
            'reason': reason
        }
    )


def log_signed_download(envelope):
    """Log a download of the signed artifact."""
    return log_event(
        event_type=AuditEvent.ENVELOPE_SIGNED_DOWNLOADED,
        entity_type='DocumentEnvelope',
        entity_id=envelope.id,
        org_id=envelope.org_id,
        description="Signed envelope downloaded",
        event_data={
            'deal_id': envelope.deal_id,
            'signed_file_key': envelope.signed_file_key
        }
    )


# =============================================================================
# WEBHOOK EVENTS
# =============================================================================

def log_webhook_received(envelope, event, applied):
    """Log a verified, first-time webhook delivery for audit trail."""
    return log_event(
        event_type=AuditEvent.WEBHOOK_RECEIVED,
        entity_type='DocumentEnvelope',
        entity_id=envelope.id,
        org_id=envelope.org_id,
        description=f"Webhook received: {event.event_type}",
        event_data={
            'provider': event.provider,
            'webhook_event_type': event.event_type,
            'reported_status': event.status.value,
            'provider_event_id': event.provider_event_id,
            'applied': applied
        },
        source='webhook'
    )
