"""
Envelope Lifecycle Manager

Owns the canonical DocumentEnvelope state and orchestrates provider calls:
create, reconcile, webhook application, void, signed download.

Status writes are a compare-and-swap UPDATE on (id, status), retried a
bounded number of times, so concurrent webhook workers cannot regress an
envelope. A consumed webhook idempotency key is inserted in the same
transaction as the status write it caused.

Usage:
    manager = EnvelopeLifecycleManager(provider_factory, 'stub', storage)
    envelope = manager.create_envelope(org_id, deal_id, documents, recipients, request_id='req-123')
    outcome = manager.apply_webhook_event(event)
"""

import hashlib
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from models import db, DocumentEnvelope, DocumentEvent
from services import audit_service
from services.artifact_storage import ArtifactStorageError, signed_artifact_path
from .base import ESignProvider
from .exceptions import (
    ESignError,
    EnvelopeConflictError,
    EnvelopeNotFoundError,
    EnvelopePreconditionError,
    RecipientValidationError,
)
from .status import EnvelopeStatus, TERMINAL_STATUSES, should_apply
from .stub_provider import StubESignProvider
from .types import EnvelopeDocument, ProviderEvent, parse_recipients, validate_documents

logger = logging.getLogger(__name__)

# apply_webhook_event outcomes
OUTCOME_APPLIED = 'applied'
OUTCOME_IGNORED = 'ignored'
OUTCOME_DUPLICATE = 'duplicate'
OUTCOME_ENVELOPE_NOT_FOUND = 'envelope_not_found'

REQUEST_ID_MIN_LENGTH = 6
REQUEST_ID_MAX_LENGTH = 120
VOID_REASON_MIN_LENGTH = 5
VOID_REASON_MAX_LENGTH = 500

DEFAULT_CAS_RETRIES = 3

NON_TERMINAL_VALUES = [s.value for s in EnvelopeStatus if s not in TERMINAL_STATUSES]


class EnvelopeLifecycleManager:
    """
    Envelope orchestration over an injected provider factory and storage.

    Args:
        provider_factory: provider name -> ESignProvider
        default_provider: provider used for new envelopes
        storage: artifact storage with put(key, data) / get(key)
    """

    def __init__(self, provider_factory: Callable[[str], ESignProvider], default_provider: str,
                 storage, max_cas_retries: int = DEFAULT_CAS_RETRIES):
        self.provider_factory = provider_factory
        self.default_provider = default_provider
        self.storage = storage
        self.max_cas_retries = max_cas_retries

    def provider(self, name: str = None) -> ESignProvider:
        return self.provider_factory(name or self.default_provider)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_envelope(self, org_id: str, envelope_id: str, deal_id: str = None) -> DocumentEnvelope:
        """Fetch an org's envelope; other orgs' envelopes are not found."""
        query = DocumentEnvelope.query.filter_by(id=envelope_id, org_id=org_id)
        if deal_id is not None:
            query = query.filter_by(deal_id=deal_id)
        envelope = query.first()
        if not envelope:
            raise EnvelopeNotFoundError("Envelope not found.")
        return envelope

    def list_envelopes(self, org_id: str, deal_id: str) -> List[DocumentEnvelope]:
        return DocumentEnvelope.query.filter_by(org_id=org_id, deal_id=deal_id).order_by(
            DocumentEnvelope.created_at.desc()
        ).all()

    # =========================================================================
    # CREATE
    # =========================================================================

    @staticmethod
    def _normalize_request_id(request_id: Optional[str]) -> Optional[str]:
        if request_id is None:
            return None
        request_id = str(request_id).strip()
        if not REQUEST_ID_MIN_LENGTH <= len(request_id) <= REQUEST_ID_MAX_LENGTH:
            raise RecipientValidationError(
                "Invalid requestId.",
                errors=[f"requestId: must be {REQUEST_ID_MIN_LENGTH}-{REQUEST_ID_MAX_LENGTH} characters"]
            )
        return request_id

    @staticmethod
    def _existing_for_request(org_id: str, deal_id: str, request_id: str) -> Optional[DocumentEnvelope]:
        existing = DocumentEnvelope.query.filter_by(org_id=org_id, request_id=request_id).first()
        if existing and existing.deal_id != deal_id:
            raise EnvelopeConflictError("requestId already used for another deal.")
        return existing

    def create_envelope(self, org_id: str, deal_id: str, documents: List[EnvelopeDocument],
                        recipients: List[Any], request_id: str = None) -> DocumentEnvelope:
        """
        Send documents for signature with the default provider.

        Repeating a create with the same request_id for the same deal returns
        the existing envelope instead of creating a second provider envelope.

        Raises:
            RecipientValidationError: bad recipients, documents or request id
            EnvelopeConflictError: request_id already used for another deal
            ProviderAPIError: provider call failed (nothing persisted)
        """
        recipients = parse_recipients(recipients)
        documents = validate_documents(documents)
        request_id = self._normalize_request_id(request_id)

        if request_id:
            existing = self._existing_for_request(org_id, deal_id, request_id)
            if existing:
                logger.info(f"Create for request {request_id} matched envelope {existing.id}")
                return existing

        provider = self.provider()
        result = provider.create_envelope(org_id, deal_id, documents, recipients, request_id=request_id)

        now = datetime.utcnow()
        envelope = DocumentEnvelope(
            org_id=org_id,
            deal_id=deal_id,
            provider=provider.name,
            provider_envelope_id=result.provider_envelope_id,
            request_id=request_id,
            status=result.status.value,
            recipients_json=[r.to_dict() for r in recipients],
            documents_json=[d.to_dict() for d in documents],
            sent_at=now,
            completed_at=now if result.status is EnvelopeStatus.COMPLETED else None,
            voided_at=now if result.status is EnvelopeStatus.VOIDED else None
        )

        try:
            db.session.add(envelope)
            db.session.flush()
            audit_service.log_envelope_sent(envelope)
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            winner = self._existing_for_request(org_id, deal_id, request_id) if request_id else None
            if winner is None:
                raise
            logger.warning(
                f"Lost create race for request {request_id}; voiding duplicate provider "
                f"envelope {result.provider_envelope_id}"
            )
            self._void_orphan(provider, result.provider_envelope_id)
            return winner

        logger.info(
            f"Envelope {envelope.id} created via {provider.name} for deal {deal_id} "
            f"in {envelope.status}"
        )

        if result.status is EnvelopeStatus.COMPLETED:
            self._store_signed_artifact(envelope, provider)
        return envelope

    @staticmethod
    def _void_orphan(provider: ESignProvider, provider_envelope_id: str) -> None:
        try:
            provider.void_envelope(provider_envelope_id, "Duplicate request")
        except ESignError as e:
            logger.error(f"Failed to void duplicate provider envelope {provider_envelope_id}: {e}")

    # =========================================================================
    # STATUS TRANSITIONS
    # =========================================================================

    def _transition(self, envelope: DocumentEnvelope, new_status: EnvelopeStatus, source: str,
                    event: ProviderEvent = None, event_data: Dict[str, Any] = None) -> bool:
        """
        Apply the transition rule with compare-and-swap, and commit.

        When `event` is given its idempotency key is inserted in the same
        transaction; a duplicate key raises IntegrityError to the caller.

        Returns:
            True if the stored status changed
        """
        for attempt in range(self.max_cas_retries):
            current = EnvelopeStatus(envelope.status)
            applied = should_apply(current, new_status)

            if event is not None:
                db.session.add(DocumentEvent(
                    envelope_id=envelope.id,
                    provider=event.provider,
                    event_type=event.event_type,
                    status=event.status.value,
                    provider_event_id=event.provider_event_id,
                    idempotency_key=event.idempotency_key,
                    payload_json=event.payload,
                    applied=applied
                ))

            if applied:
                now = datetime.utcnow()
                values = {'status': new_status.value, 'updated_at': now}
                if new_status is EnvelopeStatus.COMPLETED:
                    values['completed_at'] = now
                elif new_status is EnvelopeStatus.VOIDED:
                    values['voided_at'] = now

                rows = DocumentEnvelope.query.filter_by(
                    id=envelope.id, status=current.value
                ).update(values, synchronize_session=False)

                if rows == 0:
                    # Someone else moved the envelope; re-read and decide again
                    db.session.rollback()
                    db.session.refresh(envelope)
                    logger.info(f"Envelope {envelope.id} changed concurrently, retry {attempt + 1}")
                    continue

                audit_service.log_envelope_status_changed(
                    envelope, current.value, new_status.value, source=source, event_data=event_data
                )

            if event is not None:
                audit_service.log_webhook_received(envelope, event, applied)

            db.session.commit()

            if applied:
                logger.info(f"Envelope {envelope.id} {current.value} -> {new_status.value} ({source})")
            else:
                logger.warning(
                    f"Ignored {new_status.value} for envelope {envelope.id} in {current.value} ({source})"
                )
            return applied

        raise EnvelopeConflictError("Envelope status changed concurrently; retry.")

    def apply_webhook_event(self, event: ProviderEvent) -> str:
        """
        Apply a verified provider event, at most once per idempotency key.

        Returns one of 'applied', 'ignored' (stale or regressive status),
        'duplicate' (key already consumed) or 'envelope_not_found'.
        """
        envelope = DocumentEnvelope.query.filter_by(
            provider=event.provider,
            provider_envelope_id=event.provider_envelope_id
        ).first()
        if not envelope:
            logger.warning(
                f"Webhook {event.event_type} for unknown {event.provider} envelope "
                f"{event.provider_envelope_id}"
            )
            return OUTCOME_ENVELOPE_NOT_FOUND

        if DocumentEvent.query.filter_by(idempotency_key=event.idempotency_key).first():
            logger.info(f"Duplicate webhook {event.idempotency_key} ignored")
            return OUTCOME_DUPLICATE

        try:
            applied = self._transition(
                envelope, event.status, source='webhook', event=event,
                event_data={'webhook_event_type': event.event_type}
            )
        except IntegrityError:
            # A concurrent delivery consumed the key first
            db.session.rollback()
            logger.info(f"Duplicate webhook {event.idempotency_key} ignored")
            return OUTCOME_DUPLICATE

        if applied and event.status is EnvelopeStatus.COMPLETED:
            provider = self.provider(envelope.provider)
            if isinstance(provider, StubESignProvider):
                # The stub store only releases its document once completed
                provider.complete(envelope.provider_envelope_id)
            self._store_signed_artifact(envelope, provider)
        return OUTCOME_APPLIED if applied else OUTCOME_IGNORED

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    def reconcile(self, org_id: str, envelope_id: str, deal_id: str = None) -> DocumentEnvelope:
        """Pull status from the provider and apply the transition rule."""
        envelope = self.get_envelope(org_id, envelope_id, deal_id)
        return self._reconcile(envelope, source='app')

    def _reconcile(self, envelope: DocumentEnvelope, source: str) -> DocumentEnvelope:
        if not envelope.provider_envelope_id:
            return envelope

        provider = self.provider(envelope.provider)
        details = provider.get_envelope(envelope.provider_envelope_id)
        self._transition(envelope, details.status, source=source, event_data={'reconciled': True})

        if envelope.status == EnvelopeStatus.COMPLETED.value:
            self._store_signed_artifact(envelope, provider, details.signed_pdf)
        return envelope

    def reconcile_pending(self, limit: int = 20, envelope_ids: List[str] = None) -> Dict[str, Any]:
        """
        Reconcile non-terminal envelopes (and completed ones still missing
        their signed artifact), oldest first.

        Per-envelope failures are collected into the result, not raised.
        """
        query = DocumentEnvelope.query.filter(db.or_(
            DocumentEnvelope.status.in_(NON_TERMINAL_VALUES),
            db.and_(
                DocumentEnvelope.status == EnvelopeStatus.COMPLETED.value,
                DocumentEnvelope.signed_file_key.is_(None)
            )
        ))
        if envelope_ids:
            query = query.filter(DocumentEnvelope.id.in_(envelope_ids))
        envelopes = query.order_by(DocumentEnvelope.created_at).limit(limit).all()

        results = []
        for envelope in envelopes:
            previous = envelope.status
            try:
                self._reconcile(envelope, source='worker')
            except ESignError as e:
                db.session.rollback()
                logger.error(f"Reconcile failed for envelope {envelope.id}: {e}")
                results.append({'id': envelope.id, 'previousStatus': previous, 'error': str(e)})
                continue
            results.append({
                'id': envelope.id,
                'previousStatus': previous,
                'status': envelope.status,
                'signedAvailable': bool(envelope.signed_file_key)
            })

        return {
            'processed': len(results),
            'failed': sum(1 for r in results if 'error' in r),
            'results': results
        }

    # =========================================================================
    # VOID
    # =========================================================================

    def void_envelope(self, org_id: str, envelope_id: str, reason: str, deal_id: str = None) -> DocumentEnvelope:
        """
        Cancel a non-terminal envelope with the provider, then force VOIDED.

        Raises:
            EnvelopeConflictError: the envelope is already terminal
            ProviderAPIError: the provider cancel failed (status unchanged)
        """
        reason = (reason or '').strip()
        if not VOID_REASON_MIN_LENGTH <= len(reason) <= VOID_REASON_MAX_LENGTH:
            raise ESignError(
                f"Void reason must be {VOID_REASON_MIN_LENGTH}-{VOID_REASON_MAX_LENGTH} characters.",
                status_code=400
            )

        envelope = self.get_envelope(org_id, envelope_id, deal_id)
        current = EnvelopeStatus(envelope.status)
        if current.is_terminal:
            raise EnvelopeConflictError(f"Envelope cannot be voided in status {current.value}.")

        if envelope.provider_envelope_id:
            self.provider(envelope.provider).void_envelope(envelope.provider_envelope_id, reason)

        for attempt in range(self.max_cas_retries):
            current = EnvelopeStatus(envelope.status)
            if current is EnvelopeStatus.COMPLETED:
                raise EnvelopeConflictError("Envelope completed before it could be voided.")

            now = datetime.utcnow()
            rows = DocumentEnvelope.query.filter_by(id=envelope.id, status=current.value).update({
                'status': EnvelopeStatus.VOIDED.value,
                'void_reason': reason,
                'voided_at': now,
                'updated_at': now
            }, synchronize_session=False)

            if rows == 0:
                db.session.rollback()
                db.session.refresh(envelope)
                continue

            audit_service.log_envelope_voided(envelope, current.value, reason)
            db.session.commit()
            logger.info(f"Envelope {envelope.id} voided from {current.value}")
            return envelope

        raise EnvelopeConflictError("Envelope status changed concurrently; retry.")

    # =========================================================================
    # SIGNED ARTIFACT
    # =========================================================================

    def _store_signed_artifact(self, envelope: DocumentEnvelope, provider: ESignProvider,
                               signed_pdf: bytes = None) -> bool:
        """
        Fetch and store the signed PDF for a completed envelope.

        Failures are logged and leave the envelope without a key; the next
        download or worker reconcile tries again.
        """
        if envelope.signed_file_key:
            return True

        try:
            if signed_pdf is None:
                signed_pdf = provider.get_envelope(envelope.provider_envelope_id).signed_pdf
            if not signed_pdf:
                logger.warning(f"No signed PDF available yet for envelope {envelope.id}")
                return False

            key = signed_artifact_path(envelope.org_id, envelope.deal_id, envelope.id)
            self.storage.put(key, signed_pdf, content_type='application/pdf')
        except (ESignError, ArtifactStorageError) as e:
            logger.error(f"Failed to store signed artifact for envelope {envelope.id}: {e}")
            return False

        DocumentEnvelope.query.filter_by(id=envelope.id, signed_file_key=None).update({
            'signed_file_key': key,
            'signed_file_sha256': hashlib.sha256(signed_pdf).hexdigest()
        }, synchronize_session=False)
        db.session.commit()
        logger.info(f"Stored signed artifact for envelope {envelope.id} at {key}")
        return True

    def download_signed(self, org_id: str, envelope_id: str, deal_id: str = None) -> bytes:
        """
        Return the signed PDF bytes of a completed envelope.

        Raises:
            EnvelopePreconditionError: not completed, or artifact not yet available
        """
        envelope = self.get_envelope(org_id, envelope_id, deal_id)
        if envelope.status != EnvelopeStatus.COMPLETED.value:
            raise EnvelopePreconditionError(
                f"Signed document is not available while the envelope is {envelope.status}."
            )

        if not envelope.signed_file_key:
            stored = self._store_signed_artifact(envelope, self.provider(envelope.provider))
            if not stored:
                raise EnvelopePreconditionError("Signed document is not available yet; retry shortly.")

        try:
            data = self.storage.get(envelope.signed_file_key)
        except ArtifactStorageError as e:
            raise ESignError(str(e), status_code=502)

        audit_service.log_signed_download(envelope)
        db.session.commit()
        return data

    # =========================================================================
    # STUB HELPERS
    # =========================================================================

    def complete_stub_envelope(self, org_id: str, envelope_id: str, deal_id: str = None) -> DocumentEnvelope:
        """Mark a stub envelope signed by everyone (development only)."""
        envelope = self.get_envelope(org_id, envelope_id, deal_id)
        provider = self.provider(envelope.provider)
        if not isinstance(provider, StubESignProvider):
            raise EnvelopePreconditionError("Only stub envelopes can be completed manually.")

        current = EnvelopeStatus(envelope.status)
        if current is EnvelopeStatus.COMPLETED:
            return envelope
        if current.is_terminal:
            raise EnvelopeConflictError(f"Envelope cannot be completed in status {current.value}.")

        provider.complete(envelope.provider_envelope_id)
        self._transition(envelope, EnvelopeStatus.COMPLETED, source='app', event_data={'stub_completed': True})
        self._store_signed_artifact(envelope, provider)
        return envelope
