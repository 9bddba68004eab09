"""
Canonical Envelope Status

Provider-independent envelope states and the monotonic transition rule.
"""

from enum import Enum


class EnvelopeStatus(Enum):
    SENT = "SENT"
    VIEWED = "VIEWED"
    PARTIALLY_SIGNED = "PARTIALLY_SIGNED"
    COMPLETED = "COMPLETED"
    DECLINED = "DECLINED"
    VOIDED = "VOIDED"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    EnvelopeStatus.COMPLETED,
    EnvelopeStatus.DECLINED,
    EnvelopeStatus.VOIDED,
    EnvelopeStatus.ERROR,
})

# Progress rank; all terminals share the top rank
STATUS_RANK = {
    EnvelopeStatus.SENT: 1,
    EnvelopeStatus.VIEWED: 2,
    EnvelopeStatus.PARTIALLY_SIGNED: 3,
    EnvelopeStatus.COMPLETED: 4,
    EnvelopeStatus.DECLINED: 4,
    EnvelopeStatus.VOIDED: 4,
    EnvelopeStatus.ERROR: 4,
}


def coerce_status(value) -> EnvelopeStatus:
    """Accept an EnvelopeStatus or its string value."""
    if isinstance(value, EnvelopeStatus):
        return value
    return EnvelopeStatus(str(value).strip().upper())


def should_apply(current, new) -> bool:
    """
    Decide whether a reported status replaces the stored one.

    Applied only when it ranks at or above the current status and differs
    from it. COMPLETED is final: nothing replaces it. Another terminal may
    replace a non-COMPLETED terminal (a provider correcting itself).
    """
    current = coerce_status(current)
    new = coerce_status(new)

    if current is EnvelopeStatus.COMPLETED:
        return False
    if new is current:
        return False
    return STATUS_RANK[new] >= STATUS_RANK[current]
