"""Audit snapshot embedded in the invoice remarks field.

Older billing API schemas have no columns for the dosage override, the
tyre-count mismatch or the pricing trail, so these travel inside the
free-text remarks field:

    <consent statement>
    <optional operator note, e.g. "REF: MAXTT-DEL-001/DL/0042/0825">
    [MAXTT-AUDIT] {"payload":{...},"version":1}

The JSON envelope is written with sorted keys and fixed separators so the
same snapshot always encodes to the same bytes. Decoding never raises: any
missing marker, malformed JSON, unknown version or invalid payload yields
None, and callers fall back to the explicit invoice columns.
"""

import json
import logging
import re
from typing import Any, Callable

from ..core.enums import AUDIT_SNAPSHOT_VERSION
from ..models.invoice import AuditSnapshot

logger = logging.getLogger(__name__)

AUDIT_MARKER = "[MAXTT-AUDIT]"

CONSENT_STATEMENT = (
    "Customer Consent to Proceed: Informed of process, pricing and GST; "
    "consents to installation and undertakes to pay upon completion."
)

_REFERRAL_RE = re.compile(
    r"\bREF:\s*([A-Z0-9][A-Z0-9\-]*?(?:/[A-Z]{2,5}/\d{1,6}/\d{4}|-\d{1,6}))(?![\w/\-])",
    re.IGNORECASE,
)


# =============================================================================
# ENCODE
# =============================================================================


def encode_payload(snapshot: AuditSnapshot) -> str:
    """The versioned JSON envelope for a snapshot (no marker)."""
    envelope = {
        "version": AUDIT_SNAPSHOT_VERSION,
        "payload": snapshot.model_dump(mode="json"),
    }
    return json.dumps(envelope, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def encode(
    snapshot: AuditSnapshot,
    statement: str = CONSENT_STATEMENT,
    note: str = "",
) -> str:
    """Remarks text: readable consent statement, optional note, then the marker line."""
    lines = [statement.strip()] if statement and statement.strip() else []
    if note and note.strip():
        lines.append(" ".join(note.split()))
    lines.append(f"{AUDIT_MARKER} {encode_payload(snapshot)}")
    return "\n".join(lines)


# =============================================================================
# DECODE
# =============================================================================


def _decode_v1(payload: Any) -> AuditSnapshot:
    return AuditSnapshot.model_validate(payload)


_DECODERS: dict[int, Callable[[Any], AuditSnapshot]] = {
    1: _decode_v1,
}


def decode(remarks: Any) -> AuditSnapshot | None:
    """Recover the audit snapshot from remarks text, or None."""
    if not isinstance(remarks, str) or AUDIT_MARKER not in remarks:
        return None

    segment = remarks[remarks.rfind(AUDIT_MARKER) + len(AUDIT_MARKER):].strip()
    if not segment:
        return None
    segment = segment.splitlines()[0]

    try:
        envelope = json.loads(segment)
        if not isinstance(envelope, dict):
            return None
        decoder = _DECODERS.get(envelope.get("version"))
        if decoder is None:
            logger.debug("Audit snapshot with unknown version %r", envelope.get("version"))
            return None
        return decoder(envelope.get("payload"))
    except (ValueError, TypeError, RecursionError) as e:
        logger.debug("Audit snapshot decode failed: %s", e)
        return None


def human_text(remarks: Any) -> str:
    """The person-readable part of the remarks (everything before the marker)."""
    if not isinstance(remarks, str):
        return ""
    head, _, _ = remarks.partition(AUDIT_MARKER)
    return head.strip()


# =============================================================================
# REFERRAL
# =============================================================================


def parse_referral_code(remarks: Any) -> str | None:
    """Referral code written as 'REF: <code>' in the readable part of the remarks.

    Accepts the printed invoice code form and the short franchisee form.

    Examples:
        >>> parse_referral_code("REF: MAXTT-DEL-001/XX/0042/0825")
        'MAXTT-DEL-001/XX/0042/0825'
        >>> parse_referral_code("ref: maxtt-del-001-0042")
        'MAXTT-DEL-001-0042'
        >>> parse_referral_code("no referral") is None
        True
    """
    match = _REFERRAL_RE.search(human_text(remarks))
    return match.group(1).upper() if match else None
