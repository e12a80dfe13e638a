"""Prescription services.

Provides:
- create_prescription / update_draft: build and edit drafts
- sign: seal clinical content with a digest and keyed signature
- verify / ensure_integrity / verify_chain: tamper detection
- amend / discontinue_line: new versions of signed content
- cancel / expire / expire_due / mark_dispensed: lifecycle
"""

import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone
from django.utils.crypto import constant_time_compare

from medcore_basemodels.utils import actor_ref
from medcore_basemodels.validators import validate_extension_map

from .conf import get_setting
from .exceptions import (
    AlreadySigned,
    InvalidClinicalContent,
    IntegrityViolation,
    InvalidPrescriptionState,
    NotSigned,
    UnknownLine,
)
from .integrity import canonical_payload, compute_hash, digest, sign_hash, signature_matches
from .lines import normalize_diagnosis, normalize_items
from .models import Prescription, PrescriptionStatus

logger = logging.getLogger(__name__)

CLINICAL_FIELDS = ('diagnosis', 'items', 'notes')


def _clean_changes(changes: dict) -> dict:
    unknown = set(changes) - set(CLINICAL_FIELDS)
    if unknown:
        raise InvalidClinicalContent(
            f"Only {', '.join(CLINICAL_FIELDS)} can change; got {', '.join(sorted(unknown))}"
        )

    cleaned = {}
    if 'diagnosis' in changes:
        cleaned['diagnosis'] = normalize_diagnosis(changes['diagnosis'])
    if 'items' in changes:
        cleaned['items'] = normalize_items(changes['items'])
    if 'notes' in changes:
        cleaned['notes'] = changes['notes'] or ''
    return cleaned


def _locked(prescription) -> Prescription:
    return Prescription.objects.select_for_update().get(pk=prescription.pk)


def _sync(prescription, fresh) -> None:
    for f in Prescription._meta.concrete_fields:
        setattr(prescription, f.attname, getattr(fresh, f.attname))


def create_prescription(
    doctor_id,
    patient_id,
    items,
    diagnosis=None,
    notes: str = '',
    *,
    appointment_ref: str = '',
    expires_at=None,
    metadata: dict = None,
) -> Prescription:
    """
    Create a draft prescription with validated line items.

    Raises:
        InvalidLineItem: If items are missing or malformed
        InvalidClinicalContent: If a diagnosis entry has no code
    """
    metadata = metadata or {}
    validate_extension_map(metadata)

    prescription = Prescription.objects.create(
        doctor_id=str(doctor_id),
        patient_id=str(patient_id),
        appointment_ref=appointment_ref,
        items=normalize_items(items),
        diagnosis=normalize_diagnosis(diagnosis),
        notes=notes or '',
        expires_at=expires_at,
        metadata=metadata,
    )
    logger.info("Created draft prescription %s", prescription.pk)
    return prescription


@transaction.atomic
def update_draft(prescription: Prescription, changes: dict) -> Prescription:
    """
    Edit clinical content of a draft.

    Raises:
        AlreadySigned: If the prescription is no longer a draft
    """
    fresh = _locked(prescription)
    if fresh.status != PrescriptionStatus.DRAFT:
        raise AlreadySigned(fresh.pk, fresh.status, action="edit")

    fresh.cas_update(**_clean_changes(changes))
    _sync(prescription, fresh)
    return prescription


@transaction.atomic
def sign(prescription: Prescription, actor=None, now=None) -> tuple[str, object]:
    """
    Sign a draft prescription.

    Computes the digest of the canonical clinical content, stamps a keyed
    signature, sets expires_at (unless already set) and moves the
    prescription to 'signed'.

    Returns:
        Tuple of (hash, signed_at)

    Raises:
        AlreadySigned: If the prescription is not a draft
    """
    fresh = _locked(prescription)
    if fresh.status != PrescriptionStatus.DRAFT:
        raise AlreadySigned(fresh.pk, fresh.status)

    signed_at = now or timezone.now()
    algorithm = get_setting('HASH_ALGORITHM', 'sha256')
    fresh.hash_algorithm = algorithm
    value = compute_hash(fresh, signed_at=signed_at)
    expires_at = fresh.expires_at or signed_at + timedelta(
        days=get_setting('VALIDITY_DAYS', 30)
    )

    fresh.cas_update(
        status=PrescriptionStatus.SIGNED,
        hash=value,
        hash_algorithm=algorithm,
        signature=sign_hash(value, algorithm),
        signature_algorithm=algorithm,
        signed_at=signed_at,
        expires_at=expires_at,
    )
    _sync(prescription, fresh)

    logger.info(
        "Prescription %s signed by %s (v%d, %s)",
        fresh.pk, actor_ref(actor) or 'system', fresh.version, value,
    )
    return value, signed_at


def verify(prescription: Prescription, claimed_hash: str = None) -> bool:
    """
    Recompute the digest from current content and compare.

    Compares against `claimed_hash` when given, otherwise the stored hash;
    the stored signature must also match. Returns False for unsigned
    prescriptions. A mismatch is logged, never corrected.
    """
    if not prescription.hash or not prescription.signed_at:
        return False

    expected = claimed_hash or prescription.hash
    actual = compute_hash(prescription)
    ok = constant_time_compare(actual, expected) and signature_matches(
        prescription.hash,
        prescription.signature,
        prescription.signature_algorithm or prescription.hash_algorithm,
    )
    if not ok:
        logger.error(
            "Prescription %s failed verification: expected %s, computed %s",
            prescription.pk, expected, actual,
        )
    return ok


def ensure_integrity(prescription: Prescription) -> None:
    """
    Raise unless the prescription verifies against its stored hash.

    Raises:
        IntegrityViolation: On digest or signature mismatch
    """
    if not verify(prescription):
        raise IntegrityViolation(prescription.pk, "content does not match signed hash")


def _chain_error(prescription, detail: str):
    logger.error("Prescription %s revision chain broken: %s", prescription.pk, detail)
    return IntegrityViolation(prescription.pk, f"revision chain broken: {detail}")


def verify_chain(prescription: Prescription) -> bool:
    """
    Verify every version back to the first.

    Each revision k must carry the content of version k-1, whose digest
    must equal the revision's previous_hash, which must in turn equal the
    hash recorded by revision k-1. The last revision's hash must be the
    current hash, and the current content must verify.

    Raises:
        IntegrityViolation: If any link is broken
    """
    algorithm = prescription.hash_algorithm or 'sha256'
    revisions = prescription.revisions or []

    if prescription.version != len(revisions) + 1:
        raise _chain_error(
            prescription,
            f"version {prescription.version} with {len(revisions)} revisions",
        )

    previous = None
    for index, revision in enumerate(revisions):
        expected_version = index + 2
        if revision.get('version') != expected_version:
            raise _chain_error(prescription, f"revision {index} is not version {expected_version}")

        content = revision.get('previous_content') or {}
        if content.get('version') != expected_version - 1:
            raise _chain_error(prescription, f"revision {expected_version} snapshot has wrong version")
        if digest(content, algorithm) != revision.get('previous_hash'):
            raise _chain_error(prescription, f"version {expected_version - 1} content does not match its hash")
        if previous is not None and previous.get('hash') != revision.get('previous_hash'):
            raise _chain_error(prescription, f"revision {expected_version} does not link to version {expected_version - 1}")
        previous = revision

    if previous is not None and previous.get('hash') != prescription.hash:
        raise _chain_error(prescription, "last revision does not match current hash")

    if not verify(prescription):
        raise _chain_error(prescription, f"current version {prescription.version} does not verify")
    return True


@transaction.atomic
def amend(prescription: Prescription, changes: dict, actor, reason: str, now=None) -> int:
    """
    Create a new version of a signed prescription.

    Records {version, changed_at, changed_by, reason, previous_hash,
    previous_content, hash} in the revision list, applies the changes and
    re-signs. Validity (expires_at) is not extended.

    Returns:
        The new version number

    Raises:
        NotSigned: If the prescription is not 'signed'
        InvalidClinicalContent: If changes touch non-clinical fields or no reason
        IntegrityViolation: If the current content is already tampered
    """
    if not reason:
        raise InvalidClinicalContent("An amendment needs a reason")

    fresh = _locked(prescription)
    if fresh.status != PrescriptionStatus.SIGNED:
        raise NotSigned(fresh.pk, fresh.status)
    ensure_integrity(fresh)

    cleaned = _clean_changes(changes)
    previous_content = canonical_payload(fresh)
    previous_hash = fresh.hash

    for name, value in cleaned.items():
        setattr(fresh, name, value)

    changed_at = now or timezone.now()
    new_version = fresh.version + 1
    algorithm = fresh.hash_algorithm
    value = compute_hash(fresh, signed_at=changed_at, version=new_version)

    revision = {
        'version': new_version,
        'changed_at': changed_at.isoformat(),
        'changed_by': actor_ref(actor),
        'reason': reason,
        'previous_hash': previous_hash,
        'previous_content': previous_content,
        'hash': value,
    }

    fresh.cas_update(
        version=new_version,
        hash=value,
        signature=sign_hash(value, fresh.signature_algorithm or algorithm),
        signed_at=changed_at,
        revisions=list(fresh.revisions or []) + [revision],
        **cleaned,
    )
    _sync(prescription, fresh)

    logger.info(
        "Prescription %s amended to v%d by %s: %s",
        fresh.pk, new_version, revision['changed_by'] or 'system', reason,
    )
    return new_version


def discontinue_line(prescription: Prescription, line_id: str, reason: str, actor=None, now=None) -> int:
    """Discontinue one line through an amendment; returns the new version."""
    lines = prescription.line_items
    if not any(line.line_id == line_id for line in lines):
        raise UnknownLine(prescription.pk, line_id)

    items = [
        line.discontinue(reason).to_dict() if line.line_id == line_id else line.to_dict()
        for line in lines
    ]
    return amend(
        prescription,
        {'items': items},
        actor,
        reason=f"Discontinued line {line_id}: {reason}",
        now=now,
    )


@transaction.atomic
def cancel(prescription: Prescription, actor=None, reason: str = '') -> Prescription:
    """
    Cancel a draft or signed prescription.

    Raises:
        InvalidPrescriptionState: If it was already dispensed, expired or cancelled
    """
    fresh = _locked(prescription)
    if fresh.status not in (PrescriptionStatus.DRAFT, PrescriptionStatus.SIGNED):
        raise InvalidPrescriptionState(fresh.pk, fresh.status, "cancel")

    fresh.cas_update(status=PrescriptionStatus.CANCELLED, cancelled_reason=reason)
    _sync(prescription, fresh)
    logger.info("Prescription %s cancelled by %s", fresh.pk, actor_ref(actor) or 'system')
    return prescription


def is_expired(prescription: Prescription, as_of=None) -> bool:
    as_of = as_of or timezone.now()
    return (
        prescription.status == PrescriptionStatus.EXPIRED
        or (prescription.expires_at is not None and as_of > prescription.expires_at)
    )


@transaction.atomic
def expire(prescription: Prescription, as_of=None) -> bool:
    """
    Move a signed or dispensed prescription to 'expired' once as_of > expires_at.

    Returns:
        True if the prescription was expired by this call
    """
    as_of = as_of or timezone.now()
    fresh = _locked(prescription)
    if fresh.status not in (PrescriptionStatus.SIGNED, PrescriptionStatus.DISPENSED):
        return False
    if fresh.expires_at is None or as_of <= fresh.expires_at:
        return False

    fresh.cas_update(status=PrescriptionStatus.EXPIRED)
    _sync(prescription, fresh)
    logger.info("Prescription %s expired (expires_at %s)", fresh.pk, fresh.expires_at)
    return True


def expire_due(as_of=None) -> int:
    """Expire every signed or dispensed prescription past expires_at."""
    as_of = as_of or timezone.now()
    due = Prescription.objects.filter(
        status__in=[PrescriptionStatus.SIGNED, PrescriptionStatus.DISPENSED],
        expires_at__lt=as_of,
    )
    return sum(1 for prescription in due if expire(prescription, as_of))


def mark_dispensed(prescription: Prescription, now=None) -> Prescription:
    """
    Move a signed prescription to 'dispensed'. Call inside the dispense
    transaction with the row already locked.
    """
    if prescription.status == PrescriptionStatus.DISPENSED:
        return prescription
    if prescription.status != PrescriptionStatus.SIGNED:
        raise InvalidPrescriptionState(prescription.pk, prescription.status, "dispense")

    prescription.cas_update(
        status=PrescriptionStatus.DISPENSED,
        dispensed_at=prescription.dispensed_at or now or timezone.now(),
    )
    return prescription
