"""
Canonical serialization, digests and signatures for prescriptions.

The digest covers clinical content only: doctor, patient, diagnosis
(sorted by code), items (entry order), notes, signed_at and version.
Fulfillment state (status, dispensing, expiry) is deliberately outside it,
so dispensing never invalidates a signature.
"""

import hashlib
import json
from datetime import timezone as dt_timezone

from django.utils.crypto import constant_time_compare, salted_hmac

from .conf import get_signing_key

SIGNATURE_SALT = "medcore_erx.prescription"


def canonical_payload(prescription, signed_at=None, version=None) -> dict:
    """Clinical content of a prescription as a plain, JSON-safe dict."""
    signed_at = signed_at or prescription.signed_at
    return {
        'doctor': str(prescription.doctor_id),
        'patient': str(prescription.patient_id),
        'diagnosis': sorted(
            prescription.diagnosis or [],
            key=lambda d: (d.get('code', ''), d.get('type', ''), d.get('description', '')),
        ),
        'items': list(prescription.items or []),
        'notes': prescription.notes or '',
        'signed_at': (
            signed_at.astimezone(dt_timezone.utc).isoformat() if signed_at else None
        ),
        'version': version or prescription.version,
    }


def serialize(payload: dict) -> bytes:
    """Deterministic JSON: sorted keys, no whitespace."""
    return json.dumps(payload, sort_keys=True, separators=(',', ':')).encode('utf-8')


def digest(payload: dict, algorithm: str = 'sha256') -> str:
    return hashlib.new(algorithm, serialize(payload)).hexdigest()


def compute_hash(prescription, signed_at=None, version=None) -> str:
    """Digest of the prescription's clinical content with its own algorithm."""
    return digest(
        canonical_payload(prescription, signed_at, version),
        prescription.hash_algorithm or 'sha256',
    )


def sign_hash(value: str, algorithm: str = 'sha256') -> str:
    """Keyed HMAC over a digest using the signing key."""
    return salted_hmac(
        SIGNATURE_SALT, value, secret=get_signing_key(), algorithm=algorithm,
    ).hexdigest()


def signature_matches(value: str, signature: str, algorithm: str = 'sha256') -> bool:
    return constant_time_compare(sign_hash(value, algorithm), signature or '')
