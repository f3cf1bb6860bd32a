"""Certificate issuance, verification, and revocation.

Verification codes and signatures use the legacy rolling hash that printed
certificates already carry (``h = h * 31 + c`` over UTF-16 code units,
truncated to a signed 32-bit integer at every step). It is reproduced
bit-for-bit so existing certificates keep verifying. It is a checksum, not
a cryptographic signature: collisions are possible and anyone can forge a
matching value.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping

from uwa.certification.schemas import Certificate, VerificationResult
from uwa.timeutils import now_ms

logger = logging.getLogger(__name__)

CODE_PREFIX = "UWA-"
CODE_MAX_LENGTH = 20
SIGNATURE_LENGTH = 16
SIGNATURE_SUFFIX = "UWAC"
DEFAULT_CERTIFICATE_TYPE = "junior_underwater_archaeologist"

_BASE36_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
_UINT32 = 0xFFFFFFFF
_INT32_SIGN = 0x80000000


def _utf16_code_units(text: str) -> Iterator[int]:
    data = text.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        yield data[i] | (data[i + 1] << 8)


def rolling_hash(text: str) -> int:
    """Signed 32-bit ``h * 31 + c`` hash over the UTF-16 code units of ``text``."""
    value = 0
    for unit in _utf16_code_units(text):
        value = (value * 31 + unit) & _UINT32
        if value & _INT32_SIGN:
            value -= 1 << 32
    return value


def to_base36(number: int) -> str:
    """Uppercase base-36 rendering of a non-negative integer."""
    if number < 0:
        msg = f"Cannot base36-encode negative number {number}"
        raise ValueError(msg)
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36_DIGITS[rem])
    return "".join(reversed(digits))


def generate_verification_code(learner_id: str, timestamp: int) -> str:
    """Public lookup code: ``UWA-{base36(timestamp)}-{base36(|hash|)}``, at most 20 chars."""
    hashed = abs(rolling_hash(f"{learner_id}-{timestamp}"))
    code = f"{CODE_PREFIX}{to_base36(timestamp)}-{to_base36(hashed)}"
    return code[:CODE_MAX_LENGTH]


def generate_digital_signature(learner_id: str, verification_code: str, issue_date: int) -> str:
    """16-char uppercase hex checksum binding learner, code, and issue date."""
    hashed = abs(rolling_hash(f"{learner_id}:{verification_code}:{issue_date}:{SIGNATURE_SUFFIX}"))
    return format(hashed, "X").zfill(SIGNATURE_LENGTH)


def issue_certificate(
    learner_id: str,
    display_name: str,
    scores: Mapping[str, float],
    now: int | None = None,
    certificate_type: str = DEFAULT_CERTIFICATE_TYPE,
) -> Certificate:
    """Mint a certificate for a passing verdict.

    The caller is responsible for only calling this after the score
    aggregator reported every requirement met; scores are not re-checked here.
    """
    if now is None:
        now = now_ms()
    verification_code = generate_verification_code(learner_id, now)
    certificate = Certificate(
        learner_id=learner_id,
        student_name=display_name,
        certificate_type=certificate_type,
        issue_date=now,
        scores=dict(scores),
        verification_code=verification_code,
        digital_signature=generate_digital_signature(learner_id, verification_code, now),
        is_valid=True,
    )
    logger.info("Issued certificate %s for learner %s", verification_code, learner_id)
    return certificate


def signature_matches(certificate: Certificate) -> bool:
    """Recompute the checksum and compare it with the stored one."""
    expected = generate_digital_signature(
        certificate.learner_id,
        certificate.verification_code,
        certificate.issue_date,
    )
    return expected == certificate.digital_signature


def verify_certificate(
    certificate: Certificate | None,
    now: int | None = None,
) -> VerificationResult:
    """Verification outcome for a looked-up certificate.

    A missing certificate and a revoked one are distinct, non-exceptional
    results. Revoked certificates do not expose their payload.
    """
    if now is None:
        now = now_ms()

    if certificate is None:
        return VerificationResult(
            status="not_found",
            is_valid=False,
            error_message="Certificate not found",
            verified_date=now,
        )

    if not certificate.is_valid:
        return VerificationResult(
            status="revoked",
            is_valid=False,
            error_message="Certificate has been revoked",
            verified_date=now,
        )

    return VerificationResult(
        status="valid",
        is_valid=True,
        certificate=certificate,
        verified_date=now,
    )


def revoke_certificate(certificate: Certificate) -> Certificate:
    """Mark a certificate invalid. Revoking twice is a no-op; the record is never removed."""
    if certificate.is_valid:
        logger.info("Revoked certificate %s", certificate.verification_code)
    return certificate.model_copy(update={"is_valid": False})
