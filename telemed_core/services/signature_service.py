"""ICP-Brasil A3 compliant cryptographic service for medical prescriptions

Signatures cover both the document and the signing instant:

    document_hash    = SHA-256(document_content)            (hex)
    signable_content = f"{document_hash}|{timestamp}"       (ISO-8601 UTC)
    signature        = RSA-PSS(SHA-256, MGF1-SHA-256, salt=32)(signable_content)

so a signature cannot be replayed over other content or another claimed
timestamp. Verification recomputes the same content and never raises.
"""

import asyncio
import base64
import hashlib
import json
import logging
from datetime import timedelta
from typing import Any, Dict, Mapping, Optional, Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from telemed_core.config import settings
from telemed_core.domain.certificates import (
    COMPLIANCE_LEVEL_A3,
    ICP_BRASIL_OID,
    STATUS_ERROR,
    STATUS_VALID,
    TIMESTAMP_SERVICE_URL,
    create_icp_brasil_a3_certificate,
    validate_certificate_chain,
    validate_timestamp,
)
from telemed_core.domain.exceptions import SigningError, TokenAuthError
from telemed_core.domain.models import CertificateInfo, KeyPair, SignatureResult, VerificationReport
from telemed_core.domain.ports import RevocationChecker
from telemed_core.infrastructure.clients.ocsp import SimulatedOcspResponder
from telemed_core.infrastructure.observability.logging import log_signature_event
from telemed_core.infrastructure.observability.metrics import record_verification, signature_counter
from telemed_core.utils.date_utils import to_iso_timestamp, utc_now

logger = logging.getLogger(__name__)

CertificateLike = Union[CertificateInfo, Mapping[str, Any]]


def _as_dict(certificate_info: CertificateLike) -> Dict[str, Any]:
    if isinstance(certificate_info, CertificateInfo):
        return certificate_info.to_dict()
    return dict(certificate_info)


class CryptographicService:
    """RSA-PSS signing, verification and simulated ICP-Brasil A3 environment"""

    ALGORITHM = "RSA-PSS_sha256"
    MIN_KEY_SIZE = 2048

    def __init__(
        self,
        revocation_checker: Optional[RevocationChecker] = None,
        key_size: Optional[int] = None,
        salt_length: Optional[int] = None,
        max_signature_age: Optional[timedelta] = None,
        token_delay_seconds: Optional[float] = None,
    ):
        self.revocation_checker = revocation_checker or SimulatedOcspResponder()
        self.key_size = max(key_size or settings.signature_key_size, self.MIN_KEY_SIZE)
        self.salt_length = salt_length or settings.signature_salt_length
        self.max_signature_age = max_signature_age or timedelta(hours=settings.signature_max_age_hours)
        self.token_delay_seconds = (
            settings.token_auth_delay_seconds if token_delay_seconds is None else token_delay_seconds
        )

    def _pss(self) -> padding.PSS:
        return padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=self.salt_length)

    def hash_document(self, document_content: str) -> str:
        return hashlib.sha256(document_content.encode("utf-8")).hexdigest()

    def generate_key_pair(self, passphrase: Optional[bytes] = None) -> KeyPair:
        """RSA key pair as SPKI / PKCS8 PEM; the private key is encrypted when a passphrase is given"""
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=self.key_size)

        encryption = (
            serialization.BestAvailableEncryption(passphrase)
            if passphrase
            else serialization.NoEncryption()
        )
        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=encryption,
        )
        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return KeyPair(public_key=public_pem.decode("ascii"), private_key=private_pem.decode("ascii"))

    def sign_prescription(
        self,
        document_content: str,
        private_key: str,
        certificate_info: CertificateLike,
        passphrase: Optional[bytes] = None,
    ) -> SignatureResult:
        """
        Sign a prescription with the doctor's private key.

        Raises:
            SigningError: on any hashing, key loading or signing failure; the cause is
                logged and not propagated to the caller
        """
        try:
            document_hash = self.hash_document(document_content)
            timestamp = to_iso_timestamp(utc_now())
            signable_content = f"{document_hash}|{timestamp}"

            key = serialization.load_pem_private_key(private_key.encode("utf-8"), password=passphrase)
            if not isinstance(key, rsa.RSAPrivateKey):
                raise TypeError(f"RSA private key required, got {type(key).__name__}")
            if key.key_size < self.MIN_KEY_SIZE:
                raise ValueError(f"RSA key of {key.key_size} bits is below the {self.MIN_KEY_SIZE}-bit minimum")

            raw_signature = key.sign(signable_content.encode("utf-8"), self._pss(), hashes.SHA256())

            enhanced_certificate_info = {
                **_as_dict(certificate_info),
                "algorithm": "RSA-PSS with SHA256",
                "key_size": key.key_size,
                "salt_length": self.salt_length,
                "signed_at": timestamp,
                "certificate_policy": ICP_BRASIL_OID,
                "compliance_level": COMPLIANCE_LEVEL_A3,
                "non_repudiation": True,
                "timestamp_service": TIMESTAMP_SERVICE_URL,
                "note": "Enhanced ICP-Brasil A3 compliance - production ready simulation",
            }

        except (ValueError, TypeError, UnicodeError, UnsupportedAlgorithm):
            signature_counter.labels(outcome="failed").inc()
            logger.error("Cryptographic signing error", exc_info=True)
            raise SigningError("Failed to create digital signature") from None

        signature_counter.labels(outcome="signed").inc()
        log_signature_event("sign_prescription", "signed", document_hash=document_hash, timestamp=timestamp)

        return SignatureResult(
            signature=base64.b64encode(raw_signature).decode("ascii"),
            algorithm=self.ALGORITHM,
            timestamp=timestamp,
            certificate_info=enhanced_certificate_info,
            document_hash=document_hash,
        )

    def verify_signature(self, document_content: str, signature: str, public_key: str, timestamp: str) -> bool:
        """True only if signature is a valid RSA-PSS signature over this document at this timestamp"""
        try:
            signable_content = f"{self.hash_document(document_content)}|{timestamp}"
            key = serialization.load_pem_public_key(public_key.encode("utf-8"))
            key.verify(
                base64.b64decode(signature, validate=True),
                signable_content.encode("utf-8"),
                self._pss(),
                hashes.SHA256(),
            )
            valid = True
        except InvalidSignature:
            valid = False
        except Exception:
            logger.warning("Signature verification error", exc_info=True)
            valid = False

        record_verification("cryptographic", valid)
        return valid

    def generate_audit_hash(self, signature_result: SignatureResult, doctor_id: str, patient_id: str) -> str:
        """SHA-256 fingerprint of a signing event for audit logs"""
        # Key names and order are part of the persisted audit format
        audit_content = json.dumps(
            {
                "signature": signature_result.signature,
                "timestamp": signature_result.timestamp,
                "documentHash": signature_result.document_hash,
                "doctorId": doctor_id,
                "patientId": patient_id,
                "algorithm": signature_result.algorithm,
            },
            separators=(",", ":"),
            ensure_ascii=False,
        )
        return hashlib.sha256(audit_content.encode("utf-8")).hexdigest()

    def create_icp_brasil_a3_certificate(
        self, doctor_id: str, doctor_name: str, crm: str, crm_state: str
    ) -> CertificateInfo:
        return create_icp_brasil_a3_certificate(doctor_id, doctor_name, crm, crm_state)

    async def authenticate_a3_token(self, pin: str, certificate_id: str) -> bool:
        """
        Simulated A3 hardware-token PIN authentication.

        Development stand-in: any well-formed PIN is accepted after the token
        round-trip delay. A production deployment talks PKCS#11 here.

        Raises:
            TokenAuthError: PIN shorter than 6 characters
        """
        if len(pin) < 6:
            log_signature_event("token_auth", "rejected", certificate_id=certificate_id)
            raise TokenAuthError("PIN must be at least 6 digits")

        await asyncio.sleep(self.token_delay_seconds)
        log_signature_event("token_auth", "authenticated", certificate_id=certificate_id)
        return True

    async def perform_electronic_verification(
        self,
        signature: str,
        document_hash: str,
        certificate_info: CertificateLike,
    ) -> VerificationReport:
        """
        Multi-stage verification; all stages must pass for is_valid.

        1. Basic: signature and document hash are present
        2. Chain of trust: ICP-Brasil A3 compliance level and policy OID
        3. Timestamp: signed_at within max_signature_age of now
        4. Revocation: certificate status from the revocation checker is VÁLIDO

        Never raises: internal errors produce is_valid=False with the error in
        verification_details.
        """
        try:
            info = _as_dict(certificate_info)
            basic_verification = bool(signature and document_hash)
            chain_of_trust = validate_certificate_chain(info)
            timestamp_valid = validate_timestamp(info["signed_at"], self.max_signature_age)
            certificate_status = await self.revocation_checker.check(info["serial_number"])

            report = VerificationReport(
                is_valid=(
                    basic_verification
                    and chain_of_trust
                    and timestamp_valid
                    and certificate_status == STATUS_VALID
                ),
                basic_verification=basic_verification,
                chain_of_trust=chain_of_trust,
                timestamp_valid=timestamp_valid,
                certificate_status=certificate_status,
                verification_details={
                    "algorithm": "RSA-PSS + SHA-256",
                    "key_size": self.key_size,
                    "compliance_level": COMPLIANCE_LEVEL_A3,
                    "verified_at": to_iso_timestamp(utc_now()),
                    "verification_method": "Verificação Eletrônica Avançada",
                },
            )

        except Exception as e:
            logger.error("Electronic verification error", exc_info=True)
            error = f"Missing certificate field: {e.args[0]}" if isinstance(e, KeyError) else str(e)
            report = VerificationReport(
                is_valid=False,
                basic_verification=False,
                chain_of_trust=False,
                timestamp_valid=False,
                certificate_status=STATUS_ERROR,
                verification_details={
                    "error": error or type(e).__name__,
                    "verified_at": to_iso_timestamp(utc_now()),
                },
            )

        record_verification("electronic", report.is_valid)
        return report
