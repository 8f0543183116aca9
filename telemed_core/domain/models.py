"""Domain models - pure Python dataclasses representing ledger and signature entities"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from telemed_core.domain.exceptions import LedgerError

# Transaction types
CREDIT = "credit"
DEBIT = "debit"
TRANSFER = "transfer"


@dataclass(frozen=True)
class Transaction:
    """Immutable TMC ledger entry"""

    id: int
    user_id: str
    type: str  # "credit", "debit" or "transfer"
    amount: int  # Signed: negative for debits and outgoing transfers
    reason: str
    balance_before: int
    balance_after: int
    created_at: datetime
    function_used: Optional[str] = None
    related_user_id: Optional[str] = None
    appointment_id: Optional[str] = None
    medical_record_id: Optional[str] = None


@dataclass
class NewTransaction:
    """Ledger entry about to be appended; id and created_at are assigned by the store"""

    user_id: str
    type: str
    amount: int
    reason: str
    balance_before: int
    balance_after: int
    function_used: Optional[str] = None
    related_user_id: Optional[str] = None
    appointment_id: Optional[str] = None
    medical_record_id: Optional[str] = None


@dataclass(frozen=True)
class SuperiorLink:
    """Hierarchy edge: a user's superior and the percentage that superior takes from inferiors"""

    superior_id: str
    percentage: Optional[int]  # None when the superior never configured it


@dataclass
class LedgerOutcome:
    """Result of a ledger operation where insufficient funds is an expected outcome"""

    transactions: List[Transaction] = field(default_factory=list)
    error: Optional[LedgerError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def transaction(self) -> Optional[Transaction]:
        return self.transactions[0] if self.transactions else None


@dataclass(frozen=True)
class KeyPair:
    """PEM encoded RSA key pair (SPKI public, PKCS8 private)"""

    public_key: str
    private_key: str


@dataclass
class MedicalRegistration:
    """CRM registration carried by a doctor's certificate"""

    crm: str
    crm_state: str
    specialty: str
    valid_until: str


@dataclass
class CertificateInfo:
    """Simulated ICP-Brasil A3 certificate attributes"""

    certificate_id: str
    serial_number: str
    issuer: str
    subject: str
    issued_at: str
    valid_from: str
    valid_until: str
    certificate_type: str
    security_level: str
    hardware_token: bool
    token_type: str
    private_key_protection: str
    key_usage: str
    extended_key_usage: str
    key_algorithm: str
    certificate_policy: str
    compliance_level: str
    regulatory_compliance: List[str]
    crl_distribution_points: List[str]
    authority_info_access: str
    timestamp_service: str
    medical_registration: MedicalRegistration
    legal_validity: str
    non_repudiation: bool
    healthcare_compliance: str
    fingerprint_sha1: str
    fingerprint_sha256: str
    status: str
    note: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SignatureResult:
    """Output of signing a prescription"""

    signature: str  # base64
    algorithm: str
    timestamp: str  # ISO-8601, part of the signed content
    certificate_info: Dict[str, Any]
    document_hash: str  # SHA-256 hex


@dataclass
class VerificationReport:
    """Outcome of the multi-stage electronic verification"""

    is_valid: bool
    basic_verification: bool
    chain_of_trust: bool
    timestamp_valid: bool
    certificate_status: str
    verification_details: Dict[str, Any]
