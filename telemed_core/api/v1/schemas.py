"""Pydantic schemas for API request/response validation"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from telemed_core.domain.compliance import is_valid_crm_state


class TransactionSchema(BaseModel):
    """Single TMC ledger entry"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    type: str
    amount: int
    reason: str
    balance_before: int
    balance_after: int
    created_at: datetime
    function_used: Optional[str] = None
    related_user_id: Optional[str] = None
    appointment_id: Optional[str] = None
    medical_record_id: Optional[str] = None


class BalanceResponse(BaseModel):
    """Response for GET /v1/credits/{user_id}/balance"""

    user_id: str
    balance: int


class TransactionHistoryResponse(BaseModel):
    """Response for GET /v1/credits/{user_id}/transactions"""

    user_id: str
    transactions: List[TransactionSchema]


class CreditRequest(BaseModel):
    """Request body for POST /v1/credits/credit and /v1/credits/debit"""

    user_id: str = Field(..., min_length=1, description="User identifier")
    amount: int = Field(..., gt=0, description="TMC credits")
    reason: str = Field(..., min_length=1)
    function_used: Optional[str] = None
    related_user_id: Optional[str] = None
    appointment_id: Optional[str] = None
    medical_record_id: Optional[str] = None


class ChargeRequest(BaseModel):
    """Request body for POST /v1/credits/charge"""

    user_id: str = Field(..., min_length=1)
    function_name: str = Field(..., min_length=1)
    appointment_id: Optional[str] = None
    medical_record_id: Optional[str] = None


class ChargeResponse(BaseModel):
    """A free function is charged without a transaction"""

    charged: int
    transaction: Optional[TransactionSchema] = None


class TransferRequest(BaseModel):
    """Request body for POST /v1/credits/transfer"""

    from_user_id: str = Field(..., min_length=1)
    to_user_id: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
    reason: str = Field(..., min_length=1)


class RechargeRequest(BaseModel):
    """Request body for POST /v1/credits/recharge"""

    user_id: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
    method: str = Field(..., min_length=1, description="Payment method, e.g. paypal, pix")


class CommissionRequest(BaseModel):
    """Request body for POST /v1/credits/commission"""

    doctor_id: str = Field(..., min_length=1)
    amount: int = Field(..., gt=0)
    function_used: str = Field(..., min_length=1)
    appointment_id: Optional[str] = None


class FunctionCostSchema(BaseModel):
    """Price of a paid platform feature"""

    model_config = ConfigDict(from_attributes=True)

    function_name: str
    cost_in_credits: int
    description: Optional[str] = None
    category: str


class FunctionCostUpdate(BaseModel):
    """Request body for PUT /v1/function-costs/{function_name}"""

    cost_in_credits: int = Field(..., ge=0)
    updated_by: Optional[str] = None
    category: str = "admin"
    description: Optional[str] = None


class KeyPairResponse(BaseModel):
    """Response for POST /v1/signatures/keys"""

    public_key: str
    private_key: str


class CertificateRequest(BaseModel):
    """Request body for POST /v1/signatures/certificates"""

    doctor_id: str = Field(..., min_length=1)
    doctor_name: str = Field(..., min_length=1)
    crm: str = Field(..., min_length=1)
    crm_state: str = Field(..., min_length=2, max_length=2)

    @field_validator("crm_state")
    @classmethod
    def check_crm_state(cls, value: str) -> str:
        if not is_valid_crm_state(value):
            raise ValueError(f"Unknown Brazilian state: {value}")
        return value.upper()


class SignRequest(BaseModel):
    """Request body for POST /v1/signatures/sign"""

    doctor_id: str = Field(..., min_length=1)
    patient_id: str = Field(..., min_length=1)
    document_content: str = Field(..., min_length=1)
    private_key: str = Field(..., min_length=1, description="PEM encoded PKCS8 private key")
    certificate_info: Dict[str, Any] = Field(default_factory=dict)


class SignResponse(BaseModel):
    """Signature record plus its audit hash"""

    signature: str
    algorithm: str
    timestamp: str
    certificate_info: Dict[str, Any]
    document_hash: str
    audit_hash: str


class VerifyRequest(BaseModel):
    """Request body for POST /v1/signatures/verify"""

    document_content: str
    signature: str
    public_key: str
    timestamp: str


class VerifyResponse(BaseModel):
    valid: bool


class ElectronicVerificationRequest(BaseModel):
    """Request body for POST /v1/signatures/electronic-verification"""

    signature: str
    document_hash: str
    certificate_info: Dict[str, Any]


class VerificationReportSchema(BaseModel):
    """Response for POST /v1/signatures/electronic-verification"""

    model_config = ConfigDict(from_attributes=True)

    is_valid: bool
    basic_verification: bool
    chain_of_trust: bool
    timestamp_valid: bool
    certificate_status: str
    verification_details: Dict[str, Any]


class TokenAuthRequest(BaseModel):
    """Request body for POST /v1/signatures/token-auth"""

    pin: str
    certificate_id: str = Field(..., min_length=1)


class TokenAuthResponse(BaseModel):
    authenticated: bool


class CollaboratorComplianceRequest(BaseModel):
    """Request body for POST /v1/compliance/collaborators/validate"""

    name: str = Field(..., min_length=1, description="Pharmacy, laboratory or clinic name")
    cnpj: str = ""
    cnes: str = ""


class CollaboratorComplianceResponse(BaseModel):
    name: str
    cnpj_valid: bool
    cnes_valid: bool
    compliant: bool
    issues: List[str]
