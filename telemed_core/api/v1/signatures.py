"""/v1/signatures - prescription signing and verification"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from telemed_core.api.dependencies import get_crypto_service, get_request_id
from telemed_core.api.v1.schemas import (
    CertificateRequest,
    ElectronicVerificationRequest,
    KeyPairResponse,
    SignRequest,
    SignResponse,
    TokenAuthRequest,
    TokenAuthResponse,
    VerificationReportSchema,
    VerifyRequest,
    VerifyResponse,
)
from telemed_core.domain.exceptions import SigningError, TokenAuthError
from telemed_core.services.signature_service import CryptographicService

router = APIRouter()


@router.post("/signatures/keys", response_model=KeyPairResponse)
def generate_keys(crypto: CryptographicService = Depends(get_crypto_service)):
    """New RSA key pair (PEM)"""
    key_pair = crypto.generate_key_pair()
    return KeyPairResponse(public_key=key_pair.public_key, private_key=key_pair.private_key)


@router.post("/signatures/certificates")
def create_certificate(body: CertificateRequest, crypto: CryptographicService = Depends(get_crypto_service)):
    """Simulated ICP-Brasil A3 certificate for a doctor"""
    certificate = crypto.create_icp_brasil_a3_certificate(
        body.doctor_id, body.doctor_name, body.crm, body.crm_state
    )
    return certificate.to_dict()


@router.post("/signatures/sign", response_model=SignResponse)
def sign_prescription(
    body: SignRequest,
    request: Request,
    crypto: CryptographicService = Depends(get_crypto_service),
):
    request_id = get_request_id(request)

    try:
        result = crypto.sign_prescription(body.document_content, body.private_key, body.certificate_info)
    except SigningError as e:
        logging.error(f"Signing failed for doctor {body.doctor_id}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail=str(e))

    audit_hash = crypto.generate_audit_hash(result, body.doctor_id, body.patient_id)
    logging.info(
        f"Prescription signed for patient {body.patient_id}",
        extra={"request_id": request_id, "audit_hash": audit_hash},
    )

    return SignResponse(
        signature=result.signature,
        algorithm=result.algorithm,
        timestamp=result.timestamp,
        certificate_info=result.certificate_info,
        document_hash=result.document_hash,
        audit_hash=audit_hash,
    )


@router.post("/signatures/verify", response_model=VerifyResponse)
def verify_signature(body: VerifyRequest, crypto: CryptographicService = Depends(get_crypto_service)):
    valid = crypto.verify_signature(body.document_content, body.signature, body.public_key, body.timestamp)
    return VerifyResponse(valid=valid)


@router.post("/signatures/electronic-verification", response_model=VerificationReportSchema)
async def electronic_verification(
    body: ElectronicVerificationRequest,
    crypto: CryptographicService = Depends(get_crypto_service),
):
    """Chain, timestamp and revocation checks on a stored signature record"""
    report = await crypto.perform_electronic_verification(
        body.signature, body.document_hash, body.certificate_info
    )
    return VerificationReportSchema.model_validate(report)


@router.post("/signatures/token-auth", response_model=TokenAuthResponse)
async def token_auth(
    body: TokenAuthRequest,
    request: Request,
    crypto: CryptographicService = Depends(get_crypto_service),
):
    try:
        authenticated = await crypto.authenticate_a3_token(body.pin, body.certificate_id)
    except TokenAuthError as e:
        logging.info(f"Token auth rejected: {e}", extra={"request_id": get_request_id(request)})
        raise HTTPException(status_code=422, detail=str(e))
    return TokenAuthResponse(authenticated=authenticated)
