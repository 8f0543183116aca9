"""/v1/compliance - registry checks for partner institutions"""

import logging
from fastapi import APIRouter, Request

from telemed_core.api.dependencies import get_request_id
from telemed_core.api.v1.schemas import CollaboratorComplianceRequest, CollaboratorComplianceResponse
from telemed_core.domain.compliance import is_valid_cnes, is_valid_cnpj

router = APIRouter()


@router.post("/compliance/collaborators/validate", response_model=CollaboratorComplianceResponse)
def validate_collaborator(body: CollaboratorComplianceRequest, request: Request):
    """CNPJ and CNES checks for a pharmacy, laboratory or clinic before it is onboarded"""
    cnpj_valid = is_valid_cnpj(body.cnpj)
    cnes_valid = is_valid_cnes(body.cnes)

    issues = []
    if not cnpj_valid:
        issues.append("Invalid CNPJ")
    if not cnes_valid:
        issues.append("Invalid CNES")

    if issues:
        logging.info(
            f"Collaborator {body.name} failed registry checks",
            extra={"request_id": get_request_id(request), "issues": issues},
        )

    return CollaboratorComplianceResponse(
        name=body.name,
        cnpj_valid=cnpj_valid,
        cnes_valid=cnes_valid,
        compliant=not issues,
        issues=issues,
    )
