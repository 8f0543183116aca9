"""ICP-Brasil A3 certificate simulation and trust checks

No certificate authority is contacted: certificates are synthesized with the
attributes a hardware-token (A3) certificate issued under ICP-Brasil carries,
and marked as simulated in their `note` field.
"""

import hashlib
import secrets
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from telemed_core.domain.models import CertificateInfo, MedicalRegistration
from telemed_core.utils.date_utils import add_years, parse_iso_timestamp, to_iso_timestamp, utc_now

ICP_BRASIL_OID = "2.16.76.1.3.1"  # ICP-Brasil certificate policy
COMPLIANCE_LEVEL_A3 = "ICP-Brasil A3"
TIMESTAMP_SERVICE_URL = "http://timestamp.iti.gov.br"
CERTIFICATE_VALIDITY_YEARS = 3

ISSUER_DN = (
    "CN=Autoridade Certificadora ICP-Brasil A3, OU=ICP-Brasil, "
    "O=ITI - Instituto Nacional de Tecnologia da Informacao, C=BR"
)
KEY_USAGE = "digitalSignature, nonRepudiation, keyEncipherment"
EXTENDED_KEY_USAGE = "emailProtection, clientAuth, timeStamping"

STATUS_VALID = "VÁLIDO"
STATUS_REVOKED = "REVOGADO"
STATUS_ERROR = "ERROR"


def subject_dn(doctor_name: str, crm: str, crm_state: str) -> str:
    return f"CN={doctor_name}, OU=Pessoa Fisica A3, OU=Medicina, OU={crm}-{crm_state}, O=ICP-Brasil, C=BR"


def generate_serial_number(now: datetime) -> str:
    """Epoch milliseconds followed by 8 random bytes in upper-case hex"""
    return f"{int(now.timestamp() * 1000)}{secrets.token_hex(8).upper()}"


def create_icp_brasil_a3_certificate(
    doctor_id: str,
    doctor_name: str,
    crm: str,
    crm_state: str,
    now: Optional[datetime] = None,
) -> CertificateInfo:
    """Synthesize a 3-year ICP-Brasil A3 certificate record for a doctor"""
    now = now or utc_now()
    valid_until = to_iso_timestamp(add_years(now, CERTIFICATE_VALIDITY_YEARS))
    issued_at = to_iso_timestamp(now)
    serial_number = generate_serial_number(now)

    return CertificateInfo(
        certificate_id=f"ICP-BRASIL-A3-{doctor_id[-8:].upper()}-{now.year}",
        serial_number=serial_number,
        issuer=ISSUER_DN,
        subject=subject_dn(doctor_name, crm, crm_state),
        issued_at=issued_at,
        valid_from=issued_at,
        valid_until=valid_until,
        certificate_type="A3",
        security_level="Alto",
        hardware_token=True,
        token_type="Smart Card / USB Token",
        private_key_protection="Hardware Protected",
        key_usage=KEY_USAGE,
        extended_key_usage=EXTENDED_KEY_USAGE,
        key_algorithm="RSA 2048 bits",
        certificate_policy=ICP_BRASIL_OID,
        compliance_level=COMPLIANCE_LEVEL_A3,
        regulatory_compliance=["CFM", "ANVISA", "MS"],
        crl_distribution_points=[
            "http://crl.icp-brasil.gov.br/LCRMULTIPLA.crl",
            "http://crl2.icp-brasil.gov.br/LCRMULTIPLA.crl",
        ],
        authority_info_access="http://ocsp.icp-brasil.gov.br/",
        timestamp_service=TIMESTAMP_SERVICE_URL,
        medical_registration=MedicalRegistration(
            crm=crm,
            crm_state=crm_state,
            specialty="Clínica Geral",
            valid_until=valid_until,
        ),
        legal_validity="Validade jurídica plena conforme MP 2.200-2/2001",
        non_repudiation=True,
        healthcare_compliance="CFM Resolução 1821/2007",
        fingerprint_sha1=hashlib.sha1(serial_number.encode("utf-8")).hexdigest(),
        fingerprint_sha256=hashlib.sha256(serial_number.encode("utf-8")).hexdigest(),
        status=STATUS_VALID,
        note="Certificado ICP-Brasil A3 simulado para ambiente de desenvolvimento",
    )


def validate_certificate_chain(certificate_info: Mapping[str, Any]) -> bool:
    """Chain of trust to the ICP-Brasil root, checked by policy OID and compliance level"""
    return (
        certificate_info.get("compliance_level") == COMPLIANCE_LEVEL_A3
        and certificate_info.get("certificate_policy") == ICP_BRASIL_OID
    )


def validate_timestamp(timestamp: str, max_age: timedelta, now: Optional[datetime] = None) -> bool:
    """Signing instant lies within max_age of now, on either side"""
    signed_at = parse_iso_timestamp(timestamp)
    now = now or utc_now()
    return abs(now - signed_at) <= max_age
