from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"

P12_PASSWORD = "clave-p12-pruebas"

# Instante fijo dentro de la vigencia de los certificados de prueba
NOW = datetime(2024, 1, 15, 15, 0, 0, tzinfo=timezone.utc)

ISSUER_ATTRS = [
    (NameOID.COMMON_NAME, "AUTORIDAD DE CERTIFICACION PRUEBAS"),
    (NameOID.ORGANIZATIONAL_UNIT_NAME, "ENTIDAD DE CERTIFICACION"),
    (NameOID.ORGANIZATION_NAME, "CA PRUEBAS S.A."),
    (NameOID.LOCALITY_NAME, "QUITO"),
    (NameOID.COUNTRY_NAME, "EC"),
]

SUBJECT_ATTRS = [
    (NameOID.COMMON_NAME, "COMERCIAL ANDINA S.A."),
    (NameOID.SERIAL_NUMBER, "1792146739001"),
    (NameOID.COUNTRY_NAME, "EC"),
]


def _name(attrs) -> x509.Name:
    return x509.Name([x509.NameAttribute(oid, value) for oid, value in attrs])


def make_certificate(
    key: rsa.RSAPrivateKey,
    *,
    not_before: datetime = NOW - timedelta(days=30),
    not_after: datetime = NOW + timedelta(days=365),
    issuer_attrs=None,
    serial: int = 0x1A2B3C4D5E6F,
) -> x509.Certificate:
    return (
        x509.CertificateBuilder()
        .subject_name(_name(SUBJECT_ATTRS))
        .issuer_name(_name(issuer_attrs or ISSUER_ATTRS))
        .public_key(key.public_key())
        .serial_number(serial)
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .sign(key, hashes.SHA256())
    )


def make_p12(
    key, certificate: x509.Certificate, password: Optional[str] = P12_PASSWORD
) -> bytes:
    encryption = (
        serialization.BestAvailableEncryption(password.encode("utf-8"))
        if password
        else serialization.NoEncryption()
    )
    return pkcs12.serialize_key_and_certificates(
        name=b"firma", key=key, cert=certificate, cas=None, encryption_algorithm=encryption
    )


@pytest.fixture(scope="session")
def rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def certificate(rsa_key) -> x509.Certificate:
    return make_certificate(rsa_key)


@pytest.fixture(scope="session")
def p12_bytes(rsa_key, certificate) -> bytes:
    return make_p12(rsa_key, certificate)


@pytest.fixture(scope="session")
def material(p12_bytes):
    from sri_client.certificates import load_p12

    return load_p12(p12_bytes, P12_PASSWORD, now=NOW)


@pytest.fixture
def factura_xml() -> bytes:
    return (FIXTURES_DIR / "factura_sin_firma.xml").read_bytes()


@pytest.fixture
def signing_time() -> datetime:
    return datetime(2024, 1, 15, 10, 0, 0)


def read_fixture(name: str) -> bytes:
    return (FIXTURES_DIR / name).read_bytes()
