"""
Carga de certificados PKCS#12 (P12/PFX) para firma electrónica SRI.

Extrae la clave privada RSA, el certificado y los datos que la firma
XAdES-BES necesita (DER, módulo, exponente, emisor, serie). El material
se mantiene en memoria solo mientras dura la firma.
"""
from __future__ import annotations

import base64
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12

from .exceptions import (
    SriAuthenticationError,
    SriCertificateError,
    SriCertificateNotYetValidError,
    SriCertificateParsingError,
    SriExpiredCertificateError,
)

logger = logging.getLogger(__name__)

MIN_RSA_KEY_SIZE = 2048

_RE_RUC = re.compile(r"(?<![0-9])([0-9]{10}001)(?![0-9])")


def int_to_bytes(value: int) -> bytes:
    """Entero sin signo en big-endian con la mínima cantidad de bytes."""
    if value < 0:
        raise ValueError("Se esperaba un entero no negativo")
    return value.to_bytes(max(1, (value.bit_length() + 7) // 8), "big")


def wrap_base64(data: bytes, width: int = 76) -> str:
    """Base64 partido en líneas de ``width`` columnas."""
    b64 = base64.b64encode(data).decode("ascii")
    return "\n".join(b64[i:i + width] for i in range(0, len(b64), width))


def _looks_like_pfx(data: bytes) -> bool:
    """
    Chequeo estructural mínimo: PFX ::= SEQUENCE { version INTEGER (3), ... }.

    Permite distinguir contraseña incorrecta de contenedor corrupto, ya que
    cryptography reporta ambos casos con el mismo ValueError.
    """
    if len(data) < 5 or data[0] != 0x30:
        return False
    first = data[1]
    if first < 0x80 or first == 0x80:
        offset = 2
    else:
        n = first & 0x7F
        if n > 4 or len(data) < 2 + n:
            return False
        offset = 2 + n
    return data[offset:offset + 3] == b"\x02\x01\x03"


def _name_attributes(name: x509.Name) -> List[Tuple[str, str]]:
    attrs = []
    for attr in name:
        value = attr.value
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="replace")
        attrs.append((attr.rfc4514_attribute_name, value))
    return attrs


@dataclass
class CertificateMaterial:
    """Clave privada + certificado listos para firmar"""
    private_key: rsa.RSAPrivateKey
    certificate: x509.Certificate
    chain: List[x509.Certificate] = field(default_factory=list)

    @property
    def certificate_der(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.DER)

    @property
    def certificate_pem(self) -> str:
        return self.certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")

    @property
    def certificate_base64(self) -> str:
        return base64.b64encode(self.certificate_der).decode("ascii")

    @property
    def modulus_bytes(self) -> bytes:
        return int_to_bytes(self.private_key.public_key().public_numbers().n)

    @property
    def exponent_bytes(self) -> bytes:
        return int_to_bytes(self.private_key.public_key().public_numbers().e)

    @property
    def serial_number(self) -> int:
        return self.certificate.serial_number

    @property
    def issuer_attributes(self) -> List[Tuple[str, str]]:
        return _name_attributes(self.certificate.issuer)

    @property
    def subject_attributes(self) -> List[Tuple[str, str]]:
        return _name_attributes(self.certificate.subject)

    @property
    def subject_common_name(self) -> Optional[str]:
        for name, value in self.subject_attributes:
            if name == "CN":
                return value
        return None

    @property
    def ruc(self) -> Optional[str]:
        """RUC del titular si aparece en el subject (13 dígitos terminados en 001)."""
        for _, value in self.subject_attributes:
            match = _RE_RUC.search(value)
            if match:
                return match.group(1)
        return None

    @property
    def not_before(self) -> datetime:
        return self.certificate.not_valid_before_utc

    @property
    def not_after(self) -> datetime:
        return self.certificate.not_valid_after_utc


def check_validity(certificate: x509.Certificate, now: Optional[datetime] = None) -> None:
    """
    Raises:
        SriCertificateNotYetValidError: si now < notBefore
        SriExpiredCertificateError: si now > notAfter
    """
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    if now < certificate.not_valid_before_utc:
        raise SriCertificateNotYetValidError(
            f"Certificado aún no válido (válido desde {certificate.not_valid_before_utc.isoformat()})"
        )
    if now > certificate.not_valid_after_utc:
        raise SriExpiredCertificateError(
            f"Certificado expirado (válido hasta {certificate.not_valid_after_utc.isoformat()})"
        )


def load_p12(p12_bytes: bytes, password: Optional[str], now: Optional[datetime] = None) -> CertificateMaterial:
    """
    Carga un contenedor PKCS#12 desde bytes.

    Args:
        p12_bytes: Contenido del archivo .p12/.pfx
        password: Contraseña del contenedor
        now: Instante de referencia para validar vigencia (default: ahora UTC)

    Raises:
        SriAuthenticationError: contraseña incorrecta
        SriCertificateParsingError: contenedor corrupto o no PKCS#12
        SriCertificateError: sin clave/certificado o clave no RSA
        SriExpiredCertificateError / SriCertificateNotYetValidError: fuera de vigencia
    """
    if not p12_bytes:
        raise SriCertificateParsingError("Contenedor PKCS#12 vacío")

    password_bytes = password.encode("utf-8") if password else None
    try:
        private_key, certificate, additional = pkcs12.load_key_and_certificates(
            bytes(p12_bytes), password_bytes
        )
    except ValueError as e:
        if _looks_like_pfx(bytes(p12_bytes)):
            raise SriAuthenticationError(
                "Contraseña incorrecta para el certificado PKCS#12", "CERT_PASSWORD"
            ) from e
        raise SriCertificateParsingError(f"Contenedor PKCS#12 inválido: {e}") from e

    if private_key is None:
        raise SriCertificateError("El PKCS#12 no contiene clave privada")
    if certificate is None:
        raise SriCertificateError("El PKCS#12 no contiene certificado")
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise SriCertificateError(
            f"La clave privada debe ser RSA (recibido {type(private_key).__name__})"
        )
    if private_key.key_size < MIN_RSA_KEY_SIZE:
        raise SriCertificateError(
            f"Clave RSA de {private_key.key_size} bits; se requieren al menos {MIN_RSA_KEY_SIZE}"
        )

    check_validity(certificate, now)

    material = CertificateMaterial(
        private_key=private_key,
        certificate=certificate,
        chain=list(additional or []),
    )
    logger.info(
        f"Certificado cargado: CN={material.subject_common_name} "
        f"serie={material.serial_number} vence={material.not_after.date().isoformat()}"
    )
    return material


def load_p12_file(
    p12_path: Union[str, Path], password: Optional[str], now: Optional[datetime] = None
) -> CertificateMaterial:
    path = Path(p12_path)
    if not path.exists():
        raise SriCertificateError(f"Certificado no encontrado: {path.name}")
    return load_p12(path.read_bytes(), password, now)


class CertificateStore:
    """
    Material de certificado como recurso acotado a una firma.

    Uso:
        with CertificateStore(p12_bytes, password) as material:
            signed = signer.sign(xml, material)
    """

    def __init__(self, p12_bytes: bytes, password: Optional[str], now: Optional[datetime] = None):
        self._p12_bytes = p12_bytes
        self._password = password
        self._now = now
        self._material: Optional[CertificateMaterial] = None

    def load(self) -> CertificateMaterial:
        if self._material is None:
            self._material = load_p12(self._p12_bytes, self._password, self._now)
        return self._material

    def release(self) -> None:
        self._material = None

    def __enter__(self) -> CertificateMaterial:
        return self.load()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False
