"""
Digests SHA-1 en base64 usados por la firma XAdES-BES del SRI.
"""
import base64
import hashlib
from typing import Optional

from lxml import etree

from .c14n import CanonicalFormEngine, XmlSource


def sha1_base64(data: bytes) -> str:
    """SHA-1 codificado en base64 (28 caracteres con padding)."""
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(f"sha1_base64 requiere bytes, recibido {type(data).__name__}")
    return base64.b64encode(hashlib.sha1(bytes(data)).digest()).decode("ascii")


class DigestChain:
    """Encadena canonicalización y digest para cada referencia de la firma."""

    def __init__(self, engine: Optional[CanonicalFormEngine] = None):
        self.engine = engine or CanonicalFormEngine()

    def document_digest(self, document: XmlSource) -> str:
        """Digest del documento con la transformación enveloped-signature."""
        return sha1_base64(self.engine.canonicalize_for_enveloped_digest(document))

    def element_digest(self, element: etree._Element) -> str:
        """Digest de un elemento (KeyInfo, SignedProperties) en su contexto final."""
        return sha1_base64(self.engine.canonicalize(element))

    @staticmethod
    def certificate_digest(cert_der: bytes) -> str:
        """CertDigest XAdES: SHA-1 del certificado DER."""
        return sha1_base64(cert_der)
