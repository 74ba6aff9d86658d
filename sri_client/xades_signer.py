"""
Firma XAdES-BES enveloped para comprobantes electrónicos SRI

Estructura generada (último hijo del elemento raíz del comprobante):

    ds:Signature
      ds:SignedInfo            C14N 1.0 + RSA-SHA1, 3 referencias en orden fijo:
                               SignedProperties, KeyInfo, comprobante
      ds:SignatureValue
      ds:KeyInfo               X509Certificate + RSAKeyValue
      ds:Object
        etsi:QualifyingProperties
          etsi:SignedProperties  SigningTime, SigningCertificate, DataObjectFormat

Los digests de SignedProperties y KeyInfo se calculan con los elementos ya
insertados en el árbol final, para que los namespaces heredados coincidan
con los que verá el validador.
"""
from __future__ import annotations

import copy
import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from lxml import etree

from .c14n import DS_NS, CanonicalFormEngine
from .certificates import CertificateMaterial, wrap_base64
from .digest import DigestChain
from .exceptions import SriCertificateError, SriSignatureError, SriValidationError
from .issuer_name import IssuerNamePolicy, default_issuer_policy

logger = logging.getLogger(__name__)

ETSI_NS = "http://uri.etsi.org/01903/v1.3.2#"
NSMAP = {"ds": DS_NS, "etsi": ETSI_NS}

C14N_ALGORITHM = "http://www.w3.org/TR/2001/REC-xml-c14n-20010315"
RSA_SHA1_ALGORITHM = "http://www.w3.org/2000/09/xmldsig#rsa-sha1"
SHA1_ALGORITHM = "http://www.w3.org/2000/09/xmldsig#sha1"
ENVELOPED_ALGORITHM = "http://www.w3.org/2000/09/xmldsig#enveloped-signature"
SIGNED_PROPERTIES_TYPE = "http://uri.etsi.org/01903#SignedProperties"

ROOT_ID = "comprobante"
DEFAULT_DESCRIPTION = "contenido comprobante"
MIME_TYPE = "text/xml"

# Hora de Ecuador continental (sin horario de verano)
ECUADOR_TZ = timezone(timedelta(hours=-5))


def ds(tag: str) -> str:
    return f"{{{DS_NS}}}{tag}"


def etsi(tag: str) -> str:
    return f"{{{ETSI_NS}}}{tag}"


def format_signing_time(value: Optional[datetime] = None) -> str:
    """Hora de firma ISO 8601 con offset -05:00 (naive se asume hora local de Ecuador)."""
    if value is None:
        value = datetime.now(ECUADOR_TZ)
    elif value.tzinfo is None:
        value = value.replace(tzinfo=ECUADOR_TZ)
    return value.astimezone(ECUADOR_TZ).replace(microsecond=0).isoformat()


@dataclass
class SignatureContext:
    """Ids y digests de una firma; se crea de nuevo para cada documento."""
    signing_time: str
    signature_id: str
    signed_info_id: str
    signed_properties_id: str
    signed_properties_ref_id: str
    certificate_id: str
    reference_id: str
    signature_value_id: str
    object_id: str
    document_uri: str = f"#{ROOT_ID}"
    document_digest: str = ""
    key_info_digest: str = ""
    signed_properties_digest: str = ""
    signature_value: str = field(default="", repr=False)

    @classmethod
    def create(cls, document_digest: str, signing_time: str, seed: Optional[str] = None) -> "SignatureContext":
        """
        Ids derivados de (digest del documento, hora de firma): mismos datos
        de entrada producen la misma firma byte a byte.
        """
        seed = seed or hashlib.sha1(f"{document_digest}|{signing_time}".encode("utf-8")).hexdigest()
        n = [int(seed[i:i + 6], 16) % 1000000 for i in range(0, 36, 6)]
        signature_id = f"Signature{n[0]}"
        return cls(
            signing_time=signing_time,
            signature_id=signature_id,
            signed_info_id=f"Signature-SignedInfo{n[1]}",
            signed_properties_id=f"{signature_id}-SignedProperties{n[2]}",
            signed_properties_ref_id=f"SignedPropertiesID{n[2]}",
            certificate_id=f"Certificate{n[3]}",
            reference_id=f"Reference-ID-{n[4]}",
            signature_value_id=f"SignatureValue{n[5]}",
            object_id=f"{signature_id}-Object{n[1]}",
            document_digest=document_digest,
        )


def load_document(document: Union[bytes, str, etree._Element, etree._ElementTree]) -> etree._Element:
    """Copia propia del documento a firmar (el árbol del llamador no se modifica)."""
    if isinstance(document, etree._ElementTree):
        return copy.deepcopy(document.getroot())
    if isinstance(document, etree._Element):
        root = copy.deepcopy(document)
        root.tail = None
        return root
    if isinstance(document, str):
        document = document.encode("utf-8")
    try:
        parser = etree.XMLParser(remove_blank_text=False, resolve_entities=False)
        return etree.fromstring(document, parser)
    except etree.XMLSyntaxError as e:
        raise SriValidationError("XML del comprobante mal formado", [str(e)]) from e


class XadesSigner:
    """Ensambla la firma XAdES-BES sobre un comprobante."""

    def __init__(
        self,
        engine: Optional[CanonicalFormEngine] = None,
        issuer_policy: Optional[IssuerNamePolicy] = None,
        description: str = DEFAULT_DESCRIPTION,
    ):
        self.engine = engine or CanonicalFormEngine()
        self.digests = DigestChain(self.engine)
        self.issuer_policy = issuer_policy or default_issuer_policy()
        self.description = description

    def sign(
        self,
        document: Union[bytes, str, etree._Element, etree._ElementTree],
        material: CertificateMaterial,
        signing_time: Optional[datetime] = None,
    ) -> bytes:
        """
        Firma el comprobante y retorna el XML firmado (UTF-8 con declaración).

        Raises:
            SriValidationError: raíz sin id="comprobante" o sin version
            SriCertificateError: no hay material de certificado
            SriSignatureError: falla al firmar con la clave privada
        """
        signed, _ = self.sign_with_context(document, material, signing_time)
        return signed

    def sign_with_context(
        self,
        document: Union[bytes, str, etree._Element, etree._ElementTree],
        material: CertificateMaterial,
        signing_time: Optional[datetime] = None,
    ) -> Tuple[bytes, SignatureContext]:
        if material is None or material.private_key is None or material.certificate is None:
            raise SriCertificateError("Material de certificado no disponible para firmar")

        root = load_document(document)
        self._check_root(root)
        self._remove_existing_signatures(root)

        document_digest = self.digests.document_digest(root)
        ctx = SignatureContext.create(document_digest, format_signing_time(signing_time))
        ctx.document_uri = f"#{root.get('id')}"

        signature = etree.SubElement(root, ds("Signature"), nsmap=NSMAP)
        signature.set("Id", ctx.signature_id)
        signed_info = etree.SubElement(signature, ds("SignedInfo"))
        signed_info.set("Id", ctx.signed_info_id)
        signature_value = etree.SubElement(signature, ds("SignatureValue"))
        signature_value.set("Id", ctx.signature_value_id)

        key_info = self._build_key_info(signature, ctx, material)
        signed_properties = self._build_signed_properties(signature, ctx, material)

        ctx.signed_properties_digest = self.digests.element_digest(signed_properties)
        ctx.key_info_digest = self.digests.element_digest(key_info)
        self._build_signed_info(signed_info, ctx)

        canonical_signed_info = self.engine.canonicalize(signed_info)
        try:
            raw_signature = material.private_key.sign(
                canonical_signed_info, padding.PKCS1v15(), hashes.SHA1()
            )
        except Exception as e:
            raise SriSignatureError(f"Error al firmar SignedInfo: {e}") from e
        ctx.signature_value = wrap_base64(raw_signature)
        signature_value.text = ctx.signature_value

        logger.debug(
            f"Firma {ctx.signature_id}: doc={ctx.document_digest} "
            f"keyinfo={ctx.key_info_digest} props={ctx.signed_properties_digest}"
        )
        signed = etree.tostring(root.getroottree(), xml_declaration=True, encoding="UTF-8")
        return signed, ctx

    def _check_root(self, root: etree._Element) -> None:
        errors = []
        if root.get("id") != ROOT_ID:
            errors.append(f"el elemento raíz debe tener id=\"{ROOT_ID}\" (recibido {root.get('id')!r})")
        if not root.get("version"):
            errors.append("el elemento raíz debe tener atributo version")
        if errors:
            raise SriValidationError("Comprobante no firmable", errors)

    def _remove_existing_signatures(self, root: etree._Element) -> None:
        for old in root.findall(ds("Signature")):
            root.remove(old)
            logger.warning("Firma existente eliminada antes de firmar")

    def _build_key_info(
        self, signature: etree._Element, ctx: SignatureContext, material: CertificateMaterial
    ) -> etree._Element:
        key_info = etree.SubElement(signature, ds("KeyInfo"))
        key_info.set("Id", ctx.certificate_id)
        x509_data = etree.SubElement(key_info, ds("X509Data"))
        etree.SubElement(x509_data, ds("X509Certificate")).text = wrap_base64(material.certificate_der)
        key_value = etree.SubElement(key_info, ds("KeyValue"))
        rsa_key_value = etree.SubElement(key_value, ds("RSAKeyValue"))
        etree.SubElement(rsa_key_value, ds("Modulus")).text = wrap_base64(material.modulus_bytes)
        etree.SubElement(rsa_key_value, ds("Exponent")).text = wrap_base64(material.exponent_bytes)
        return key_info

    def _build_signed_properties(
        self, signature: etree._Element, ctx: SignatureContext, material: CertificateMaterial
    ) -> etree._Element:
        obj = etree.SubElement(signature, ds("Object"))
        obj.set("Id", ctx.object_id)
        qualifying = etree.SubElement(obj, etsi("QualifyingProperties"))
        qualifying.set("Target", f"#{ctx.signature_id}")

        props = etree.SubElement(qualifying, etsi("SignedProperties"))
        props.set("Id", ctx.signed_properties_id)

        sig_props = etree.SubElement(props, etsi("SignedSignatureProperties"))
        etree.SubElement(sig_props, etsi("SigningTime")).text = ctx.signing_time
        signing_cert = etree.SubElement(sig_props, etsi("SigningCertificate"))
        cert = etree.SubElement(signing_cert, etsi("Cert"))
        cert_digest = etree.SubElement(cert, etsi("CertDigest"))
        etree.SubElement(cert_digest, ds("DigestMethod")).set("Algorithm", SHA1_ALGORITHM)
        etree.SubElement(cert_digest, ds("DigestValue")).text = DigestChain.certificate_digest(
            material.certificate_der
        )
        issuer_serial = etree.SubElement(cert, etsi("IssuerSerial"))
        etree.SubElement(issuer_serial, ds("X509IssuerName")).text = self.issuer_policy.format(
            material.issuer_attributes
        )
        etree.SubElement(issuer_serial, ds("X509SerialNumber")).text = str(material.serial_number)

        data_props = etree.SubElement(props, etsi("SignedDataObjectProperties"))
        data_format = etree.SubElement(data_props, etsi("DataObjectFormat"))
        data_format.set("ObjectReference", f"#{ctx.reference_id}")
        etree.SubElement(data_format, etsi("Description")).text = self.description
        etree.SubElement(data_format, etsi("MimeType")).text = MIME_TYPE
        return props

    def _build_signed_info(self, signed_info: etree._Element, ctx: SignatureContext) -> None:
        etree.SubElement(signed_info, ds("CanonicalizationMethod")).set("Algorithm", C14N_ALGORITHM)
        etree.SubElement(signed_info, ds("SignatureMethod")).set("Algorithm", RSA_SHA1_ALGORITHM)

        self._add_reference(
            signed_info,
            uri=f"#{ctx.signed_properties_id}",
            digest=ctx.signed_properties_digest,
            ref_id=ctx.signed_properties_ref_id,
            ref_type=SIGNED_PROPERTIES_TYPE,
            transform=C14N_ALGORITHM,
        )
        # KeyInfo: sin elemento Transforms (un Transforms vacío invalida el esquema)
        self._add_reference(signed_info, uri=f"#{ctx.certificate_id}", digest=ctx.key_info_digest)
        self._add_reference(
            signed_info,
            uri=ctx.document_uri,
            digest=ctx.document_digest,
            ref_id=ctx.reference_id,
            transform=ENVELOPED_ALGORITHM,
        )

    @staticmethod
    def _add_reference(
        signed_info: etree._Element,
        uri: str,
        digest: str,
        ref_id: Optional[str] = None,
        ref_type: Optional[str] = None,
        transform: Optional[str] = None,
    ) -> etree._Element:
        reference = etree.SubElement(signed_info, ds("Reference"))
        if ref_id:
            reference.set("Id", ref_id)
        if ref_type:
            reference.set("Type", ref_type)
        reference.set("URI", uri)
        if transform:
            transforms = etree.SubElement(reference, ds("Transforms"))
            etree.SubElement(transforms, ds("Transform")).set("Algorithm", transform)
        etree.SubElement(reference, ds("DigestMethod")).set("Algorithm", SHA1_ALGORITHM)
        etree.SubElement(reference, ds("DigestValue")).text = digest
        return reference


def sign_comprobante(
    xml: Union[bytes, str],
    material: CertificateMaterial,
    signing_time: Optional[datetime] = None,
) -> bytes:
    """Atajo con la configuración por defecto."""
    return XadesSigner().sign(xml, material, signing_time)
