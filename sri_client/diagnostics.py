"""
Diagnóstico de firmas: verificación local y comparación contra una firma de
referencia aceptada por el SRI.

El SRI solo responde "FIRMA INVALIDA" sin detalle; comparar la forma canónica
de cada sección contra un XML de referencia permite ubicar la diferencia
byte a byte.
"""
import base64
import binascii
import difflib
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding
from lxml import etree

from .c14n import DS_NS, CanonicalFormEngine
from .digest import sha1_base64
from .xades_signer import ENVELOPED_ALGORITHM, ETSI_NS

logger = logging.getLogger(__name__)

NS = {"ds": DS_NS, "etsi": ETSI_NS}

XmlInput = Union[bytes, str, etree._Element]


@dataclass
class ReferenceCheck:
    uri: str
    expected: str
    computed: Optional[str]

    @property
    def ok(self) -> bool:
        return self.computed is not None and self.computed == self.expected


@dataclass
class VerificationReport:
    references: List[ReferenceCheck] = field(default_factory=list)
    signature_ok: bool = False
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.signature_ok and not self.errors and all(r.ok for r in self.references)


@dataclass
class SectionDiff:
    section: str
    identical: bool
    diff: str = ""


def _parse(xml: XmlInput) -> etree._Element:
    if isinstance(xml, etree._Element):
        return xml
    if isinstance(xml, str):
        xml = xml.encode("utf-8")
    return etree.fromstring(xml)


def _find_by_id(root: etree._Element, element_id: str) -> Optional[etree._Element]:
    for elem in root.iter():
        if not isinstance(elem.tag, str):
            continue
        if elem.get("Id") == element_id or elem.get("id") == element_id:
            return elem
    return None


def _b64decode(text: Optional[str]) -> bytes:
    return base64.b64decode("".join((text or "").split()))


def verify_signed_document(
    signed: XmlInput, engine: Optional[CanonicalFormEngine] = None
) -> VerificationReport:
    """
    Recalcula los digests de las tres referencias y verifica SignatureValue
    con el certificado embebido en KeyInfo.
    """
    engine = engine or CanonicalFormEngine()
    report = VerificationReport()
    root = _parse(signed)

    signatures = root.findall(f"{{{DS_NS}}}Signature")
    if len(signatures) != 1:
        report.errors.append(f"se esperaba 1 ds:Signature hija de la raíz, hay {len(signatures)}")
        return report
    signature = signatures[0]

    signed_info = signature.find("ds:SignedInfo", NS)
    if signed_info is None:
        report.errors.append("falta ds:SignedInfo")
        return report

    for reference in signed_info.findall("ds:Reference", NS):
        uri = reference.get("URI") or ""
        expected = (reference.findtext("ds:DigestValue", default="", namespaces=NS) or "").strip()
        target = _find_by_id(root, uri.lstrip("#")) if uri.startswith("#") else None
        if target is None:
            report.errors.append(f"referencia {uri!r} no encontrada")
            report.references.append(ReferenceCheck(uri, expected, None))
            continue
        algorithms = [t.get("Algorithm") for t in reference.findall("ds:Transforms/ds:Transform", NS)]
        if ENVELOPED_ALGORITHM in algorithms:
            computed = sha1_base64(engine.canonicalize_for_enveloped_digest(target))
        else:
            computed = sha1_base64(engine.canonicalize(target))
        report.references.append(ReferenceCheck(uri, expected, computed))
        if computed != expected:
            logger.warning(f"Digest distinto para {uri}: esperado={expected} calculado={computed}")

    cert_text = signature.findtext("ds:KeyInfo/ds:X509Data/ds:X509Certificate", namespaces=NS)
    sig_text = signature.findtext("ds:SignatureValue", namespaces=NS)
    try:
        certificate = x509.load_der_x509_certificate(_b64decode(cert_text))
        certificate.public_key().verify(
            _b64decode(sig_text),
            engine.canonicalize(signed_info),
            padding.PKCS1v15(),
            hashes.SHA1(),
        )
        report.signature_ok = True
    except InvalidSignature:
        report.errors.append("SignatureValue no corresponde a SignedInfo")
    except (ValueError, binascii.Error) as e:
        report.errors.append(f"certificado o SignatureValue ilegible: {e}")

    return report


def _sections(root: etree._Element, engine: CanonicalFormEngine) -> dict:
    signature = root.find(f"{{{DS_NS}}}Signature")
    sections = {"documento": engine.canonicalize_for_enveloped_digest(root)}
    for name, path in (
        ("SignedInfo", "ds:SignedInfo"),
        ("KeyInfo", "ds:KeyInfo"),
        ("SignedProperties", "ds:Object/etsi:QualifyingProperties/etsi:SignedProperties"),
    ):
        elem = signature.find(path, NS) if signature is not None else None
        sections[name] = engine.canonicalize(elem) if elem is not None else b""
    return sections


def _split_tags(canonical: bytes) -> List[str]:
    # Una etiqueta por línea para que el diff sea legible
    return canonical.decode("utf-8").replace("><", ">\n<").splitlines(keepends=True)


def diff_canonical(
    reference: XmlInput, candidate: XmlInput, engine: Optional[CanonicalFormEngine] = None
) -> List[SectionDiff]:
    """
    Compara byte a byte la forma canónica de documento, SignedInfo, KeyInfo y
    SignedProperties entre un XML de referencia y uno generado.
    """
    engine = engine or CanonicalFormEngine()
    ref_sections = _sections(_parse(reference), engine)
    cand_sections = _sections(_parse(candidate), engine)

    result = []
    for name, ref_bytes in ref_sections.items():
        cand_bytes = cand_sections.get(name, b"")
        if ref_bytes == cand_bytes:
            result.append(SectionDiff(name, True))
            continue
        diff = "".join(difflib.unified_diff(
            _split_tags(ref_bytes),
            _split_tags(cand_bytes),
            fromfile=f"referencia/{name}",
            tofile=f"generado/{name}",
        ))
        result.append(SectionDiff(name, False, diff))
    return result
