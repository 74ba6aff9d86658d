from __future__ import annotations

from typing import List

from lxml import etree

from sri_client.xades_signer import (
    C14N_ALGORITHM,
    DS_NS,
    ENVELOPED_ALGORITHM,
    ETSI_NS,
    SIGNED_PROPERTIES_TYPE,
)

NS = {"ds": DS_NS, "etsi": ETSI_NS}


def _local(tag: str) -> str:
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def _parse_xml(xml_bytes: bytes, *, context: str = "") -> etree._Element:
    try:
        return etree.fromstring(xml_bytes)
    except Exception as e:
        raise RuntimeError(f"[sri_guard] XML inválido (parse). {context} err={e}")


def _single_signature(root: etree._Element, *, context: str = "") -> etree._Element:
    signatures = root.findall(".//ds:Signature", NS)
    if len(signatures) != 1:
        raise RuntimeError(
            f"[sri_guard] Se esperaba exactamente 1 ds:Signature, hay {len(signatures)}. {context}"
        )
    return signatures[0]


def assert_single_signature_last_child(xml_bytes: bytes, *, context: str = "") -> None:
    """
    Guardrail (no muta el XML):
      - exactamente una ds:Signature en todo el documento
      - es hija directa y último elemento de la raíz
    """
    root = _parse_xml(xml_bytes, context=context)
    signature = _single_signature(root, context=context)
    if signature.getparent() is not root:
        raise RuntimeError(f"[sri_guard] ds:Signature no es hija directa de la raíz. {context}")
    children = [c for c in root if isinstance(c.tag, str)]
    if children[-1] is not signature:
        raise RuntimeError(
            "[sri_guard] ds:Signature no es el último hijo de la raíz.\n"
            f"  {context}\n"
            f"  hijos: {[_local(c.tag) for c in children]}"
        )


def assert_reference_order(xml_bytes: bytes, *, context: str = "") -> None:
    """
    SignedInfo debe tener 3 referencias en orden: SignedProperties, KeyInfo, comprobante.
    La referencia a KeyInfo no lleva elemento Transforms.
    """
    root = _parse_xml(xml_bytes, context=context)
    signature = _single_signature(root, context=context)
    references = signature.findall("ds:SignedInfo/ds:Reference", NS)
    if len(references) != 3:
        raise RuntimeError(f"[sri_guard] Se esperaban 3 ds:Reference, hay {len(references)}. {context}")

    props_ref, key_info_ref, doc_ref = references
    if props_ref.get("Type") != SIGNED_PROPERTIES_TYPE:
        raise RuntimeError(f"[sri_guard] La 1ra referencia no es SignedProperties. {context}")

    key_info = signature.find("ds:KeyInfo", NS)
    key_info_id = key_info.get("Id") if key_info is not None else None
    if not key_info_id or key_info_ref.get("URI") != f"#{key_info_id}":
        raise RuntimeError(
            f"[sri_guard] La 2da referencia no apunta a KeyInfo "
            f"(URI={key_info_ref.get('URI')!r}, KeyInfo Id={key_info_id!r}). {context}"
        )
    if key_info_ref.find("ds:Transforms", NS) is not None:
        raise RuntimeError(f"[sri_guard] La referencia a KeyInfo no debe tener Transforms. {context}")

    props_transforms: List[str] = [
        t.get("Algorithm") for t in props_ref.findall("ds:Transforms/ds:Transform", NS)
    ]
    if props_transforms != [C14N_ALGORITHM]:
        raise RuntimeError(f"[sri_guard] Transform de SignedProperties inválido: {props_transforms}. {context}")

    doc_transforms = [t.get("Algorithm") for t in doc_ref.findall("ds:Transforms/ds:Transform", NS)]
    if doc_transforms != [ENVELOPED_ALGORITHM]:
        raise RuntimeError(f"[sri_guard] Transform del comprobante inválido: {doc_transforms}. {context}")


def assert_document_reference_matches_root_id(xml_bytes: bytes, *, context: str = "") -> None:
    """URI de la referencia al comprobante == #<id de la raíz> y DataObjectFormat apunta a ella."""
    root = _parse_xml(xml_bytes, context=context)
    root_id = (root.get("id") or "").strip()
    if not root_id:
        raise RuntimeError(f"[sri_guard] La raíz no tiene atributo id. {context}")

    signature = _single_signature(root, context=context)
    references = signature.findall("ds:SignedInfo/ds:Reference", NS)
    doc_ref = references[-1] if references else None
    if doc_ref is None or doc_ref.get("URI") != f"#{root_id}":
        uri = doc_ref.get("URI") if doc_ref is not None else None
        raise RuntimeError(f"[sri_guard] Reference URI={uri!r} no coincide con id de la raíz {root_id!r}. {context}")

    data_format = signature.find(".//etsi:DataObjectFormat", NS)
    doc_ref_id = doc_ref.get("Id")
    if data_format is None or data_format.get("ObjectReference") != f"#{doc_ref_id}":
        raise RuntimeError(
            f"[sri_guard] DataObjectFormat.ObjectReference no apunta a la referencia del comprobante "
            f"({doc_ref_id!r}). {context}"
        )


def assert_signed_document(xml_bytes: bytes, *, context: str = "") -> None:
    """Todos los guardrails estructurales de la firma."""
    assert_single_signature_last_child(xml_bytes, context=context)
    assert_reference_order(xml_bytes, context=context)
    assert_document_reference_matches_root_id(xml_bytes, context=context)
