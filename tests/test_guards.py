from lxml import etree
import pytest

from sri_client.c14n import DS_NS
from sri_client.xades_signer import XadesSigner
from sri_minisender.guards import (
    assert_document_reference_matches_root_id,
    assert_reference_order,
    assert_signed_document,
    assert_single_signature_last_child,
)

NS = {"ds": DS_NS}


@pytest.fixture
def signed(factura_xml, material, signing_time) -> bytes:
    return XadesSigner().sign(factura_xml, material, signing_time)


def _mutate(signed: bytes, fn) -> bytes:
    root = etree.fromstring(signed)
    fn(root)
    return etree.tostring(root)


def test_signed_document_passes_all_guards(signed):
    assert_signed_document(signed, context="ok")


def test_signature_not_last_child(signed):
    def move(root):
        etree.SubElement(root, "extra")

    with pytest.raises(RuntimeError, match="último hijo"):
        assert_single_signature_last_child(_mutate(signed, move))


def test_duplicate_signature(signed):
    def dup(root):
        root.append(etree.fromstring(etree.tostring(root.find("ds:Signature", NS))))

    with pytest.raises(RuntimeError, match="exactamente 1"):
        assert_single_signature_last_child(_mutate(signed, dup))


def test_invalid_xml_is_reported():
    with pytest.raises(RuntimeError, match=r"\[sri_guard\] XML inválido"):
        assert_signed_document(b"<factura>", context="roto")


def test_reference_order_swapped(signed):
    def swap(root):
        signed_info = root.find("ds:Signature/ds:SignedInfo", NS)
        refs = signed_info.findall("ds:Reference", NS)
        signed_info.remove(refs[0])
        signed_info.append(refs[0])

    with pytest.raises(RuntimeError, match="SignedProperties"):
        assert_reference_order(_mutate(signed, swap))


def test_key_info_reference_must_not_have_transforms(signed):
    def add_transforms(root):
        ref = root.findall("ds:Signature/ds:SignedInfo/ds:Reference", NS)[1]
        ref.insert(0, etree.Element(f"{{{DS_NS}}}Transforms"))

    with pytest.raises(RuntimeError, match="KeyInfo no debe tener Transforms"):
        assert_reference_order(_mutate(signed, add_transforms))


def test_document_reference_must_match_root_id(signed):
    def rename(root):
        root.set("id", "otro")

    with pytest.raises(RuntimeError, match="no coincide con id de la raíz"):
        assert_document_reference_matches_root_id(_mutate(signed, rename), context="clave=x")
