import pytest
from lxml import etree

from sri_client.clave_acceso import ClaveAccesoGenerator
from sri_client.document import (
    ensure_clave_acceso,
    find_text,
    params_from_document,
    read_clave_acceso,
    stamp_clave_acceso,
)
from sri_client.exceptions import SriValidationError

CLAVE = "1501202401179214673900110010010000000011234567810"


def test_params_from_document(factura_xml):
    params = params_from_document(etree.fromstring(factura_xml))

    assert params.fecha_emision == "15/01/2024"
    assert params.tipo_comprobante == "01"
    assert params.ruc == "1792146739001"
    assert params.ambiente == "1"
    assert (params.establecimiento, params.punto_emision, params.secuencial) == ("001", "001", "000000001")
    assert params.tipo_emision == "1"


def test_ensure_clave_acceso_generates_and_stamps(factura_xml):
    root = etree.fromstring(factura_xml)

    clave = ensure_clave_acceso(root, ClaveAccesoGenerator(nonce_source=lambda: "12345678"))

    assert clave == CLAVE
    assert read_clave_acceso(root) == CLAVE


def test_find_text_is_relative_to_node(factura_xml):
    root = etree.fromstring(factura_xml)
    detalle = root.find("detalles/detalle")

    assert find_text(detalle, "codigo") == "2"
    assert find_text(detalle, "ruc") is None


def test_stamp_requires_existing_element():
    root = etree.fromstring(b"<factura><infoTributaria><ruc>1792146739001</ruc></infoTributaria></factura>")

    with pytest.raises(SriValidationError, match="claveAcceso"):
        stamp_clave_acceso(root, CLAVE)


def test_stamp_rejects_invalid_clave(factura_xml):
    with pytest.raises(SriValidationError):
        stamp_clave_acceso(etree.fromstring(factura_xml), CLAVE[:48] + "4")


def test_missing_info_tributaria():
    with pytest.raises(SriValidationError, match="infoTributaria"):
        params_from_document(etree.fromstring(b"<factura/>"))
