"""
Firma de referencia conocida como buena.

firma_regresion.p12 (RSA 2048 autofirmado, serie 0x1A2B3C4D) y
factura_firmada_regresion.xml quedan fijos en el repositorio: cualquier
cambio en la forma canónica, los digests, los ids o la serialización rompe
la comparación byte a byte.
"""
from datetime import datetime, timezone

import pytest

from conftest import P12_PASSWORD, read_fixture
from sri_client.certificates import load_p12
from sri_client.diagnostics import diff_canonical, verify_signed_document
from sri_client.xades_signer import XadesSigner

# Dentro de la vigencia del certificado de referencia
VIGENCIA = datetime(2030, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(scope="module")
def material_regresion():
    return load_p12(read_fixture("firma_regresion.p12"), P12_PASSWORD, now=VIGENCIA)


@pytest.fixture
def referencia() -> bytes:
    return read_fixture("factura_firmada_regresion.xml")


def test_signature_matches_reference_bytes(factura_xml, material_regresion, signing_time, referencia):
    signed = XadesSigner().sign(factura_xml, material_regresion, signing_time)

    assert signed == referencia


def test_reference_sections_have_no_canonical_diff(factura_xml, material_regresion, signing_time, referencia):
    signed = XadesSigner().sign(factura_xml, material_regresion, signing_time)

    diffs = diff_canonical(referencia, signed)

    assert [d.section for d in diffs] == ["documento", "SignedInfo", "KeyInfo", "SignedProperties"]
    assert [d.diff for d in diffs if not d.identical] == []


def test_reference_signature_verifies(referencia):
    report = verify_signed_document(referencia)

    assert report.ok, report.errors
    assert [r.uri for r in report.references] == [
        "#Signature621272-SignedProperties961995",
        "#Certificate439591",
        "#comprobante",
    ]


def test_reference_material(material_regresion):
    assert material_regresion.serial_number == 0x1A2B3C4D
    assert material_regresion.subject_common_name == "FIRMA REGRESION PRUEBAS"
