from datetime import datetime

from sri_client.diagnostics import diff_canonical, verify_signed_document
from sri_client.xades_signer import XadesSigner


def _sections(diffs):
    return {d.section: d for d in diffs}


def test_identical_signatures_have_no_diff(factura_xml, material, signing_time):
    signed = XadesSigner().sign(factura_xml, material, signing_time)

    diffs = _sections(diff_canonical(signed, signed))

    assert list(diffs) == ["documento", "SignedInfo", "KeyInfo", "SignedProperties"]
    assert all(d.identical for d in diffs.values())


def test_diff_locates_changed_section(factura_xml, material, signing_time):
    reference = XadesSigner().sign(factura_xml, material, signing_time)
    candidate = XadesSigner().sign(factura_xml, material, datetime(2024, 1, 15, 11, 30, 0))

    diffs = _sections(diff_canonical(reference, candidate))

    assert diffs["documento"].identical
    assert not diffs["SignedProperties"].identical
    assert "SigningTime" in diffs["SignedProperties"].diff
    assert diffs["SignedProperties"].diff.startswith("--- referencia/SignedProperties")


def test_diff_reports_document_changes(factura_xml, material, signing_time):
    reference = XadesSigner().sign(factura_xml, material, signing_time)
    changed = factura_xml.replace(b"Servicio de consultor", b"Servicio de auditor")
    candidate = XadesSigner().sign(changed, material, signing_time)

    diffs = _sections(diff_canonical(reference, candidate))

    assert not diffs["documento"].identical
    added = [line for line in diffs["documento"].diff.splitlines() if line.startswith("+")]
    assert any("<descripcion>Servicio de auditor" in line for line in added)


def test_diff_against_unsigned_candidate(factura_xml, material, signing_time):
    reference = XadesSigner().sign(factura_xml, material, signing_time)

    diffs = _sections(diff_canonical(reference, factura_xml))

    assert diffs["documento"].identical
    assert not diffs["SignedInfo"].identical


def test_verify_reports_missing_signature(factura_xml):
    report = verify_signed_document(factura_xml)

    assert not report.ok
    assert "ds:Signature" in report.errors[0]


def test_verify_detects_altered_signature_value(factura_xml, material, signing_time):
    signed = XadesSigner().sign(factura_xml, material, signing_time)
    other = XadesSigner().sign(factura_xml, material, datetime(2024, 2, 1, 9, 0, 0))

    start = other.index(b"<ds:SignatureValue")
    end = other.index(b"</ds:SignatureValue>")
    foreign_value = other[other.index(b">", start) + 1:end]
    s_start = signed.index(b"<ds:SignatureValue")
    s_end = signed.index(b"</ds:SignatureValue>")
    tampered = signed[:signed.index(b">", s_start) + 1] + foreign_value + signed[s_end:]

    report = verify_signed_document(tampered)

    assert all(r.ok for r in report.references)
    assert not report.signature_ok
    assert "SignatureValue no corresponde" in report.errors[0]
