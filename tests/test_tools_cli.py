from conftest import read_fixture
from sri_client.xades_signer import XadesSigner
from tools import clave_acceso_dv, compare_signatures
from tools.consulta_autorizacion_poll import parse_response_bytes

CLAVE = "1501202401179214673900110010010000000011234567810"


def test_clave_acceso_dv_subcommands(capsys):
    assert clave_acceso_dv.main(["dv", CLAVE[:48]]) == 0
    assert capsys.readouterr().out.strip() == "0"

    assert clave_acceso_dv.main(["check", CLAVE]) == 0
    assert clave_acceso_dv.main(["check", CLAVE[:48] + "3"]) == 1

    capsys.readouterr()
    assert clave_acceso_dv.main(["fix", CLAVE[:48] + "3"]) == 0
    assert capsys.readouterr().out.strip() == CLAVE


def test_clave_acceso_dv_parse(capsys):
    assert clave_acceso_dv.main(["parse", CLAVE]) == 0

    out = capsys.readouterr().out
    assert "tipo_comprobante=01 (FACTURA)" in out
    assert "numero=001-001-000000001" in out


def test_clave_acceso_dv_errors(capsys):
    assert clave_acceso_dv.main(["dv", "123"]) == 2
    assert "ERROR" in capsys.readouterr().err


def test_parse_response_bytes_handles_fault():
    parsed = parse_response_bytes(read_fixture("soap_fault.xml"))

    assert parsed["autorizaciones"] == []
    assert "SOAP Fault soap:Client" in parsed["error"]


def test_parse_response_bytes_authorized():
    parsed = parse_response_bytes(read_fixture("autorizacion_autorizado.xml"))

    assert parsed["autorizaciones"][0]["estado"] == "AUTORIZADO"


def test_compare_signatures_cli(tmp_path, capsys, factura_xml, material, signing_time):
    signed = XadesSigner().sign(factura_xml, material, signing_time)
    path = tmp_path / "firmado.xml"
    path.write_bytes(signed)

    assert compare_signatures.main([str(path), "--reference", str(path)]) == 0

    out = capsys.readouterr().out
    assert "SignatureValue: OK" in out
    assert "[=] SignedInfo" in out


def test_compare_signatures_cli_detects_tampering(tmp_path, capsys, factura_xml, material, signing_time):
    signed = XadesSigner().sign(factura_xml, material, signing_time)
    path = tmp_path / "alterado.xml"
    path.write_bytes(signed.replace(b"115.00", b"999.00"))

    assert compare_signatures.main([str(path)]) == 1
    assert "MAL #comprobante" in capsys.readouterr().out
