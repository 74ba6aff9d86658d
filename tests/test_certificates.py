from datetime import timedelta

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from conftest import NOW, P12_PASSWORD, make_certificate, make_p12
from sri_client.certificates import (
    CertificateStore,
    int_to_bytes,
    load_p12,
    load_p12_file,
    wrap_base64,
)
from sri_client.exceptions import (
    SriAuthenticationError,
    SriCertificateError,
    SriCertificateNotYetValidError,
    SriCertificateParsingError,
    SriExpiredCertificateError,
)


def test_load_p12_extracts_key_and_certificate(p12_bytes, rsa_key, certificate):
    material = load_p12(p12_bytes, P12_PASSWORD, now=NOW)

    assert material.serial_number == certificate.serial_number
    assert material.certificate_der == certificate.public_bytes(serialization.Encoding.DER)
    assert material.exponent_bytes == b"\x01\x00\x01"
    assert len(material.modulus_bytes) == 256
    assert material.modulus_bytes == rsa_key.public_key().public_numbers().n.to_bytes(256, "big")
    assert material.subject_common_name == "COMERCIAL ANDINA S.A."
    assert material.ruc == "1792146739001"
    assert ("CN", "AUTORIDAD DE CERTIFICACION PRUEBAS") in material.issuer_attributes
    assert material.certificate_pem.startswith("-----BEGIN CERTIFICATE-----")


def test_wrong_password_is_authentication_error(p12_bytes):
    with pytest.raises(SriAuthenticationError, match="Contraseña incorrecta"):
        load_p12(p12_bytes, "otra-clave", now=NOW)


def test_corrupt_container_is_parsing_error():
    with pytest.raises(SriCertificateParsingError):
        load_p12(b"esto no es un pkcs12", P12_PASSWORD, now=NOW)


def test_empty_container_is_parsing_error():
    with pytest.raises(SriCertificateParsingError, match="vacío"):
        load_p12(b"", P12_PASSWORD, now=NOW)


def test_expired_certificate(rsa_key):
    cert = make_certificate(rsa_key, not_before=NOW - timedelta(days=400), not_after=NOW - timedelta(days=1))

    with pytest.raises(SriExpiredCertificateError, match="expirado"):
        load_p12(make_p12(rsa_key, cert), P12_PASSWORD, now=NOW)


def test_not_yet_valid_certificate(rsa_key):
    cert = make_certificate(rsa_key, not_before=NOW + timedelta(days=1), not_after=NOW + timedelta(days=400))

    with pytest.raises(SriCertificateNotYetValidError):
        load_p12(make_p12(rsa_key, cert), P12_PASSWORD, now=NOW)


def test_certificate_errors_share_base_class(rsa_key):
    cert = make_certificate(rsa_key, not_before=NOW - timedelta(days=400), not_after=NOW - timedelta(days=1))

    with pytest.raises(SriCertificateError):
        load_p12(make_p12(rsa_key, cert), P12_PASSWORD, now=NOW)


def test_non_rsa_key_is_rejected():
    key = ec.generate_private_key(ec.SECP256R1())
    cert = make_certificate(key)

    with pytest.raises(SriCertificateError, match="RSA"):
        load_p12(make_p12(key, cert), P12_PASSWORD, now=NOW)


def test_short_rsa_key_is_rejected():
    key = rsa.generate_private_key(public_exponent=65537, key_size=1024)
    cert = make_certificate(key)

    with pytest.raises(SriCertificateError, match="2048"):
        load_p12(make_p12(key, cert), P12_PASSWORD, now=NOW)


def test_load_p12_file(tmp_path, p12_bytes):
    path = tmp_path / "firma.p12"
    path.write_bytes(p12_bytes)

    assert load_p12_file(path, P12_PASSWORD, now=NOW).serial_number > 0

    with pytest.raises(SriCertificateError, match="no encontrado"):
        load_p12_file(tmp_path / "falta.p12", P12_PASSWORD, now=NOW)


def test_certificate_store_releases_material(p12_bytes):
    store = CertificateStore(p12_bytes, P12_PASSWORD, now=NOW)

    with store as material:
        assert material.private_key is not None
        assert store.load() is material

    assert store._material is None


def test_int_to_bytes_is_minimal():
    assert int_to_bytes(0) == b"\x00"
    assert int_to_bytes(65537) == b"\x01\x00\x01"
    assert int_to_bytes(0x80) == b"\x80"
    with pytest.raises(ValueError):
        int_to_bytes(-1)


def test_wrap_base64_line_width():
    wrapped = wrap_base64(b"\x00" * 201)
    lines = wrapped.split("\n")

    assert all(len(line) <= 76 for line in lines)
    assert len(lines[0]) == 76
    assert "".join(lines) == "A" * 268
