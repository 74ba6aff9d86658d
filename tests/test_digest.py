import base64
import hashlib

import pytest
from lxml import etree

from sri_client.digest import DigestChain, sha1_base64


def test_sha1_base64_known_values():
    assert sha1_base64(b"") == "2jmj7l5rSw0yVb/vlWAYkK/YBwk="
    assert sha1_base64(b"abc") == "qZk+NkcGgWq6PiVxeFDCbJzQ2J0="
    assert len(sha1_base64(b"x" * 1000)) == 28


def test_sha1_base64_requires_bytes():
    with pytest.raises(TypeError):
        sha1_base64("abc")


def test_document_digest_ignores_signature():
    chain = DigestChain()
    unsigned = b'<factura id="comprobante" version="1.0.0"><a>1</a></factura>'
    signed = (
        b'<factura id="comprobante" version="1.0.0"><a>1</a>'
        b'<ds:Signature xmlns:ds="http://www.w3.org/2000/09/xmldsig#"><ds:SignatureValue>x</ds:SignatureValue>'
        b'</ds:Signature></factura>'
    )

    assert chain.document_digest(unsigned) == chain.document_digest(signed)


def test_element_digest_uses_canonical_form_in_context():
    root = etree.fromstring(b'<r xmlns:ds="urn:ds"><ds:k Id="K">v</ds:k></r>')
    expected = base64.b64encode(hashlib.sha1(b'<ds:k xmlns:ds="urn:ds" Id="K">v</ds:k>').digest()).decode()

    assert DigestChain().element_digest(root[0]) == expected


def test_certificate_digest_is_sha1_of_der(material):
    der = material.certificate_der

    assert DigestChain.certificate_digest(der) == base64.b64encode(hashlib.sha1(der).digest()).decode()


def test_digest_changes_on_any_single_byte_change():
    data = b'<factura id="comprobante">100.00</factura>'
    original = sha1_base64(data)

    for i in range(len(data)):
        changed = data[:i] + bytes([data[i] ^ 0x01]) + data[i + 1:]
        assert sha1_base64(changed) != original
