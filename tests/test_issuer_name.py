from sri_client.issuer_name import (
    UANATACA_2016,
    UANATACA_2021,
    IssuerNamePolicy,
    LiteralOverridePolicy,
    default_issuer_policy,
    format_issuer_name,
)

ATTRS = [
    ("C", "EC"),
    ("L", "QUITO"),
    ("O", "CA PRUEBAS S.A."),
    ("OU", "ENTIDAD DE CERTIFICACION"),
    ("CN", "AUTORIDAD DE CERTIFICACION PRUEBAS"),
]


def test_format_uses_fixed_rdn_order():
    assert format_issuer_name(ATTRS) == (
        "CN=AUTORIDAD DE CERTIFICACION PRUEBAS,OU=ENTIDAD DE CERTIFICACION,"
        "O=CA PRUEBAS S.A.,L=QUITO,C=EC"
    )


def test_format_skips_missing_and_unknown_attributes():
    attrs = [("CN", "CA"), ("ST", "PICHINCHA"), ("C", "EC"), ("CN", "SEGUNDO")]

    assert format_issuer_name(attrs) == "CN=CA,C=EC"


def test_base_policy_has_no_overrides():
    assert IssuerNamePolicy().format(ATTRS) == format_issuer_name(ATTRS)


def test_default_policy_uanataca_literals():
    policy = default_issuer_policy()

    assert policy.format([("CN", "UANATACA CA2 2016"), ("C", "ES")]) == UANATACA_2016
    assert policy.format([("CN", "UANATACA CA2 2021"), ("C", "ES")]) == UANATACA_2021
    assert policy.format(ATTRS) == format_issuer_name(ATTRS)


def test_literal_override_rules_evaluated_in_order():
    policy = LiteralOverridePolicy([
        (("BANCO",), "CN=PRIMERA"),
        (("BANCO", "CENTRAL"), "CN=SEGUNDA"),
    ])

    assert policy.format([("CN", "BANCO CENTRAL DEL ECUADOR")]) == "CN=PRIMERA"
    assert policy.format([("CN", "OTRA CA")]) == "CN=OTRA CA"
