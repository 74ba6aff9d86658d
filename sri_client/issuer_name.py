"""
Formato del X509IssuerName para la propiedad SigningCertificate.

El SRI compara el nombre del emisor como texto, por lo que el orden de los
RDN y algunos nombres de CA concretos deben coincidir literalmente.
"""
from typing import Dict, List, Optional, Sequence, Tuple

RDN_ORDER = ("CN", "OU", "O", "L", "C")

UANATACA_2016 = (
    "CN=UANATACA CA2 2016,OU=TSP-UANATACA,O=UANATACA S.A.,"
    "L=Barcelona (see current address at www.uanataca.com/address),C=ES"
)
UANATACA_2021 = "CN=UANATACA CA2 2021,OU=TSP-UANATACA,O=UANATACA S.A.,L=Barcelona,C=ES"


def format_issuer_name(
    attributes: Sequence[Tuple[str, str]], order: Sequence[str] = RDN_ORDER
) -> str:
    """
    ``CN=...,OU=...,O=...,L=...,C=...`` con los atributos presentes en ``order``.

    Si hay varios valores para un mismo atributo se usa el primero.
    """
    first: Dict[str, str] = {}
    for name, value in attributes:
        first.setdefault(name, value)
    return ",".join(f"{name}={first[name]}" for name in order if name in first)


class IssuerNamePolicy:
    """Política base: orden fijo de RDN, sin casos especiales."""

    order: Sequence[str] = RDN_ORDER

    def override(self, attributes: Sequence[Tuple[str, str]]) -> Optional[str]:
        return None

    def format(self, attributes: Sequence[Tuple[str, str]]) -> str:
        literal = self.override(attributes)
        if literal is not None:
            return literal
        return format_issuer_name(attributes, self.order)


class LiteralOverridePolicy(IssuerNamePolicy):
    """
    Reemplaza el nombre completo del emisor cuando el CN contiene todas las
    marcas de alguna regla.

    Args:
        rules: lista de (marcas_en_cn, nombre_literal), evaluadas en orden
    """

    def __init__(self, rules: List[Tuple[Tuple[str, ...], str]]):
        self.rules = list(rules)

    def override(self, attributes: Sequence[Tuple[str, str]]) -> Optional[str]:
        cn = next((value for name, value in attributes if name == "CN"), "")
        for markers, literal in self.rules:
            if all(marker in cn for marker in markers):
                return literal
        return None


def default_issuer_policy() -> IssuerNamePolicy:
    """Política por defecto con los emisores UANATACA CA2 conocidos."""
    return LiteralOverridePolicy([
        (("UANATACA CA2", "2016"), UANATACA_2016),
        (("UANATACA CA2", "2021"), UANATACA_2021),
    ])
