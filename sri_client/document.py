"""
Helpers sobre el XML del comprobante: lectura de infoTributaria y
estampado de la clave de acceso.
"""
import logging
from typing import Optional

from lxml import etree

from .clave_acceso import ClaveAccesoGenerator, ClaveAccesoParams
from .exceptions import SriValidationError

logger = logging.getLogger(__name__)


def find_text(root: etree._Element, local_name: str) -> Optional[str]:
    """Primer texto de un elemento por local-name (ignora namespaces)."""
    nodes = root.xpath(f'descendant-or-self::*[local-name()="{local_name}"]')
    if nodes and nodes[0].text is not None:
        return nodes[0].text.strip()
    return None


def _info_tributaria(root: etree._Element) -> etree._Element:
    nodes = root.xpath('descendant-or-self::*[local-name()="infoTributaria"]')
    if not nodes:
        raise SriValidationError("Comprobante sin infoTributaria", ["falta el elemento infoTributaria"])
    return nodes[0]


def read_clave_acceso(root: etree._Element) -> Optional[str]:
    return find_text(_info_tributaria(root), "claveAcceso") or None


def params_from_document(root: etree._Element) -> ClaveAccesoParams:
    """
    Arma los parámetros de la clave de acceso a partir de infoTributaria y
    de la fechaEmision del bloque info* del comprobante.
    """
    info = _info_tributaria(root)
    fields = {
        name: find_text(info, name)
        for name in ("ambiente", "tipoEmision", "ruc", "codDoc", "estab", "ptoEmi", "secuencial")
    }
    fecha = find_text(root, "fechaEmision")

    missing = [name for name, value in fields.items() if not value]
    if not fecha:
        missing.append("fechaEmision")
    if missing:
        raise SriValidationError(
            "Comprobante incompleto para generar clave de acceso",
            [f"falta {name}" for name in missing],
        )

    return ClaveAccesoParams(
        fecha_emision=fecha,
        tipo_comprobante=fields["codDoc"],
        ruc=fields["ruc"],
        ambiente=fields["ambiente"],
        establecimiento=fields["estab"],
        punto_emision=fields["ptoEmi"],
        secuencial=fields["secuencial"],
        tipo_emision=fields["tipoEmision"],
    )


def stamp_clave_acceso(root: etree._Element, clave: str) -> None:
    """Escribe la clave en infoTributaria/claveAcceso (el elemento debe existir)."""
    if not ClaveAccesoGenerator.validate(clave):
        raise SriValidationError("Clave de acceso inválida", [f"no se puede estampar {clave!r}"])
    nodes = _info_tributaria(root).xpath('./*[local-name()="claveAcceso"]')
    if not nodes:
        raise SriValidationError(
            "Comprobante sin claveAcceso", ["infoTributaria debe incluir el elemento claveAcceso"]
        )
    nodes[0].text = clave
    logger.debug(f"Clave de acceso estampada: {clave}")


def ensure_clave_acceso(root: etree._Element, generator: Optional[ClaveAccesoGenerator] = None) -> str:
    """
    Retorna la clave de acceso del comprobante; si está vacía la genera
    desde infoTributaria y la estampa.

    Raises:
        SriValidationError: clave presente pero inválida, o datos insuficientes
    """
    existing = read_clave_acceso(root)
    if existing:
        if not ClaveAccesoGenerator.validate(existing):
            raise SriValidationError(
                "Clave de acceso del comprobante inválida",
                [f"claveAcceso {existing!r} no cumple 49 dígitos con DV módulo 11"],
            )
        return existing

    generator = generator or ClaveAccesoGenerator()
    clave = generator.generate(params_from_document(root))
    stamp_clave_acceso(root, clave)
    return clave
