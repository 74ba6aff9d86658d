"""
Generación, validación y parseo de la Clave de Acceso SRI (49 dígitos).

Estructura (Ficha técnica de comprobantes electrónicos):

    fecha ddmmaaaa (8) + tipo comprobante (2) + RUC (13) + ambiente (1)
    + establecimiento (3) + punto de emisión (3) + secuencial (9)
    + código numérico (8) + tipo de emisión (1) + dígito verificador (1)

El dígito verificador es módulo 11 con pesos 7,6,5,4,3,2 aplicados de
izquierda a derecha sobre los primeros 48 dígitos.
"""
from __future__ import annotations

import itertools
import logging
import random
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Iterable, List, Optional, Union

from .exceptions import SriValidationError

logger = logging.getLogger(__name__)

CLAVE_ACCESO_LENGTH = 49
BASE_LENGTH = 48

PESOS_MOD11 = (7, 6, 5, 4, 3, 2)

TIPOS_COMPROBANTE = {
    "01": "FACTURA",
    "03": "LIQUIDACIÓN DE COMPRA",
    "04": "NOTA DE CRÉDITO",
    "05": "NOTA DE DÉBITO",
    "06": "GUÍA DE REMISIÓN",
    "07": "COMPROBANTE DE RETENCIÓN",
}

AMBIENTES = {"1", "2"}
TIPOS_EMISION = {"1", "2"}

_RE_RUC = re.compile(r"[0-9]{10}001")
_RE_TRES_DIGITOS = re.compile(r"[0-9]{3}")
_RE_SECUENCIAL = re.compile(r"[0-9]{1,9}")
_RE_NONCE = re.compile(r"[0-9]{8}")
_RE_CLAVE = re.compile(r"[0-9]{49}")
_RE_BASE = re.compile(r"[0-9]{48}")

NonceSource = Callable[[], str]

_system_random = random.SystemRandom()


def random_nonce() -> str:
    """Código numérico de 8 dígitos (10000000..99999999)."""
    return str(_system_random.randint(10000000, 99999999))


def calc_dv_mod11(base48: str) -> int:
    """
    Calcula el dígito verificador módulo 11 sobre los 48 dígitos base.

    Resultado 11 se convierte en 0 y resultado 10 en 1.
    """
    s = (base48 or "").strip()
    if not _RE_BASE.fullmatch(s):
        raise ValueError(f"base debe tener 48 dígitos, recibido: {base48!r}")

    total = sum(int(ch) * peso for ch, peso in zip(s, itertools.cycle(PESOS_MOD11)))
    dv = 11 - (total % 11)
    if dv == 11:
        return 0
    if dv == 10:
        return 1
    return dv


def is_clave_acceso_valid(clave: str) -> bool:
    """True si la clave tiene 49 dígitos ASCII y el DV coincide."""
    if not isinstance(clave, str) or not _RE_CLAVE.fullmatch(clave):
        return False
    return int(clave[48]) == calc_dv_mod11(clave[:48])


def fix_clave_acceso(clave: str) -> str:
    """Recalcula el DV de una clave de 49 dígitos y retorna la clave corregida."""
    s = (clave or "").strip()
    if not _RE_CLAVE.fullmatch(s):
        raise ValueError(f"Clave de acceso inválida (se esperan 49 dígitos): {clave!r}")
    return s[:48] + str(calc_dv_mod11(s[:48]))


def format_secuencial(value: Union[int, str]) -> str:
    """Secuencial con ceros a la izquierda hasta 9 dígitos."""
    s = str(value).strip()
    if not _RE_SECUENCIAL.fullmatch(s) or int(s) < 1:
        raise ValueError(f"Secuencial inválido: {value!r} (1..999999999)")
    return s.zfill(9)


def tipo_comprobante_nombre(codigo: str) -> str:
    return TIPOS_COMPROBANTE.get(codigo, "DESCONOCIDO")


@dataclass
class ClaveAccesoParams:
    """Datos necesarios para generar una clave de acceso"""
    fecha_emision: Union[date, datetime, str]
    tipo_comprobante: str
    ruc: str
    ambiente: Union[int, str]
    establecimiento: str
    punto_emision: str
    secuencial: Union[int, str]
    tipo_emision: Union[int, str] = "1"


@dataclass
class ClaveAccesoInfo:
    """Campos de una clave de acceso ya generada"""
    clave_acceso: str
    fecha_emision: date
    tipo_comprobante: str
    ruc: str
    ambiente: str
    establecimiento: str
    punto_emision: str
    secuencial: str
    codigo_numerico: str
    tipo_emision: str
    digito_verificador: str

    @property
    def tipo_comprobante_nombre(self) -> str:
        return tipo_comprobante_nombre(self.tipo_comprobante)

    @property
    def numero_comprobante(self) -> str:
        """Número visible del comprobante: 001-001-000000001"""
        return f"{self.establecimiento}-{self.punto_emision}-{self.secuencial}"


def _coerce_fecha(value: Union[date, datetime, str]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        s = value.strip()
        for fmt in ("%d/%m/%Y", "%Y-%m-%d"):
            try:
                return datetime.strptime(s, fmt).date()
            except ValueError:
                continue
    raise ValueError(f"fecha_emision inválida: {value!r} (dd/mm/aaaa o aaaa-mm-dd)")


class ClaveAccesoGenerator:
    """
    Generador de claves de acceso.

    El código numérico (nonce) se obtiene de ``nonce_source``, inyectable
    para pruebas deterministas.
    """

    def __init__(self, nonce_source: Optional[NonceSource] = None):
        self.nonce_source = nonce_source or random_nonce

    def _collect_errors(self, params: ClaveAccesoParams) -> List[str]:
        errors: List[str] = []

        try:
            _coerce_fecha(params.fecha_emision)
        except ValueError as e:
            errors.append(str(e))

        tipo = str(params.tipo_comprobante or "").strip()
        if tipo not in TIPOS_COMPROBANTE:
            errors.append(
                f"tipo_comprobante inválido: {params.tipo_comprobante!r} "
                f"(válidos: {', '.join(sorted(TIPOS_COMPROBANTE))})"
            )

        ruc = str(params.ruc or "").strip()
        if not _RE_RUC.fullmatch(ruc):
            errors.append(f"ruc inválido: {params.ruc!r} (13 dígitos terminados en 001)")

        if str(params.ambiente).strip() not in AMBIENTES:
            errors.append(f"ambiente inválido: {params.ambiente!r} (1 pruebas, 2 producción)")

        if not _RE_TRES_DIGITOS.fullmatch(str(params.establecimiento or "").strip()):
            errors.append(f"establecimiento inválido: {params.establecimiento!r} (3 dígitos)")

        if not _RE_TRES_DIGITOS.fullmatch(str(params.punto_emision or "").strip()):
            errors.append(f"punto_emision inválido: {params.punto_emision!r} (3 dígitos)")

        try:
            format_secuencial(params.secuencial)
        except ValueError as e:
            errors.append(str(e))

        if str(params.tipo_emision).strip() not in TIPOS_EMISION:
            errors.append(f"tipo_emision inválido: {params.tipo_emision!r} (1 normal, 2 indisponibilidad)")

        return errors

    def validate_params(self, params: ClaveAccesoParams) -> None:
        errors = self._collect_errors(params)
        if errors:
            raise SriValidationError("Parámetros de clave de acceso inválidos", errors)

    def build_base(self, params: ClaveAccesoParams, codigo_numerico: str) -> str:
        """Concatena los 48 dígitos base (sin DV)."""
        self.validate_params(params)
        if not _RE_NONCE.fullmatch(codigo_numerico or ""):
            raise SriValidationError(
                "Código numérico inválido",
                [f"codigo_numerico debe tener 8 dígitos, recibido {codigo_numerico!r}"],
            )

        base = "".join([
            _coerce_fecha(params.fecha_emision).strftime("%d%m%Y"),
            str(params.tipo_comprobante).strip(),
            str(params.ruc).strip(),
            str(params.ambiente).strip(),
            str(params.establecimiento).strip(),
            str(params.punto_emision).strip(),
            format_secuencial(params.secuencial),
            codigo_numerico,
            str(params.tipo_emision).strip(),
        ])
        if len(base) != BASE_LENGTH:
            raise SriValidationError(
                "Clave de acceso mal formada",
                [f"la base tiene {len(base)} dígitos, se esperaban {BASE_LENGTH}"],
            )
        return base

    def generate(self, params: ClaveAccesoParams) -> str:
        """
        Genera una clave de acceso de 49 dígitos.

        Raises:
            SriValidationError: con la lista completa de campos inválidos
        """
        base = self.build_base(params, self.nonce_source())
        clave = base + str(calc_dv_mod11(base))
        logger.debug(f"Clave de acceso generada: {clave}")
        return clave

    def generate_batch(self, params_list: Iterable[ClaveAccesoParams]) -> List[str]:
        return [self.generate(p) for p in params_list]

    @staticmethod
    def validate(clave: str) -> bool:
        return is_clave_acceso_valid(clave)

    @staticmethod
    def parse(clave: str) -> ClaveAccesoInfo:
        """
        Descompone una clave de acceso en sus campos.

        Raises:
            SriValidationError: si la clave no tiene 49 dígitos o el DV no coincide
        """
        if not is_clave_acceso_valid(clave):
            raise SriValidationError(
                "Clave de acceso inválida",
                [f"se esperan 49 dígitos con DV módulo 11 válido, recibido {clave!r}"],
            )
        try:
            fecha = datetime.strptime(clave[0:8], "%d%m%Y").date()
        except ValueError:
            raise SriValidationError(
                "Clave de acceso inválida", [f"fecha ilegible en la clave: {clave[0:8]!r}"]
            )
        return ClaveAccesoInfo(
            clave_acceso=clave,
            fecha_emision=fecha,
            tipo_comprobante=clave[8:10],
            ruc=clave[10:23],
            ambiente=clave[23:24],
            establecimiento=clave[24:27],
            punto_emision=clave[27:30],
            secuencial=clave[30:39],
            codigo_numerico=clave[39:47],
            tipo_emision=clave[47:48],
            digito_verificador=clave[48],
        )


def generate_clave_acceso(params: ClaveAccesoParams, nonce_source: Optional[NonceSource] = None) -> str:
    """Atajo funcional sobre ClaveAccesoGenerator.generate()."""
    return ClaveAccesoGenerator(nonce_source).generate(params)
