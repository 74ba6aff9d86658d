"""
Modelos de datos para las respuestas del SRI
"""
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class SubmissionState(str, Enum):
    """Estado de un comprobante en el flujo recepción -> autorización"""
    NOT_SENT = "NOT_SENT"
    RECEIVED = "RECEIVED"
    REJECTED = "REJECTED"
    PENDING = "PENDING"
    AUTHORIZED = "AUTHORIZED"
    NOT_AUTHORIZED = "NOT_AUTHORIZED"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (
            SubmissionState.REJECTED,
            SubmissionState.AUTHORIZED,
            SubmissionState.NOT_AUTHORIZED,
            SubmissionState.ERROR,
        )


@dataclass
class SriMessage:
    """Mensaje del SRI (mensajes/mensaje)"""
    identificador: str
    mensaje: str
    tipo: str = "ERROR"
    informacion_adicional: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SriMessage":
        return cls(
            identificador=str(data.get("identificador") or ""),
            mensaje=str(data.get("mensaje") or ""),
            tipo=str(data.get("tipo") or "ERROR"),
            informacion_adicional=data.get("informacion_adicional") or None,
        )

    def __str__(self) -> str:
        extra = f" ({self.informacion_adicional})" if self.informacion_adicional else ""
        return f"[{self.tipo} {self.identificador}] {self.mensaje}{extra}"


@dataclass
class ReceptionResult:
    """Resultado de validarComprobante"""
    state: SubmissionState
    estado: str
    clave_acceso: Optional[str] = None
    mensajes: List[SriMessage] = field(default_factory=list)
    raw_response: Optional[str] = field(default=None, repr=False)

    @property
    def received(self) -> bool:
        return self.state == SubmissionState.RECEIVED

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        data.pop("raw_response", None)
        return data


@dataclass
class AuthorizationRecord:
    """Un elemento autorizaciones/autorizacion"""
    estado: str
    numero_autorizacion: Optional[str] = None
    fecha_autorizacion: Optional[str] = None
    ambiente: Optional[str] = None
    comprobante: Optional[str] = field(default=None, repr=False)
    mensajes: List[SriMessage] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthorizationRecord":
        return cls(
            estado=str(data.get("estado") or "").strip().upper(),
            numero_autorizacion=data.get("numero_autorizacion") or None,
            fecha_autorizacion=data.get("fecha_autorizacion") or None,
            ambiente=data.get("ambiente") or None,
            comprobante=data.get("comprobante") or None,
            mensajes=[SriMessage.from_dict(m) for m in data.get("mensajes") or []],
        )


@dataclass
class AuthorizationResult:
    """Resultado de autorizacionComprobante ya clasificado"""
    state: SubmissionState
    clave_acceso: str
    numero_comprobantes: int = 0
    record: Optional[AuthorizationRecord] = None
    raw_response: Optional[str] = field(default=None, repr=False)

    @property
    def authorized(self) -> bool:
        return self.state == SubmissionState.AUTHORIZED

    @property
    def numero_autorizacion(self) -> Optional[str]:
        return self.record.numero_autorizacion if self.record else None

    @property
    def fecha_autorizacion(self) -> Optional[str]:
        return self.record.fecha_autorizacion if self.record else None

    @property
    def mensajes(self) -> List[SriMessage]:
        return list(self.record.mensajes) if self.record else []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "clave_acceso": self.clave_acceso,
            "numero_comprobantes": self.numero_comprobantes,
            "estado": self.record.estado if self.record else None,
            "numero_autorizacion": self.numero_autorizacion,
            "fecha_autorizacion": self.fecha_autorizacion,
            "ambiente": self.record.ambiente if self.record else None,
            "mensajes": [asdict(m) for m in self.mensajes],
        }
