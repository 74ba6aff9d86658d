from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from lxml import etree

from sri_client.certificates import CertificateStore
from sri_client.clave_acceso import ClaveAccesoGenerator
from sri_client.config import SriConfig, get_sri_config
from sri_client.document import ensure_clave_acceso
from sri_client.exceptions import (
    SriCertificateError,
    SriException,
    SriValidationError,
)
from sri_client.models import AuthorizationResult, ReceptionResult, SriMessage, SubmissionState
from sri_client.retry import RetryPolicy
from sri_client.soap_client import SoapClient
from sri_client.submission import SubmissionClient
from sri_client.xades_signer import XadesSigner, load_document

from .guards import assert_signed_document
from .storage import DocumentStore, NullDocumentStore

logger = logging.getLogger(__name__)

PHASE_CLAVE = "clave_acceso"
PHASE_CERTIFICADO = "certificado"
PHASE_FIRMA = "firma"
PHASE_RECEPCION = "recepcion"
PHASE_AUTORIZACION = "autorizacion"


@dataclass
class EmissionResult:
    """Resultado del flujo completo; ``phase`` indica dónde terminó."""
    ok: bool
    phase: str
    clave_acceso: Optional[str] = None
    signed_xml: Optional[bytes] = field(default=None, repr=False)
    reception: Optional[ReceptionResult] = None
    authorization: Optional[AuthorizationResult] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    traceback: Optional[str] = field(default=None, repr=False)
    storage_errors: List[str] = field(default_factory=list)

    @property
    def state(self) -> SubmissionState:
        if self.authorization is not None:
            return self.authorization.state
        if self.reception is not None:
            return self.reception.state
        if self.error_type and self.phase in (PHASE_RECEPCION, PHASE_AUTORIZACION):
            return SubmissionState.ERROR
        return SubmissionState.NOT_SENT

    @property
    def numero_autorizacion(self) -> Optional[str]:
        return self.authorization.numero_autorizacion if self.authorization else None

    @property
    def mensajes(self) -> List[SriMessage]:
        if self.authorization is not None and self.authorization.mensajes:
            return self.authorization.mensajes
        if self.reception is not None:
            return list(self.reception.mensajes)
        return []

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "success": self.ok,
            "phase": self.phase,
            "state": self.state.value,
            "clave_acceso": self.clave_acceso,
            "numero_autorizacion": self.numero_autorizacion,
            "reception": self.reception.to_dict() if self.reception else None,
            "authorization": self.authorization.to_dict() if self.authorization else None,
            "mensajes": [str(m) for m in self.mensajes],
            "meta": {
                "error": self.error,
                "error_type": self.error_type,
                "storage_errors": list(self.storage_errors),
            },
        }


def _failure(phase: str, exc: BaseException, **kwargs) -> EmissionResult:
    logger.error(f"Emisión fallida en fase '{phase}': {type(exc).__name__}: {exc}")
    return EmissionResult(
        ok=False,
        phase=phase,
        error=str(exc),
        error_type=type(exc).__name__,
        traceback=traceback.format_exc(),
        **kwargs,
    )


def _save_after_send(errors: List[str], label: str, save, *args) -> None:
    # El envío ya ocurrió: una falla del almacenamiento no puede ocultar el resultado del SRI
    try:
        save(*args)
    except Exception as e:
        logger.error(f"No se pudo guardar {label} de {args[0]}: {type(e).__name__}: {e}")
        errors.append(f"{label}: {e}")


def sign_document(
    xml: Union[bytes, str, etree._Element],
    p12_bytes: bytes,
    password: str,
    *,
    generator: Optional[ClaveAccesoGenerator] = None,
    signer: Optional[XadesSigner] = None,
    signing_time: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Tuple[str, bytes]:
    """
    Parte local del flujo (sin red): clave de acceso, firma y guardrails.

    Returns:
        (clave_acceso, xml_firmado)

    Raises:
        SriValidationError, SriCertificateError, SriSignatureError, RuntimeError (guardrail)
    """
    root = load_document(xml)
    clave = ensure_clave_acceso(root, generator)
    signer = signer or XadesSigner()
    with CertificateStore(p12_bytes, password, now=now) as material:
        signed = signer.sign(root, material, signing_time)
    assert_signed_document(signed, context=f"clave={clave}")
    return clave, signed


def process_document(
    xml: Union[bytes, str, etree._Element],
    p12_bytes: bytes,
    password: str,
    client: SubmissionClient,
    *,
    store: Optional[DocumentStore] = None,
    generator: Optional[ClaveAccesoGenerator] = None,
    signer: Optional[XadesSigner] = None,
    signing_time: Optional[datetime] = None,
    now: Optional[datetime] = None,
    poll_kwargs: Optional[Dict[str, Any]] = None,
) -> EmissionResult:
    """
    Flujo completo: clave de acceso -> firma -> recepción -> autorización.

    Nunca lanza por fallas del flujo: retorna EmissionResult con ok=False y
    la fase que falló. Las fallas locales ocurren antes de cualquier llamada
    de red.
    Si el almacenamiento falla antes del envío, el flujo termina en la fase
    de firma; después del envío la falla se registra en ``storage_errors``.
    """
    store = store or NullDocumentStore()

    try:
        root = load_document(xml)
        clave = ensure_clave_acceso(root, generator)
    except SriValidationError as e:
        return _failure(PHASE_CLAVE, e)

    signer = signer or XadesSigner()
    try:
        with CertificateStore(p12_bytes, password, now=now) as material:
            signed = signer.sign(root, material, signing_time)
    except SriCertificateError as e:
        return _failure(PHASE_CERTIFICADO, e, clave_acceso=clave)
    except SriException as e:
        return _failure(PHASE_FIRMA, e, clave_acceso=clave)

    try:
        assert_signed_document(signed, context=f"clave={clave}")
    except RuntimeError as e:
        return _failure(PHASE_FIRMA, e, clave_acceso=clave, signed_xml=signed)

    try:
        store.save_signed(clave, signed)
    except Exception as e:
        return _failure(PHASE_FIRMA, e, clave_acceso=clave, signed_xml=signed)
    logger.info(f"Comprobante {clave} firmado ({len(signed)} bytes)")

    try:
        reception = client.submit(signed)
    except SriException as e:
        return _failure(PHASE_RECEPCION, e, clave_acceso=clave, signed_xml=signed)
    storage_errors: List[str] = []
    _save_after_send(storage_errors, "recepción", store.save_reception, clave, reception.to_dict())

    if reception.state != SubmissionState.RECEIVED:
        return EmissionResult(
            ok=False,
            phase=PHASE_RECEPCION,
            clave_acceso=clave,
            signed_xml=signed,
            reception=reception,
            storage_errors=storage_errors,
        )

    try:
        authorization = client.poll(clave, **(poll_kwargs or {}))
    except SriException as e:
        return _failure(
            PHASE_AUTORIZACION, e,
            clave_acceso=clave, signed_xml=signed, reception=reception, storage_errors=storage_errors,
        )

    comprobante = authorization.record.comprobante if authorization.record else None
    _save_after_send(
        storage_errors, "autorización", store.save_authorization, clave, authorization.to_dict(), comprobante
    )

    ok = authorization.state == SubmissionState.AUTHORIZED
    if ok:
        logger.info(f"Comprobante {clave} AUTORIZADO: {authorization.numero_autorizacion}")
    return EmissionResult(
        ok=ok,
        phase=PHASE_AUTORIZACION,
        clave_acceso=clave,
        signed_xml=signed,
        reception=reception,
        authorization=authorization,
        storage_errors=storage_errors,
    )


def build_submission_client(config: Optional[SriConfig] = None, session: Any = None) -> SubmissionClient:
    """SubmissionClient con SoapClient y RetryPolicy tomados de la configuración."""
    config = config or get_sri_config()
    return SubmissionClient(SoapClient(config, session=session), RetryPolicy.from_config(config))
