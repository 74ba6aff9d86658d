"""
Máquina de estados de envío al SRI: recepción y polling de autorización.

    NOT_SENT --submit--> RECEIVED | REJECTED
    RECEIVED --poll----> PENDING (se repite) | AUTHORIZED | NOT_AUTHORIZED
    falla de transporte -> SriTransportError (reintentado con backoff, acotado)

REJECTED y NOT_AUTHORIZED son resultados tipados, nunca excepciones, y nunca
se reintentan.
"""
import base64
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, TypeVar

from .clave_acceso import is_clave_acceso_valid
from .exceptions import (
    SriAuthorizationTimeoutError,
    SriPollCancelledError,
    SriTransportError,
    SriValidationError,
)
from .models import (
    AuthorizationRecord,
    AuthorizationResult,
    ReceptionResult,
    SriMessage,
    SubmissionState,
)
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

ESTADO_RECIBIDA = "RECIBIDA"
ESTADO_DEVUELTA = "DEVUELTA"

ESTADO_AUTORIZADO = "AUTORIZADO"
ESTADOS_NO_AUTORIZADO = {"NO AUTORIZADO", "RECHAZADO"}
ESTADOS_EN_PROCESO = {"EN PROCESO", "EN PROCESAMIENTO", "PROCESANDOSE", "PENDIENTE"}

# DEVUELTA con solo este mensaje: el SRI ya tiene la clave y la está procesando
CODIGO_CLAVE_EN_PROCESAMIENTO = "70"


class SubmissionClient:
    """
    Envía comprobantes firmados y consulta su autorización.

    Args:
        soap_client: objeto con validar_comprobante(xml_b64) y
            autorizacion_comprobante(clave) (ver SoapClient)
        policy: reintentos de transporte y parámetros de polling
        sleep / clock: inyectables para pruebas
    """

    def __init__(
        self,
        soap_client: Any,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.soap_client = soap_client
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._clock = clock
        # Con el sleep real la espera se hace sobre el Event y se interrumpe al cancelar
        self._interruptible = sleep is time.sleep

    # ------------------------------------------------------------------
    # Reintentos de transporte
    # ------------------------------------------------------------------
    def _call_with_retry(
        self,
        label: str,
        fn: Callable[[], T],
        cancel: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> T:
        delays = self.policy.backoff_delays()
        attempt = 1
        while True:
            try:
                return fn()
            except SriTransportError as e:
                if not e.retryable:
                    logger.error(f"{label}: error de transporte no recuperable: {e}")
                    raise
                delay = next(delays, None)
                if delay is None:
                    logger.error(
                        f"{label}: todos los intentos fallaron ({attempt}/{self.policy.max_attempts}). "
                        f"Último error: {e}"
                    )
                    raise
                if deadline is not None and self._clock() + delay > deadline:
                    logger.error(f"{label}: el reintento excede el tiempo máximo de espera. Último error: {e}")
                    raise
                logger.warning(
                    f"{label}: error de transporte (intento {attempt}/{self.policy.max_attempts}): {e}. "
                    f"Reintentando en {delay:.2f}s..."
                )
                self._wait(delay, cancel)
                attempt += 1

    # ------------------------------------------------------------------
    # Recepción
    # ------------------------------------------------------------------
    def submit(self, signed_document: bytes) -> ReceptionResult:
        """
        Envía el comprobante firmado a recepción.

        Returns:
            ReceptionResult con state RECEIVED o REJECTED

        Raises:
            SriTransportError: transporte agotado o no recuperable
            SriResponseError: SOAP Fault o respuesta ilegible
        """
        if isinstance(signed_document, str):
            signed_document = signed_document.encode("utf-8")
        if not signed_document:
            raise SriValidationError("Comprobante vacío", ["no hay bytes firmados para enviar"])

        xml_b64 = base64.b64encode(signed_document).decode("ascii")
        raw = self._call_with_retry(
            "validarComprobante", lambda: self.soap_client.validar_comprobante(xml_b64)
        )
        return self._classify_reception(raw)

    def _classify_reception(self, raw: Dict[str, Any]) -> ReceptionResult:
        estado = (raw.get("estado") or "").upper()
        mensajes: List[SriMessage] = []
        clave = None
        for comp in raw.get("comprobantes") or []:
            clave = clave or comp.get("clave_acceso")
            mensajes.extend(SriMessage.from_dict(m) for m in comp.get("mensajes") or [])

        if estado == ESTADO_RECIBIDA:
            state = SubmissionState.RECEIVED
        elif estado == ESTADO_DEVUELTA and mensajes and all(
            m.identificador == CODIGO_CLAVE_EN_PROCESAMIENTO for m in mensajes
        ):
            logger.warning(f"Comprobante {clave} ya está en procesamiento en el SRI; se continúa con autorización")
            state = SubmissionState.RECEIVED
        else:
            state = SubmissionState.REJECTED
            for m in mensajes:
                logger.warning(f"Recepción DEVUELTA {clave}: {m}")

        logger.info(f"Recepción clasificada: {estado} -> {state.value}")
        return ReceptionResult(
            state=state,
            estado=estado,
            clave_acceso=clave,
            mensajes=mensajes,
            raw_response=raw.get("raw_response"),
        )

    # ------------------------------------------------------------------
    # Autorización
    # ------------------------------------------------------------------
    def check_authorization(self, clave_acceso: str) -> AuthorizationResult:
        """
        Una consulta de autorización (con reintentos de transporte).

        Una respuesta sin registros significa que el SRI todavía no indexó el
        comprobante: se clasifica PENDING.
        """
        return self._query_authorization(clave_acceso)

    def _query_authorization(
        self,
        clave_acceso: str,
        cancel: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> AuthorizationResult:
        if not is_clave_acceso_valid(clave_acceso):
            raise SriValidationError("Clave de acceso inválida", [f"no se puede consultar {clave_acceso!r}"])

        raw = self._call_with_retry(
            "autorizacionComprobante",
            lambda: self.soap_client.autorizacion_comprobante(clave_acceso),
            cancel=cancel,
            deadline=deadline,
        )
        return self._classify_authorization(clave_acceso, raw)

    def _classify_authorization(self, clave_acceso: str, raw: Dict[str, Any]) -> AuthorizationResult:
        records = [AuthorizationRecord.from_dict(a) for a in raw.get("autorizaciones") or []]
        numero = raw.get("numero_comprobantes") or 0

        if not records or numero == 0:
            logger.debug(f"Autorización {clave_acceso}: sin registros todavía")
            return AuthorizationResult(
                state=SubmissionState.PENDING,
                clave_acceso=clave_acceso,
                numero_comprobantes=0,
                raw_response=raw.get("raw_response"),
            )

        record = next((r for r in records if r.estado == ESTADO_AUTORIZADO), records[0])
        if record.estado == ESTADO_AUTORIZADO:
            state = SubmissionState.AUTHORIZED
        elif record.estado in ESTADOS_NO_AUTORIZADO:
            state = SubmissionState.NOT_AUTHORIZED
            for m in record.mensajes:
                logger.warning(f"NO AUTORIZADO {clave_acceso}: {m}")
        else:
            if record.estado not in ESTADOS_EN_PROCESO:
                logger.warning(f"Estado de autorización desconocido {record.estado!r}; se trata como pendiente")
            state = SubmissionState.PENDING

        return AuthorizationResult(
            state=state,
            clave_acceso=clave_acceso,
            numero_comprobantes=numero,
            record=record,
            raw_response=raw.get("raw_response"),
        )

    def _wait(self, seconds: float, cancel: Optional[threading.Event]) -> None:
        if cancel is not None and cancel.is_set():
            raise SriPollCancelledError("Consulta de autorización cancelada")
        if seconds <= 0:
            return
        if cancel is not None and self._interruptible:
            cancel.wait(seconds)
        else:
            self._sleep(seconds)
        if cancel is not None and cancel.is_set():
            raise SriPollCancelledError("Consulta de autorización cancelada")

    def poll(
        self,
        clave_acceso: str,
        max_wait: Optional[float] = None,
        interval: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
        initial_delay: Optional[float] = None,
    ) -> AuthorizationResult:
        """
        Consulta hasta obtener un estado final (AUTHORIZED / NOT_AUTHORIZED).

        Raises:
            SriAuthorizationTimeoutError: se agotó max_wait (es un TimeoutError)
            SriPollCancelledError: ``cancel`` se activó durante la espera
            SriTransportError: transporte agotado en alguna consulta, o el
                reintento excedería max_wait
            ValueError: interval <= 0 o max_wait negativo
        """
        max_wait = self.policy.max_wait if max_wait is None else max_wait
        interval = self.policy.poll_interval if interval is None else interval
        initial_delay = self.policy.initial_poll_delay if initial_delay is None else initial_delay
        if interval <= 0:
            raise ValueError("interval debe ser > 0")
        if max_wait < 0:
            raise ValueError("max_wait no puede ser negativo")

        start = self._clock()
        deadline = start + max_wait
        attempts = 0

        self._wait(min(initial_delay, max_wait), cancel)

        while True:
            if cancel is not None and cancel.is_set():
                raise SriPollCancelledError("Consulta de autorización cancelada")

            attempts += 1
            result = self._query_authorization(clave_acceso, cancel=cancel, deadline=deadline)
            logger.info(f"Autorización {clave_acceso} intento {attempts}: {result.state.value}")
            if result.state.is_terminal:
                return result

            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.error(f"Tiempo máximo de espera agotado para {clave_acceso}")
                raise SriAuthorizationTimeoutError(clave_acceso, max_wait, attempts)
            self._wait(min(interval, remaining), cancel)

    def submit_and_poll(self, signed_document: bytes, clave_acceso: str, **poll_kwargs):
        """
        Recepción seguida de autorización.

        Returns:
            (ReceptionResult, AuthorizationResult | None); None si fue REJECTED
        """
        reception = self.submit(signed_document)
        if reception.state != SubmissionState.RECEIVED:
            return reception, None
        return reception, self.poll(clave_acceso, **poll_kwargs)
