"""
Cliente SOAP 1.1 para los servicios offline del SRI

Servicios:
- RecepcionComprobantesOffline.validarComprobante(xml)        xml = base64 del comprobante firmado
- AutorizacionComprobantesOffline.autorizacionComprobante(claveAccesoComprobante)

Notas:
- Los envelopes se construyen con lxml y se envían con requests (POST directo),
  igual para ambos servicios; zeep solo se usa para resolver la dirección SOAP
  cuando la configuración apunta a un WSDL.
- Cada POST lleva timeout (connect, read) explícito.
- Este cliente hace un único intento por llamada; los reintentos con backoff
  viven en SubmissionClient.
- Las respuestas se leen por local-name() para tolerar prefijos.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

import requests
from lxml import etree
from zeep import Client, Settings
from zeep.transports import Transport

from .config import SriConfig
from .exceptions import SriResponseError, SriTransportError

logger = logging.getLogger(__name__)

SOAP11_NS = "http://schemas.xmlsoap.org/soap/envelope/"
RECEPCION_NS = "http://ec.gob.sri.ws.recepcion"
AUTORIZACION_NS = "http://ec.gob.sri.ws.autorizacion"

SOAP_HEADERS = {
    "Content-Type": "text/xml; charset=utf-8",
    "SOAPAction": '""',
}


def _build_envelope(operation_ns: str, operation: str, field: str, value: str) -> bytes:
    envelope = etree.Element(f"{{{SOAP11_NS}}}Envelope", nsmap={"soapenv": SOAP11_NS, "ec": operation_ns})
    etree.SubElement(envelope, f"{{{SOAP11_NS}}}Header")
    body = etree.SubElement(envelope, f"{{{SOAP11_NS}}}Body")
    op = etree.SubElement(body, f"{{{operation_ns}}}{operation}")
    etree.SubElement(op, field).text = value
    return etree.tostring(envelope, xml_declaration=True, encoding="UTF-8", pretty_print=False)


def build_validar_comprobante_envelope(xml_b64: str) -> bytes:
    """Envelope de validarComprobante con el comprobante firmado en base64."""
    if not xml_b64 or not str(xml_b64).strip():
        raise ValueError("xml (base64) no puede estar vacío para validarComprobante")
    return _build_envelope(RECEPCION_NS, "validarComprobante", "xml", xml_b64)


def build_autorizacion_envelope(clave_acceso: str) -> bytes:
    """Envelope de autorizacionComprobante."""
    if not clave_acceso or not str(clave_acceso).strip():
        raise ValueError("claveAccesoComprobante no puede estar vacía")
    return _build_envelope(
        AUTORIZACION_NS, "autorizacionComprobante", "claveAccesoComprobante", str(clave_acceso).strip()
    )


def _child(elem: Any, name: str) -> Optional[Any]:
    nodes = elem.xpath(f'./*[local-name()="{name}"]')
    return nodes[0] if len(nodes) else None


def _child_text(elem: Any, name: str) -> Optional[str]:
    node = _child(elem, name)
    if node is None or node.text is None:
        return None
    return node.text.strip()


def _parse_mensajes(elem: Any) -> List[Dict[str, Optional[str]]]:
    mensajes = []
    for msg in elem.xpath('./*[local-name()="mensajes"]/*[local-name()="mensaje"]'):
        mensajes.append({
            "identificador": _child_text(msg, "identificador"),
            "mensaje": _child_text(msg, "mensaje"),
            "informacion_adicional": _child_text(msg, "informacionAdicional"),
            "tipo": _child_text(msg, "tipo"),
        })
    return mensajes


def parse_soap_fault(xml_root: Any) -> Optional[Tuple[str, str]]:
    """(faultcode, faultstring) si la respuesta es un SOAP Fault."""
    faults = xml_root.xpath('//*[local-name()="Fault"]')
    if not len(faults):
        return None
    fault = faults[0]
    return (_child_text(fault, "faultcode") or "", _child_text(fault, "faultstring") or "")


def parse_recepcion_response(xml_root: Any) -> Dict[str, Any]:
    respuestas = xml_root.xpath('//*[local-name()="RespuestaRecepcionComprobante"]')
    if not len(respuestas):
        raise SriResponseError("Respuesta de recepción sin RespuestaRecepcionComprobante", "RESPONSE_PARSE")
    respuesta = respuestas[0]

    comprobantes = []
    for comp in respuesta.xpath('./*[local-name()="comprobantes"]/*[local-name()="comprobante"]'):
        comprobantes.append({
            "clave_acceso": _child_text(comp, "claveAcceso"),
            "mensajes": _parse_mensajes(comp),
        })

    return {
        "estado": (_child_text(respuesta, "estado") or "").upper(),
        "comprobantes": comprobantes,
    }


def parse_autorizacion_response(xml_root: Any) -> Dict[str, Any]:
    respuestas = xml_root.xpath('//*[local-name()="RespuestaAutorizacionComprobante"]')
    if not len(respuestas):
        raise SriResponseError(
            "Respuesta de autorización sin RespuestaAutorizacionComprobante", "RESPONSE_PARSE"
        )
    respuesta = respuestas[0]

    autorizaciones = []
    for aut in respuesta.xpath('./*[local-name()="autorizaciones"]/*[local-name()="autorizacion"]'):
        comprobante = _child(aut, "comprobante")
        autorizaciones.append({
            "estado": (_child_text(aut, "estado") or "").upper(),
            "numero_autorizacion": _child_text(aut, "numeroAutorizacion"),
            "fecha_autorizacion": _child_text(aut, "fechaAutorizacion"),
            "ambiente": _child_text(aut, "ambiente"),
            "comprobante": comprobante.text if comprobante is not None else None,
            "mensajes": _parse_mensajes(aut),
        })

    numero = _child_text(respuesta, "numeroComprobantes")
    try:
        numero_comprobantes = int(numero) if numero else len(autorizaciones)
    except ValueError:
        numero_comprobantes = len(autorizaciones)

    return {
        "clave_acceso_consultada": _child_text(respuesta, "claveAccesoConsultada"),
        "numero_comprobantes": numero_comprobantes,
        "autorizaciones": autorizaciones,
    }


class SoapClient:
    """Cliente SOAP 1.1 (document/literal) para los web services offline del SRI."""

    def __init__(self, config: SriConfig, session: Optional[requests.Session] = None):
        self.config = config
        self._own_session = session is None
        self.session = session if session is not None else requests.Session()

        # Cache
        self.clients: Dict[str, Any] = {}  # Client de Zeep
        self._soap_address: Dict[str, str] = {}
        self._transport: Optional[Transport] = None

    # ---------------------------------------------------------------------
    # Helpers WSDL
    # ---------------------------------------------------------------------
    @staticmethod
    def _normalize_soap_endpoint(url: str) -> str:
        """https://.../RecepcionComprobantesOffline?wsdl -> https://.../RecepcionComprobantesOffline"""
        return (url or "").split("?")[0]

    @staticmethod
    def _is_wsdl_url(url: str) -> bool:
        return (url or "").lower().endswith(("?wsdl", ".wsdl"))

    def _get_transport(self) -> Transport:
        if self._transport is None:
            self._transport = Transport(
                session=self.session,
                timeout=self.config.timeout_read,
                operation_timeout=self.config.timeout_read,
            )
        return self._transport

    def _get_client(self, service_key: str) -> Client:
        if service_key in self.clients:
            return self.clients[service_key]

        wsdl_url = self.config.get_soap_service_url(service_key)
        logger.info(f"Cargando WSDL para servicio '{service_key}': {wsdl_url}")
        client = Client(
            wsdl=wsdl_url,
            transport=self._get_transport(),
            settings=Settings(strict=False, xml_huge_tree=True),
        )
        self.clients[service_key] = client
        return client

    def _resolve_endpoint(self, service_key: str) -> str:
        if service_key in self._soap_address:
            return self._soap_address[service_key]

        url = self.config.get_soap_service_url(service_key)
        address = None
        if self._is_wsdl_url(url):
            try:
                client = self._get_client(service_key)
                address = client.service._binding_options.get("address")
                if address:
                    logger.info(f"SOAP address para '{service_key}' (desde Zeep): {address}")
            except Exception as e:
                logger.warning(f"No se pudo leer SOAP address desde el WSDL de '{service_key}': {e}")
        if not address:
            address = self._normalize_soap_endpoint(url)
            logger.debug(f"SOAP address para '{service_key}' (desde configuración): {address}")

        self._soap_address[service_key] = address
        return address

    # ---------------------------------------------------------------------
    # Transporte
    # ---------------------------------------------------------------------
    def _post_soap(self, service_key: str, soap_bytes: bytes) -> Any:
        """
        POST del envelope y parseo de la respuesta.

        Raises:
            SriTransportError: timeout, conexión, HTTP 5xx sin Fault (retryable) o 4xx (fatal)
            SriResponseError: SOAP Fault o XML ilegible
        """
        url = self._resolve_endpoint(service_key)
        logger.debug(f"Enviando SOAP a endpoint: {url} ({len(soap_bytes)} bytes)")

        try:
            resp = self.session.post(
                url,
                data=soap_bytes,
                headers=dict(SOAP_HEADERS),
                timeout=self.config.timeout,
            )
        except (
            requests.exceptions.ConnectionError,
            requests.exceptions.Timeout,
            requests.exceptions.ChunkedEncodingError,
            ConnectionResetError,
        ) as e:
            raise SriTransportError(f"Error de conexión con {service_key}: {e}", retryable=True) from e
        except requests.exceptions.RequestException as e:
            raise SriTransportError(f"Error HTTP con {service_key}: {e}", retryable=False) from e

        status = resp.status_code
        xml_root = None
        if resp.content:
            try:
                xml_root = etree.fromstring(resp.content)
            except etree.XMLSyntaxError:
                xml_root = None

        if xml_root is not None:
            fault = parse_soap_fault(xml_root)
            if fault:
                code, message = fault
                raise SriResponseError(f"SOAP Fault de {service_key}: {code} {message}".strip(), code, status)

        if status >= 500:
            raise SriTransportError(
                f"HTTP {status} desde {service_key}", retryable=True, http_status=status
            )
        if status != 200:
            raise SriTransportError(
                f"HTTP {status} desde {service_key}: {resp.text[:300]}", retryable=False, http_status=status
            )
        if xml_root is None:
            raise SriResponseError(f"Respuesta XML inválida de {service_key}", "RESPONSE_PARSE", status)
        return xml_root

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    def validar_comprobante(self, xml_b64: str) -> Dict[str, Any]:
        """
        Envía el comprobante firmado (base64) a recepción.

        Returns:
            Dict con estado ('RECIBIDA' | 'DEVUELTA') y comprobantes/mensajes
        """
        soap_bytes = build_validar_comprobante_envelope(xml_b64)
        xml_root = self._post_soap("recepcion", soap_bytes)
        result = parse_recepcion_response(xml_root)
        result["raw_response"] = etree.tostring(xml_root, encoding="unicode")
        logger.info(f"Recepción SRI: estado={result['estado']}")
        return result

    def autorizacion_comprobante(self, clave_acceso: str) -> Dict[str, Any]:
        """
        Consulta la autorización de un comprobante por clave de acceso.

        Returns:
            Dict con numero_comprobantes y la lista de autorizaciones
        """
        soap_bytes = build_autorizacion_envelope(clave_acceso)
        xml_root = self._post_soap("autorizacion", soap_bytes)
        result = parse_autorizacion_response(xml_root)
        result["raw_response"] = etree.tostring(xml_root, encoding="unicode")
        logger.info(
            f"Autorización SRI {clave_acceso}: {result['numero_comprobantes']} registro(s)"
        )
        return result

    def close(self) -> None:
        if self._own_session:
            self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
