"""
Configuración para cliente SRI (Servicio de Rentas Internas, Ecuador)
"""
import os
from typing import Dict, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ValueError(f"Valor inválido para {name}: {raw!r} (se esperaba un número)")


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"Valor inválido para {name}: {raw!r} (se esperaba un entero)")


def get_cert_path_and_password() -> Tuple[str, str]:
    """
    Helper unificado para obtener certificado P12 y contraseña desde variables de entorno.

    Prioridad:
    1. SRI_CERT_PATH / SRI_CERT_PASSWORD (estándar)
    2. CERTIFICATE_PATH / CERTIFICATE_PASSWORD (alias, compatibilidad)

    Returns:
        Tupla (cert_path, cert_password)

    Raises:
        RuntimeError: Si faltan las variables de entorno o el archivo no existe
    """
    cert_path = os.environ.get("SRI_CERT_PATH") or os.environ.get("CERTIFICATE_PATH")
    if not cert_path:
        raise RuntimeError("Falta SRI_CERT_PATH (o CERTIFICATE_PATH) en el entorno")

    cert_password = os.environ.get("SRI_CERT_PASSWORD") or os.environ.get("CERTIFICATE_PASSWORD")
    if not cert_password:
        raise RuntimeError("Falta SRI_CERT_PASSWORD (o CERTIFICATE_PASSWORD) en el entorno")

    if not os.path.exists(cert_path):
        raise RuntimeError(f"Certificado no encontrado: {cert_path}")

    return cert_path, cert_password


class SriConfig:
    """Configuración del cliente SRI por ambiente"""

    AMBIENTE_PRUEBAS = "1"
    AMBIENTE_PRODUCCION = "2"

    AMBIENTE_NOMBRES = {
        "1": "PRUEBAS",
        "2": "PRODUCCION",
    }

    # Servicios Web SOAP offline (Ficha técnica de comprobantes electrónicos)
    SOAP_SERVICES = {
        "1": {
            "recepcion": os.getenv(
                "SRI_WS_RECEPCION_PRUEBAS",
                "https://celcer.sri.gob.ec/comprobantes-electronicos-ws/RecepcionComprobantesOffline?wsdl",
            ),
            "autorizacion": os.getenv(
                "SRI_WS_AUTORIZACION_PRUEBAS",
                "https://celcer.sri.gob.ec/comprobantes-electronicos-ws/AutorizacionComprobantesOffline?wsdl",
            ),
        },
        "2": {
            "recepcion": os.getenv(
                "SRI_WS_RECEPCION_PRODUCCION",
                "https://cel.sri.gob.ec/comprobantes-electronicos-ws/RecepcionComprobantesOffline?wsdl",
            ),
            "autorizacion": os.getenv(
                "SRI_WS_AUTORIZACION_PRODUCCION",
                "https://cel.sri.gob.ec/comprobantes-electronicos-ws/AutorizacionComprobantesOffline?wsdl",
            ),
        },
    }

    def __init__(self, ambiente: str = AMBIENTE_PRUEBAS):
        """
        Inicializa la configuración SRI

        Args:
            ambiente: '1' (pruebas) o '2' (producción)
        """
        ambiente = str(ambiente).strip()
        if ambiente not in self.SOAP_SERVICES:
            raise ValueError(f"Ambiente inválido: {ambiente}. Debe ser '1' (pruebas) o '2' (producción)")

        self.ambiente = ambiente
        self.services: Dict[str, str] = dict(self.SOAP_SERVICES[ambiente])

        self.cert_path: Optional[str] = None
        self.cert_password: Optional[str] = None

        # Timeouts en segundos (connect, read)
        self.timeout_connect = _env_float("SRI_TIMEOUT_CONNECT", "15")
        self.timeout_read = _env_float("SRI_TIMEOUT_READ", "30")

        # Reintentos de transporte
        self.max_retries = _env_int("SRI_MAX_RETRIES", "3")
        self.backoff_base = _env_float("SRI_BACKOFF_BASE", "1.0")
        self.backoff_max = _env_float("SRI_BACKOFF_MAX", "30.0")

        # Polling de autorización
        self.poll_interval = _env_float("SRI_POLL_INTERVAL", "5")
        self.poll_max_wait = _env_float("SRI_POLL_MAX_WAIT", "60")
        self.poll_initial_delay = _env_float("SRI_POLL_INITIAL_DELAY", "2")

        self.artifacts_dir = os.getenv("SRI_ARTIFACTS_DIR") or None

        if self.max_retries < 1:
            raise ValueError(f"SRI_MAX_RETRIES debe ser >= 1 (recibido {self.max_retries})")

    @property
    def ambiente_nombre(self) -> str:
        return self.AMBIENTE_NOMBRES[self.ambiente]

    @property
    def timeout(self) -> Tuple[float, float]:
        """Timeout (connect, read) para requests"""
        return (self.timeout_connect, self.timeout_read)

    def get_soap_service_url(self, service_key: str) -> str:
        """
        Obtiene la URL de un servicio SOAP según el ambiente

        Args:
            service_key: 'recepcion' o 'autorizacion'

        Returns:
            URL del WSDL (o endpoint) del servicio
        """
        if service_key not in self.services:
            raise ValueError(f"Servicio SOAP inválido: {service_key}. Válidos: {sorted(self.services)}")
        return self.services[service_key]


def get_sri_config(ambiente: Optional[str] = None) -> SriConfig:
    """
    Obtiene la configuración SRI desde variables de entorno

    Args:
        ambiente: '1' o '2'. Si None, usa SRI_AMBIENTE

    Returns:
        Configuración SRI
    """
    if ambiente is None:
        ambiente = os.getenv("SRI_AMBIENTE", SriConfig.AMBIENTE_PRUEBAS)

    cfg = SriConfig(ambiente)

    try:
        cfg.cert_path, cfg.cert_password = get_cert_path_and_password()
    except RuntimeError:
        # El certificado puede venir del llamador (bytes) en lugar del entorno
        pass

    return cfg
