"""
Excepciones personalizadas para el cliente SRI
"""
from typing import List, Optional


class SriException(Exception):
    """Excepción base para errores SRI"""
    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code
        super().__init__(self.message)


class SriValidationError(SriException):
    """Error de validación de datos de entrada (se reportan todos los campos)"""
    def __init__(self, message: str, errors: Optional[List[str]] = None, code: Optional[str] = None):
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message}: " + "; ".join(self.errors)
        super().__init__(message, code)


class SriCertificateError(SriException):
    """Material de certificado inutilizable para firmar"""
    pass


class SriAuthenticationError(SriCertificateError):
    """Contraseña incorrecta del contenedor PKCS#12"""
    pass


class SriCertificateParsingError(SriCertificateError):
    """El contenedor PKCS#12 no tiene una estructura válida"""
    pass


class SriExpiredCertificateError(SriCertificateError):
    """El certificado ya expiró"""
    pass


class SriCertificateNotYetValidError(SriCertificateError):
    """El certificado todavía no es válido"""
    pass


class SriCanonicalizationError(SriException):
    """Error al canonicalizar un nodo XML"""
    pass


class SriSignatureError(SriException):
    """Error en la firma digital"""
    pass


class SriTransportError(SriException):
    """Falla de transporte contra el SRI (timeout, conexión, HTTP 5xx)"""
    def __init__(
        self,
        message: str,
        retryable: bool = True,
        http_status: Optional[int] = None,
        code: Optional[str] = None,
    ):
        self.retryable = retryable
        self.http_status = http_status
        super().__init__(message, code)


class SriResponseError(SriException):
    """Respuesta del SRI inválida o SOAP Fault"""
    def __init__(self, message: str, code: Optional[str] = None, http_status: Optional[int] = None):
        self.http_status = http_status
        super().__init__(message, code)


class SriAuthorizationTimeoutError(SriException, TimeoutError):
    """No se alcanzó un estado final de autorización dentro del tiempo máximo"""
    def __init__(self, clave_acceso: str, max_wait: float, attempts: int):
        self.clave_acceso = clave_acceso
        self.max_wait = max_wait
        self.attempts = attempts
        message = (
            f"Autorización de {clave_acceso} sin estado final tras {max_wait:g}s "
            f"({attempts} consultas)"
        )
        super().__init__(message, "TIMEOUT")


class SriPollCancelledError(SriException):
    """La consulta de autorización fue cancelada por el llamador"""
    pass
