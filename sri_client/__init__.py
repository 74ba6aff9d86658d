"""
Módulo cliente para comprobantes electrónicos del SRI
Ecuador - Servicio de Rentas Internas
"""
from .config import SriConfig, get_sri_config
from .clave_acceso import ClaveAccesoGenerator, ClaveAccesoInfo, ClaveAccesoParams
from .c14n import CanonicalFormEngine
from .digest import DigestChain, sha1_base64
from .certificates import CertificateMaterial, CertificateStore, load_p12, load_p12_file
from .issuer_name import IssuerNamePolicy, LiteralOverridePolicy, default_issuer_policy
from .xades_signer import SignatureContext, XadesSigner
from .models import (
    AuthorizationRecord,
    AuthorizationResult,
    ReceptionResult,
    SriMessage,
    SubmissionState,
)
from .retry import RetryPolicy
from .soap_client import SoapClient
from .submission import SubmissionClient
from .exceptions import (
    SriException,
    SriValidationError,
    SriCertificateError,
    SriAuthenticationError,
    SriCertificateParsingError,
    SriExpiredCertificateError,
    SriCertificateNotYetValidError,
    SriCanonicalizationError,
    SriSignatureError,
    SriTransportError,
    SriResponseError,
    SriAuthorizationTimeoutError,
    SriPollCancelledError,
)

__all__ = [
    'SriConfig',
    'get_sri_config',
    'ClaveAccesoGenerator',
    'ClaveAccesoInfo',
    'ClaveAccesoParams',
    'CanonicalFormEngine',
    'DigestChain',
    'sha1_base64',
    'CertificateMaterial',
    'CertificateStore',
    'load_p12',
    'load_p12_file',
    'IssuerNamePolicy',
    'LiteralOverridePolicy',
    'default_issuer_policy',
    'SignatureContext',
    'XadesSigner',
    'AuthorizationRecord',
    'AuthorizationResult',
    'ReceptionResult',
    'SriMessage',
    'SubmissionState',
    'RetryPolicy',
    'SoapClient',
    'SubmissionClient',
    'SriException',
    'SriValidationError',
    'SriCertificateError',
    'SriAuthenticationError',
    'SriCertificateParsingError',
    'SriExpiredCertificateError',
    'SriCertificateNotYetValidError',
    'SriCanonicalizationError',
    'SriSignatureError',
    'SriTransportError',
    'SriResponseError',
    'SriAuthorizationTimeoutError',
    'SriPollCancelledError',
]
