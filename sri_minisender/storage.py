from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

logger = logging.getLogger(__name__)

ArtifactsPathLike = Optional[Union[str, Path]]


def _safe_token(value: str, *, fallback: str) -> str:
    token = re.sub(r"[^A-Za-z0-9._-]+", "-", (value or "").strip()).strip("-")
    return token or fallback


def resolve_artifacts_dir(artifacts_dir: ArtifactsPathLike = None) -> Path:
    """Resolve artifacts base dir and ensure it exists.

    Resolution order:
    1) explicit argument
    2) SRI_ARTIFACTS_DIR
    3) ./artifacts
    """
    raw = str(artifacts_dir).strip() if artifacts_dir is not None else ""
    if not raw:
        raw = (os.getenv("SRI_ARTIFACTS_DIR") or "").strip() or "artifacts"

    path = Path(raw).expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path
    path = path.resolve()
    path.mkdir(parents=True, exist_ok=True)
    return path


def make_run_dir(
    prefix: str,
    ambiente: str,
    *,
    clave_acceso: Optional[str] = None,
    artifacts_dir: ArtifactsPathLike = None,
) -> Path:
    """Create and return a per-run artifacts directory."""
    base_dir = resolve_artifacts_dir(artifacts_dir)
    ts = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    parts = [
        "run",
        ts,
        _safe_token(prefix, fallback="emision"),
        f"amb{_safe_token(str(ambiente), fallback='x')}",
    ]
    if clave_acceso:
        parts.append(_safe_token(clave_acceso, fallback="clave"))
    run_dir = base_dir / "_".join(parts)
    run_dir.mkdir(parents=True, exist_ok=True)
    return run_dir


class DocumentStore(Protocol):
    """Puerto de almacenamiento; el pipeline lo recibe explícitamente."""

    def save_signed(self, clave_acceso: str, signed_xml: bytes) -> None: ...

    def save_reception(self, clave_acceso: str, data: Dict[str, Any]) -> None: ...

    def save_authorization(self, clave_acceso: str, data: Dict[str, Any], comprobante: Optional[str]) -> None: ...


class NullDocumentStore:
    def save_signed(self, clave_acceso: str, signed_xml: bytes) -> None:
        pass

    def save_reception(self, clave_acceso: str, data: Dict[str, Any]) -> None:
        pass

    def save_authorization(self, clave_acceso: str, data: Dict[str, Any], comprobante: Optional[str]) -> None:
        pass


class FileSystemDocumentStore:
    """
    Guarda los artefactos de cada emisión en un directorio por corrida:

        <artifacts>/run_<ts>_emision_amb<N>_<clave>/
            <clave>_firmado.xml
            <clave>_recepcion.json
            <clave>_autorizacion.json
            <clave>_autorizado.xml
    """

    def __init__(self, ambiente: str = "1", artifacts_dir: ArtifactsPathLike = None):
        self.ambiente = ambiente
        self.artifacts_dir = artifacts_dir
        self._run_dirs: Dict[str, Path] = {}

    def run_dir(self, clave_acceso: str) -> Path:
        if clave_acceso not in self._run_dirs:
            self._run_dirs[clave_acceso] = make_run_dir(
                "emision", self.ambiente, clave_acceso=clave_acceso, artifacts_dir=self.artifacts_dir
            )
        return self._run_dirs[clave_acceso]

    def _write_json(self, path: Path, data: Dict[str, Any]) -> None:
        path.write_text(json.dumps(data, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
        logger.debug(f"Artefacto guardado: {path.name}")

    def save_signed(self, clave_acceso: str, signed_xml: bytes) -> None:
        path = self.run_dir(clave_acceso) / f"{clave_acceso}_firmado.xml"
        path.write_bytes(signed_xml)
        logger.debug(f"Artefacto guardado: {path.name}")

    def save_reception(self, clave_acceso: str, data: Dict[str, Any]) -> None:
        self._write_json(self.run_dir(clave_acceso) / f"{clave_acceso}_recepcion.json", data)

    def save_authorization(self, clave_acceso: str, data: Dict[str, Any], comprobante: Optional[str]) -> None:
        run_dir = self.run_dir(clave_acceso)
        self._write_json(run_dir / f"{clave_acceso}_autorizacion.json", data)
        if comprobante:
            (run_dir / f"{clave_acceso}_autorizado.xml").write_text(comprobante, encoding="utf-8")
