#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import requests
from lxml import etree

from sri_client.clave_acceso import is_clave_acceso_valid
from sri_client.config import get_sri_config
from sri_client.exceptions import SriResponseError
from sri_client.soap_client import (
    SOAP_HEADERS,
    SoapClient,
    build_autorizacion_envelope,
    parse_autorizacion_response,
    parse_soap_fault,
)
from sri_minisender.storage import make_run_dir

STOP_ESTADOS = {"AUTORIZADO", "NO AUTORIZADO", "RECHAZADO"}


def _write_parsed_file(output_path: Path, http_status: Optional[int], parsed: Dict[str, Any]) -> None:
    lines: List[str] = [
        f"HTTP={http_status}",
        f"claveAccesoConsultada={parsed.get('clave_acceso_consultada')}",
        f"numeroComprobantes={parsed.get('numero_comprobantes')}",
    ]
    for item in parsed.get("autorizaciones", []):
        lines.append(
            "autorizacion: "
            f"estado={item.get('estado')}, "
            f"numeroAutorizacion={item.get('numero_autorizacion')}, "
            f"fechaAutorizacion={item.get('fecha_autorizacion')}"
        )
        for msg in item.get("mensajes") or []:
            lines.append(
                f"  mensaje: [{msg.get('tipo')} {msg.get('identificador')}] {msg.get('mensaje')}"
                + (f" ({msg.get('informacion_adicional')})" if msg.get("informacion_adicional") else "")
            )
    if parsed.get("error"):
        lines.append(f"ERROR: {parsed['error']}")
    output_path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def parse_response_bytes(content: bytes) -> Dict[str, Any]:
    root = etree.fromstring(content)
    fault = parse_soap_fault(root)
    if fault:
        return {"autorizaciones": [], "error": f"SOAP Fault {fault[0]}: {fault[1]}"}
    return parse_autorizacion_response(root)


def main() -> int:
    ap = argparse.ArgumentParser(description="Poll de autorizacionComprobante SRI con artifacts por intento.")
    ap.add_argument("--ambiente", choices=["1", "2"], default=None, help="1 pruebas, 2 producción (default SRI_AMBIENTE)")
    ap.add_argument("--clave", required=True, help="Clave de acceso de 49 dígitos")
    ap.add_argument("--retries", type=int, default=12)
    ap.add_argument("--sleep", type=float, default=5, dest="sleep_seconds")
    ap.add_argument("--artifacts-dir", default=None)
    args = ap.parse_args()

    if not is_clave_acceso_valid(args.clave.strip()):
        raise SystemExit(f"ERROR: clave de acceso inválida: {args.clave!r}")
    if args.retries < 1:
        raise SystemExit("ERROR: --retries debe ser >= 1")
    if args.sleep_seconds < 0:
        raise SystemExit("ERROR: --sleep debe ser >= 0")

    config = get_sri_config(args.ambiente)
    clave = args.clave.strip()
    with SoapClient(config) as soap:
        endpoint = soap._resolve_endpoint("autorizacion")

    final_estado: Optional[str] = None
    for attempt in range(1, args.retries + 1):
        soap_bytes = build_autorizacion_envelope(clave)
        run_dir = make_run_dir("autorizacion", config.ambiente, clave_acceso=clave, artifacts_dir=args.artifacts_dir)
        (run_dir / "req.xml").write_bytes(soap_bytes)

        http_status: Optional[int] = None
        try:
            response = requests.post(
                endpoint,
                data=soap_bytes,
                headers=dict(SOAP_HEADERS),
                timeout=config.timeout,
            )
            http_status = response.status_code
            (run_dir / "resp.xml").write_bytes(response.content or b"")
            parsed = parse_response_bytes(response.content or b"")
        except (requests.exceptions.RequestException, etree.XMLSyntaxError, SriResponseError) as exc:
            (run_dir / "resp.xml").write_text(f"ERROR: {exc}\n", encoding="utf-8")
            parsed = {"autorizaciones": [], "error": str(exc)}

        _write_parsed_file(run_dir / "parsed.txt", http_status, parsed)

        estados = [a.get("estado") for a in parsed.get("autorizaciones", [])]
        final_estado = "AUTORIZADO" if "AUTORIZADO" in estados else (estados[0] if estados else None)
        print(
            f"[{attempt}/{args.retries}] {datetime.now().isoformat(timespec='seconds')} dir={run_dir} "
            f"HTTP={http_status} estado={final_estado} error={parsed.get('error')}"
        )

        if final_estado in STOP_ESTADOS:
            print(f"Stop: estado={final_estado}")
            return 0 if final_estado == "AUTORIZADO" else 1

        if attempt < args.retries:
            time.sleep(args.sleep_seconds)

    print(f"Fin de reintentos. Último estado={final_estado!r}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
