#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from sri_client.config import get_cert_path_and_password, get_sri_config
from sri_client.exceptions import SriException
from sri_minisender.core_send import build_submission_client, process_document, sign_document
from sri_minisender.storage import FileSystemDocumentStore


def main() -> int:
    ap = argparse.ArgumentParser(description="Firma un comprobante y lo envía al SRI (recepción + autorización).")
    ap.add_argument("--xml", required=True, type=Path, help="Comprobante sin firmar")
    ap.add_argument("--ambiente", choices=["1", "2"], default=None)
    ap.add_argument("--sign-only", action="store_true", help="Solo firmar, no enviar")
    ap.add_argument("--out", type=Path, default=None, help="Ruta del XML firmado (con --sign-only)")
    ap.add_argument("--artifacts-dir", default=None)
    args = ap.parse_args()

    try:
        cert_path, cert_password = get_cert_path_and_password()
    except RuntimeError as e:
        raise SystemExit(f"ERROR: {e}")

    xml_bytes = args.xml.read_bytes()
    p12_bytes = Path(cert_path).read_bytes()

    if args.sign_only:
        try:
            clave, signed = sign_document(xml_bytes, p12_bytes, cert_password)
        except (SriException, RuntimeError) as e:
            print(f"ERROR: {type(e).__name__}: {e}", file=sys.stderr)
            return 1
        out = args.out or args.xml.with_name(f"{clave}_firmado.xml")
        out.write_bytes(signed)
        print(f"clave_acceso={clave}")
        print(f"firmado={out}")
        return 0

    config = get_sri_config(args.ambiente)
    client = build_submission_client(config)
    store = FileSystemDocumentStore(config.ambiente, args.artifacts_dir or config.artifacts_dir)
    try:
        result = process_document(xml_bytes, p12_bytes, cert_password, client, store=store)
    finally:
        client.soap_client.close()

    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
