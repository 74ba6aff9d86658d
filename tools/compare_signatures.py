#!/usr/bin/env python3
"""
Verifica un comprobante firmado y compara su forma canónica, sección por
sección, contra un comprobante de referencia aceptado por el SRI.

Uso:
    python tools/compare_signatures.py generado.xml
    python tools/compare_signatures.py generado.xml --reference aceptado.xml
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from lxml import etree

from sri_client.diagnostics import diff_canonical, verify_signed_document


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Verificación local y diff canónico de firmas XAdES SRI.")
    ap.add_argument("signed", type=Path, help="XML firmado a verificar")
    ap.add_argument("--reference", type=Path, default=None, help="XML firmado de referencia")
    args = ap.parse_args(argv)

    try:
        signed = args.signed.read_bytes()
        report = verify_signed_document(signed)
    except (OSError, etree.XMLSyntaxError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    for ref in report.references:
        status = "OK " if ref.ok else "MAL"
        print(f"{status} {ref.uri} esperado={ref.expected} calculado={ref.computed}")
    print(f"SignatureValue: {'OK' if report.signature_ok else 'MAL'}")
    for err in report.errors:
        print(f"ERROR: {err}")

    exit_code = 0 if report.ok else 1

    if args.reference is not None:
        try:
            sections = diff_canonical(args.reference.read_bytes(), signed)
        except (OSError, etree.XMLSyntaxError) as e:
            print(f"ERROR: {e}", file=sys.stderr)
            return 2
        for section in sections:
            print(f"[{'=' if section.identical else '≠'}] {section.section}")
            if not section.identical:
                print(section.diff)

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
