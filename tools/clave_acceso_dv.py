#!/usr/bin/env python3
# tools/clave_acceso_dv.py
# DV módulo 11 de la clave de acceso SRI (49 dígitos)

from __future__ import annotations

import argparse
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from sri_client.clave_acceso import (
    ClaveAccesoGenerator,
    calc_dv_mod11,
    fix_clave_acceso,
    is_clave_acceso_valid,
)
from sri_client.exceptions import SriValidationError


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Calcula, valida o corrige el DV de una clave de acceso SRI.")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_dv = sub.add_parser("dv", help="Calcula el DV de 48 dígitos base")
    p_dv.add_argument("base")
    p_check = sub.add_parser("check", help="Valida una clave de 49 dígitos")
    p_check.add_argument("clave")
    p_fix = sub.add_parser("fix", help="Corrige el DV de una clave de 49 dígitos")
    p_fix.add_argument("clave")
    p_parse = sub.add_parser("parse", help="Muestra los campos de una clave")
    p_parse.add_argument("clave")

    args = ap.parse_args(argv)

    try:
        if args.cmd == "dv":
            print(calc_dv_mod11(args.base))
            return 0
        if args.cmd == "check":
            ok = is_clave_acceso_valid(args.clave.strip())
            print("OK" if ok else "INVALIDA")
            return 0 if ok else 1
        if args.cmd == "fix":
            print(fix_clave_acceso(args.clave))
            return 0
        info = ClaveAccesoGenerator.parse(args.clave.strip())
    except (ValueError, SriValidationError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    print(f"fecha_emision={info.fecha_emision.isoformat()}")
    print(f"tipo_comprobante={info.tipo_comprobante} ({info.tipo_comprobante_nombre})")
    print(f"ruc={info.ruc}")
    print(f"ambiente={info.ambiente}")
    print(f"numero={info.numero_comprobante}")
    print(f"codigo_numerico={info.codigo_numerico}")
    print(f"tipo_emision={info.tipo_emision}")
    print(f"dv={info.digito_verificador}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
