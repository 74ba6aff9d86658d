import json
from pathlib import Path

from sri_minisender.storage import (
    FileSystemDocumentStore,
    NullDocumentStore,
    make_run_dir,
    resolve_artifacts_dir,
)

CLAVE = "1501202401179214673900110010010000000011234567810"


def test_resolve_artifacts_dir_uses_env(monkeypatch, tmp_path: Path):
    env_dir = tmp_path / "env_sri"
    monkeypatch.setenv("SRI_ARTIFACTS_DIR", str(env_dir))

    resolved = resolve_artifacts_dir()

    assert resolved == env_dir.resolve()
    assert resolved.is_dir()


def test_resolve_artifacts_dir_argument_wins(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("SRI_ARTIFACTS_DIR", str(tmp_path / "env"))

    assert resolve_artifacts_dir(tmp_path / "arg") == (tmp_path / "arg").resolve()


def test_resolve_artifacts_dir_default_is_relative_to_cwd(monkeypatch, tmp_path: Path):
    monkeypatch.delenv("SRI_ARTIFACTS_DIR", raising=False)
    monkeypatch.chdir(tmp_path)

    assert resolve_artifacts_dir("") == (tmp_path / "artifacts").resolve()


def test_make_run_dir_creates_run_directory(tmp_path: Path):
    run_dir = make_run_dir("autorizacion", "1", clave_acceso=CLAVE, artifacts_dir=tmp_path)

    assert run_dir.is_dir()
    assert run_dir.parent == tmp_path.resolve()
    assert run_dir.name.startswith("run_")
    assert run_dir.name.endswith(f"_autorizacion_amb1_{CLAVE}")


def test_filesystem_store_writes_artifacts(tmp_path: Path):
    store = FileSystemDocumentStore("1", tmp_path)

    store.save_signed(CLAVE, b"<factura/>")
    store.save_reception(CLAVE, {"state": "RECEIVED", "estado": "RECIBIDA"})
    store.save_authorization(CLAVE, {"state": "AUTHORIZED", "mensajes": []}, "<factura>ñ</factura>")

    run_dir = store.run_dir(CLAVE)
    assert (run_dir / f"{CLAVE}_firmado.xml").read_bytes() == b"<factura/>"
    assert json.loads((run_dir / f"{CLAVE}_recepcion.json").read_text(encoding="utf-8"))["estado"] == "RECIBIDA"
    assert json.loads((run_dir / f"{CLAVE}_autorizacion.json").read_text(encoding="utf-8"))["state"] == "AUTHORIZED"
    assert (run_dir / f"{CLAVE}_autorizado.xml").read_text(encoding="utf-8") == "<factura>ñ</factura>"
    assert len(list(tmp_path.iterdir())) == 1


def test_filesystem_store_skips_missing_authorized_xml(tmp_path: Path):
    store = FileSystemDocumentStore("2", tmp_path)

    store.save_authorization(CLAVE, {"state": "NOT_AUTHORIZED"}, None)

    assert not (store.run_dir(CLAVE) / f"{CLAVE}_autorizado.xml").exists()


def test_null_store_accepts_everything():
    store = NullDocumentStore()

    store.save_signed(CLAVE, b"")
    store.save_reception(CLAVE, {})
    store.save_authorization(CLAVE, {}, None)
