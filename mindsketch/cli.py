"""Command-line interface for MindSketch.

Works against the autosaved session in the local store, so a map built in
a host UI can be exported, rendered or replaced from a terminal.

Usage:
  mindsketch new --title "Biology - Cell Structure"
  mindsketch export --out biology.json
  mindsketch import --file biology.json
  mindsketch render --out biology.png
  mindsketch verify [--file biology.json]
  mindsketch backup

Set MINDSKETCH_DATA_DIR (or pass --data-dir) to use another data directory.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from mindsketch.config import AppSettings
from mindsketch.database import Database, get_data_dir
from mindsketch.errors import InvalidPayloadError
from mindsketch.layout import visible_node_ids
from mindsketch.logging_config import setup_logging
from mindsketch.model import DEFAULT_BG_COLOR, check_invariants
from mindsketch.outline import outline_lines
from mindsketch.payload import dumps, export_filename, loads
from mindsketch.session import MindMapSession


def _data_dir(args: argparse.Namespace) -> Path:
    if args.data_dir:
        data_dir = Path(args.data_dir).expanduser()
        (data_dir / "exports").mkdir(parents=True, exist_ok=True)
        (data_dir / "backups").mkdir(exist_ok=True)
        return data_dir
    return get_data_dir()


def _open_store(args: argparse.Namespace) -> Database:
    return Database(_data_dir(args) / "mindsketch.db")


def _load_saved(db: Database) -> MindMapSession | None:
    session = MindMapSession(db)
    if not session.restore():
        sys.stderr.write("No saved mind map found. Create one with `mindsketch new`.\n")
        return None
    return session


def _cmd_new(args: argparse.Namespace) -> int:
    db = _open_store(args)
    try:
        session = MindMapSession(db)
        try:
            mind_map = session.create_map(args.title, args.description, args.bg)
        except ValueError as exc:
            sys.stderr.write(f"{exc}\n")
            return 1
        print(f"Created map {mind_map.id} ({mind_map.title})")
        return 0
    finally:
        db.close()


def _cmd_export(args: argparse.Namespace) -> int:
    db = _open_store(args)
    try:
        session = _load_saved(db)
        if session is None:
            return 2
        if args.out:
            out = Path(args.out)
        else:
            out = _data_dir(args) / "exports" / export_filename(session.map.title)
        out.write_text(dumps(session.export_payload()), encoding="utf-8")
        print(f"Wrote payload: {out.expanduser().resolve()}")
        return 0
    finally:
        db.close()


def _cmd_import(args: argparse.Namespace) -> int:
    path = Path(args.file)
    if not path.exists():
        sys.stderr.write(f"File not found: {path}\n")
        return 2
    db = _open_store(args)
    try:
        session = MindMapSession(db)
        if not session.import_json(path.read_text(encoding="utf-8")):
            sys.stderr.write("Invalid file format.\n")
            return 1
        print(f"Import complete ({len(session.map.nodes)} nodes)")
        return 0
    finally:
        db.close()


def _cmd_render(args: argparse.Namespace) -> int:
    out = Path(args.out)
    suffix = out.suffix.lower()
    if suffix not in (".png", ".pdf", ".md"):
        sys.stderr.write(f"Unsupported output type {suffix or '(none)'}; use .png, .pdf or .md\n")
        return 1

    db = _open_store(args)
    try:
        session = _load_saved(db)
        if session is None:
            return 2
        if suffix == ".md":
            out.write_text("\n".join(outline_lines(session.map)) + "\n", encoding="utf-8")
        else:
            # pycairo is only needed for raster/vector output
            from mindsketch.export import MindMapExporter
            exporter = MindMapExporter(session)
            if suffix == ".png":
                exporter.export_png(out, scale=args.scale)
            else:
                exporter.export_pdf(out, page_size=args.page_size)
        print(f"Wrote {out.expanduser().resolve()}")
        return 0
    finally:
        db.close()


def _report(session: MindMapSession, source: str) -> int:
    mind_map = session.map
    problems = check_invariants(mind_map)
    print("MindSketch map verification")
    print(f"  Source: {source}")
    print(f"  Map: {mind_map.title} ({mind_map.id})")
    print(f"  Counts: nodes={len(mind_map.nodes)} visible={len(visible_node_ids(mind_map))} "
          f"overrides={len(session.overlay)}")
    print(f"  Tree invariants: {'OK' if not problems else 'FAILED'}")
    for problem in problems:
        print(f"    - {problem}")
    return 0 if not problems else 1


def _cmd_verify(args: argparse.Namespace) -> int:
    if args.file:
        path = Path(args.file)
        if not path.exists():
            sys.stderr.write(f"File not found: {path}\n")
            return 2
        try:
            payload = loads(path.read_text(encoding="utf-8"))
        except InvalidPayloadError as exc:
            print("MindSketch map verification")
            print(f"  Source: {path}")
            print(f"  Payload: INVALID ({exc})")
            return 1
        session = MindMapSession(settings=AppSettings(autosave=False))
        session.replace_all(payload.mind_map, payload.positions)
        return _report(session, str(path))

    db = _open_store(args)
    try:
        session = _load_saved(db)
        if session is None:
            return 2
        return _report(session, str(db.db_path))
    finally:
        db.close()


def _cmd_backup(args: argparse.Namespace) -> int:
    db = _open_store(args)
    try:
        path = db.create_backup(_data_dir(args) / "backups")
        print(f"Wrote backup: {path}")
        return 0
    finally:
        db.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="mindsketch")
    parser.add_argument("--data-dir", help="Data directory (default ~/.local/share/mindsketch)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_new = sub.add_parser("new", help="Create a new map (replaces the saved one)")
    p_new.add_argument("--title", required=True)
    p_new.add_argument("--description")
    p_new.add_argument("--bg", default=DEFAULT_BG_COLOR, help="Background color")
    p_new.set_defaults(func=_cmd_new)

    p_exp = sub.add_parser("export", help="Export the saved map as a JSON payload")
    p_exp.add_argument("--out", help="Output .json path (default exports/<title>_<date>.json)")
    p_exp.set_defaults(func=_cmd_export)

    p_imp = sub.add_parser("import", help="Replace the saved map with a JSON payload")
    p_imp.add_argument("--file", required=True, help="Input .json path")
    p_imp.set_defaults(func=_cmd_import)

    p_ren = sub.add_parser("render", help="Render the saved map to PNG, PDF or Markdown")
    p_ren.add_argument("--out", required=True, help="Output path (.png, .pdf or .md)")
    p_ren.add_argument("--scale", type=float, default=2.0, help="PNG scale factor")
    p_ren.add_argument("--page-size", default="A4", choices=("A4", "Letter", "Auto"))
    p_ren.set_defaults(func=_cmd_render)

    p_ver = sub.add_parser("verify", help="Check a payload file or the saved map")
    p_ver.add_argument("--file", help="Payload to verify (default: the saved map)")
    p_ver.set_defaults(func=_cmd_verify)

    p_bak = sub.add_parser("backup", help="Snapshot the local store")
    p_bak.set_defaults(func=_cmd_backup)

    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
