# src/cli/__main__.py
import json
import sys
from pathlib import Path

from src.core.costs import aggregate
from src.core.errors import QuoteEngineError
from src.core.geometry import parse_analysis
from src.core.quantity import summarize_geometry
from src.services.quote_service import material_lines_for

USAGE = """Usage:
  python -m src.cli estimate <analysis.json>
  python -m src.cli aggregate <items.json> [--discount=N] [--other=N] [--no-vat]
  python -m src.cli import-catalog [catalog_dir]

Examples:
  python -m src.cli estimate floorplan_analysis.json
  python -m src.cli aggregate items.json --discount=50000 --no-vat
  python -m src.cli import-catalog knowledge/catalogs
"""


def _load_json(p: str):
    try:
        return json.loads(Path(p).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error reading JSON '{p}': {e}", file=sys.stderr)
        sys.exit(2)


def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


def _int_flag(arg: str) -> int:
    value = arg.split("=", 1)[1]
    try:
        return int(value)
    except ValueError:
        print(f"Not a whole number: {arg}", file=sys.stderr)
        sys.exit(1)


def cmd_estimate(args) -> None:
    if not args:
        print(USAGE, file=sys.stderr); sys.exit(1)
    analysis = parse_analysis(_load_json(args[0]))
    lines, source = material_lines_for(analysis)
    _print_json({
        "quantity_source": source,
        "low_confidence": analysis.low_confidence,
        "geometry": summarize_geometry(analysis.rooms, analysis.calculations),
        "lines": [l.to_dict() for l in lines],
    })


def cmd_aggregate(args) -> None:
    if not args:
        print(USAGE, file=sys.stderr); sys.exit(1)

    discount = 0
    other = 0
    vat = True
    for arg in args[1:]:
        if arg.startswith("--discount="):
            discount = _int_flag(arg)
        elif arg.startswith("--other="):
            other = _int_flag(arg)
        elif arg == "--no-vat":
            vat = False

    data = _load_json(args[0])
    items = data.get("items", []) if isinstance(data, dict) else data
    _print_json(aggregate(items, discount, vat, other).to_dict())


def cmd_import_catalog(args) -> None:
    from sqlmodel import Session

    from src.server.db.session import engine, init_db
    from src.server.loaders.catalog_loader import CatalogLoader

    init_db()
    with Session(engine) as session:
        try:
            reports = CatalogLoader(session).import_dir(args[0] if args else None)
        except (FileNotFoundError, ValueError) as e:
            print(f"Import failed: {e}", file=sys.stderr)
            sys.exit(2)
    for r in reports:
        print(f"{r.filename}: {r.inserted} inserted, {r.updated} updated, {r.skipped} skipped")


COMMANDS = {
    "estimate": cmd_estimate,
    "aggregate": cmd_aggregate,
    "import-catalog": cmd_import_catalog,
}


def main():
    if len(sys.argv) < 2 or sys.argv[1].lower() not in COMMANDS:
        print(USAGE, file=sys.stderr); sys.exit(1)

    from src.server.settings.config import configure_logging
    configure_logging()

    try:
        COMMANDS[sys.argv[1].lower()](sys.argv[2:])
    except QuoteEngineError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
