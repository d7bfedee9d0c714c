"""townlens CLI: comparison reports, nearby cities and name lookup."""

import argparse
import asyncio
import sys
from pathlib import Path

from townlens.config import settings
from townlens.core.errors import ConfigurationError, TownlensError, ValidationError
from townlens.observability.logging import setup_logging


def _print_error(exc: TownlensError) -> None:
    print(f"Error: {exc.message}", file=sys.stderr)
    for hint in exc.hints:
        print(f"  - {hint}", file=sys.stderr)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="townlens", description=__doc__)
    sub = parser.add_subparsers(dest="command", required=True)

    report = sub.add_parser("report", help="Compare 2-5 municipalities")
    report.add_argument("codes", nargs="+", help="5-digit municipality codes (e.g. 13104 13113)")
    report.add_argument("--preset", default="childcare", choices=["childcare", "price", "safety"])
    report.add_argument("--no-price", action="store_true")
    report.add_argument("--no-safety", action="store_true")
    report.add_argument("--no-education", action="store_true")
    report.add_argument("--no-healthcare", action="store_true")
    report.add_argument("--no-transport", action="store_true")
    report.add_argument("--strict", action="store_true", help="Fail if a category has no data anywhere")
    report.add_argument("--out", type=Path, help="Directory to write SVG charts into")

    nearby = sub.add_parser("nearby", help="List municipalities near a code")
    nearby.add_argument("code")
    nearby.add_argument("--radius", type=float, default=20.0, help="Radius in km (default 20)")
    nearby.add_argument("--limit", type=int, default=6)

    lookup = sub.add_parser("lookup", help="Find a municipality by name or hiragana reading")
    lookup.add_argument("query")
    return parser


def _run_report(args: argparse.Namespace) -> int:
    from townlens.core.types import PipelineOptions
    from townlens.pipeline.report import run_pipeline
    from townlens.scoring.stars import star_text

    options = PipelineOptions(
        include_price=not args.no_price,
        include_safety=not args.no_safety,
        include_education=not args.no_education,
        include_healthcare=not args.no_healthcare,
        include_transport=not args.no_transport,
        strict=args.strict,
    )
    result = asyncio.run(run_pipeline(args.codes, args.preset, options))

    print(f"\n{'=' * 50}")
    print(f"{result.preset.label}  ({len(result.municipality_codes)} municipalities)")
    print(f"{'=' * 50}")
    for entry in result.ranking:
        stars = result.result_for(entry.municipality_code).star_rating
        stars_text = f"  {star_text(stars)} {stars:.1f}" if stars is not None else ""
        print(f"  {entry.rank}. {entry.city_name:<12} {entry.overall_score:>6.1f}{stars_text}")

    print("\nData availability:")
    for r in result.results:
        missing = [c.value for c, ok in r.data_availability.items() if not ok]
        status = "complete" if not missing else "missing " + ", ".join(missing)
        print(f"  {r.municipality_code}: {status}")
        if r.confidence is not None:
            print(f"    confidence {r.confidence.level.value}: {r.confidence.reason}")

    print()
    for line in result.narrative:
        print(line)

    if args.out:
        args.out.mkdir(parents=True, exist_ok=True)
        for name, svg in result.charts.items():
            if not svg:
                continue
            path = args.out / (name.replace(":", "_") + ".svg")
            path.write_text(svg, encoding="utf-8")
        print(f"\nCharts written to {args.out}")
    return 0


def _run_nearby(args: argparse.Namespace) -> int:
    from townlens.catalog import readings
    from townlens.retrieval.locations import nearby_cities, resolve_location

    if resolve_location(args.code) is None:
        print(f"No location for {args.code}")
        return 1
    cities = nearby_cities(args.code, radius_km=args.radius, limit=args.limit)
    print(f"Within {args.radius:.0f}km of {readings.display_name(args.code)}:")
    if not cities:
        print("  (none)")
    for city in cities:
        print(f"  {city.municipality_code}  {city.city_name:<12} {city.distance_km:>5.1f} km")
    return 0


def _run_lookup(args: argparse.Namespace) -> int:
    from townlens.catalog import readings

    entry = readings.resolve(args.query)
    if entry is not None:
        print(f"{entry.code}  {entry.display_name}  ({', '.join(entry.readings)})")
        return 0
    names = readings.find_by_reading(args.query)
    if names:
        print(f"Ambiguous reading {args.query}:")
        for name in names:
            match = readings.get_by_name(name)
            print(f"  {match.code}  {name}")
        return 0
    print(f"No municipality registered for {args.query}")
    return 1


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    setup_logging(json_format=settings.log_json, level=settings.log_level)

    from townlens.catalog.datasets import load_catalog

    handlers = {"report": _run_report, "nearby": _run_nearby, "lookup": _run_lookup}
    try:
        load_catalog()
        code = handlers[args.command](args)
    except (ConfigurationError, ValidationError) as exc:
        _print_error(exc)
        sys.exit(2)
    except TownlensError as exc:
        _print_error(exc)
        sys.exit(1)
    sys.exit(code)


if __name__ == "__main__":
    main()
