"""CLI tool to run aggregation cycles against the telemetry API."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import timedelta

from station_dashboard.config import Settings, configure_logging, get_settings
from station_dashboard.presentation import format_reading_time, partition_by_status
from station_dashboard.workflows.poll_stations import StationPoller

from .aggregation import AggregationPipeline
from .records import StationRecord


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Buscar dados das estações meteorológicas e mostrar as mais recentes."
    )
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Repetir a busca periodicamente em vez de executar um único ciclo",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Intervalo entre ciclos em segundos (default: polling.interval_seconds)",
    )
    parser.add_argument(
        "--max-cycles",
        type=int,
        default=None,
        help="Número máximo de ciclos no modo --watch",
    )
    parser.add_argument(
        "--rescan",
        action="store_true",
        help="Ignorar o cache de descoberta e sondar as estações novamente",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Imprimir os registros como JSON em vez do resumo",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Nível de log (default: logging.level)",
    )
    return parser


def render_summary(records: list[StationRecord], settings: Settings) -> str:
    window = timedelta(minutes=settings.polling.recency_window_minutes)
    active, disconnected = partition_by_status(records, window=window)
    lines = [
        "=" * 80,
        f"ESTAÇÕES: {len(records)} | ativas: {len(active)} | desconectadas: {len(disconnected)}",
        "=" * 80,
    ]
    for record in records:
        if record.is_error:
            lines.append(f"   ❌ {record.station_id:>3}  {record.name}: {record.error}")
            continue
        marker = "✓" if record in active else "⚠️"
        temperature = "—" if record.temperature is None else f"{record.temperature:.1f}°C"
        lines.append(
            f"   {marker} {record.station_id:>3}  {record.name}: {temperature} "
            f"({format_reading_time(record.timestamp)})"
        )
    return "\n".join(lines)


def _print_cycle(records: list[StationRecord], settings: Settings, as_json: bool) -> None:
    if as_json:
        print(json.dumps([record.to_dict() for record in records], ensure_ascii=False, indent=2))
    else:
        print(render_summary(records, settings))
    sys.stdout.flush()


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    pipeline = AggregationPipeline(settings)
    interval = settings.polling.interval_seconds if args.interval is None else args.interval
    poller = StationPoller(
        pipeline,
        interval_seconds=interval,
        on_cycle=lambda records: _print_cycle(records, settings, args.json),
    )
    try:
        if args.watch:
            await poller.run(max_cycles=args.max_cycles, force_rescan=args.rescan)
        else:
            records = await poller.run_once(force_rescan=args.rescan)
            if not records:
                return 1
    finally:
        await pipeline.aclose()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Collect station data once, or keep polling with ``--watch``."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level)
    try:
        return asyncio.run(_run(args, settings))
    except KeyboardInterrupt:
        print("\nInterrompido.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
