"""Command line entry points for the customer insights toolkit.

Every command reads a JSON snapshot (collaborators plus stored records),
runs one operation against it and writes a JSON result. Commands that
change records can also write the updated snapshot with ``--snapshot-out``.

Snapshot keys: ``persons``, ``sessions``, ``campaigns`` (collaborators) and
``conversions``, ``attributions``, ``goals``, ``journey_events``,
``sentiments``, ``scores``, ``segments``, ``segment_members``,
``experiments``, ``forecasts`` (records).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

from customer_insights.config import InsightsConfig
from customer_insights.exceptions import InsightsError
from customer_insights.foundation import ScoreType
from customer_insights.foundation.records import parse_datetime, to_jsonable
from customer_insights.service import AnalyticsCore

logger = logging.getLogger(__name__)


MAX_INPUT_BYTES = 25 * 1024 * 1024  # 25 MiB cap to avoid accidental OOM


def _load_snapshot(path: Path) -> dict[str, Any]:
    resolved = path.resolve()
    size = resolved.stat().st_size
    if size > MAX_INPUT_BYTES:
        raise ValueError(
            f"Input file {resolved} is {size} bytes; exceeds limit of {MAX_INPUT_BYTES} bytes"
        )
    with path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    if not isinstance(payload, dict):
        raise ValueError("Expected a JSON object snapshot in the input file")
    return payload


def _checked_output(path: Path) -> Path:
    output_path = path.resolve()
    cwd = Path.cwd().resolve()
    try:
        output_path.relative_to(cwd)
    except ValueError:
        raise ValueError(
            f"Output path {output_path} must reside within the current working directory"
        )
    return output_path


def _write_json(payload: Any, output: Optional[Path]) -> None:
    data = to_jsonable(payload)
    if output:
        output_path = _checked_output(output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2, sort_keys=True)
    else:  # stdout fallback enables piping in shell usage.
        json.dump(data, fp=sys.stdout, indent=2, sort_keys=True)
        print()


def _parser(description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument("input", type=Path, help="Path to JSON snapshot file")
    parser.add_argument(
        "--output",
        type=Path,
        help="Optional path for writing the result as JSON (stdout otherwise).",
    )
    return parser


def _add_snapshot_out(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--snapshot-out",
        type=Path,
        help="Optional path for writing the updated snapshot as JSON.",
    )


def _core(path: Path) -> AnalyticsCore:
    logger.info("Loading snapshot from %s", path)
    return AnalyticsCore.from_snapshot(_load_snapshot(path), InsightsConfig.from_env())


def _save_snapshot(core: AnalyticsCore, path: Optional[Path], source: dict[str, Any]) -> None:
    if path is None:
        return
    payload = core.snapshot()
    for key in ("persons", "sessions", "campaigns"):
        payload[key] = source.get(key, [])
    _write_json(payload, path)
    logger.info("Updated snapshot written to %s", path)


def forecast_accuracy_cli(argv: list[str] | None = None) -> int:
    """Compare budget forecasts with actual purchase revenue.

    Scores one forecast with ``--forecast-id``, otherwise every forecast
    whose window has ended.
    """
    parser = _parser("Compare budget forecasts with actual purchase revenue")
    parser.add_argument("--forecast-id", help="Forecast to score (default: all ended)")
    _add_snapshot_out(parser)
    args = parser.parse_args(argv)

    source = _load_snapshot(args.input)
    core = AnalyticsCore.from_snapshot(source, InsightsConfig.from_env())
    try:
        result = core.forecast_accuracy(args.forecast_id)
    except InsightsError as exc:
        logger.error("Forecast accuracy failed: %s", exc)
        return 1

    _write_json(result, args.output)
    _save_snapshot(core, args.snapshot_out, source)
    return 0


def experiment_results_cli(argv: list[str] | None = None) -> int:
    """Print the statistical report for one A/B experiment."""
    parser = _parser("Report A/B experiment results")
    parser.add_argument("experiment_id", help="Experiment to report on")
    args = parser.parse_args(argv)

    core = _core(args.input)
    try:
        report = core.experiment_results(args.experiment_id)
    except InsightsError as exc:
        logger.error("Experiment results failed: %s", exc)
        return 1

    _write_json(report, args.output)
    return 0


def build_segments_cli(argv: list[str] | None = None) -> int:
    """Rebuild segment membership.

    Builds the segments given with ``--segment-id`` or, without it, every
    active auto-update segment.
    """
    parser = _parser("Rebuild customer segment membership")
    parser.add_argument(
        "--segment-id",
        dest="segment_ids",
        action="append",
        help="Segment to build (repeatable; default: all auto-update segments).",
    )
    _add_snapshot_out(parser)
    args = parser.parse_args(argv)

    source = _load_snapshot(args.input)
    core = AnalyticsCore.from_snapshot(source, InsightsConfig.from_env())
    try:
        if args.segment_ids:
            result: Any = [core.build_segment(segment_id) for segment_id in args.segment_ids]
        else:
            result = core.rebuild_auto_segments()
    except InsightsError as exc:
        logger.error("Segment build failed: %s", exc)
        return 1

    _write_json(result, args.output)
    _save_snapshot(core, args.snapshot_out, source)
    return 0


def score_customers_cli(argv: list[str] | None = None) -> int:
    """Recalculate customer scores and report customers at risk of churning."""
    parser = _parser("Recalculate customer scores")
    parser.add_argument(
        "--score-type",
        dest="score_types",
        action="append",
        choices=[item.value for item in ScoreType],
        help="Score types to calculate (defaults to engagement, clv and churn_risk).",
    )
    parser.add_argument(
        "--person-id",
        dest="person_ids",
        action="append",
        help="Person to score (repeatable; default: every known person).",
    )
    parser.add_argument(
        "--min-risk-level",
        default="high",
        choices=["low", "medium", "high", "critical"],
        help="Lowest churn risk level included in the at-risk report (default: high)",
    )
    _add_snapshot_out(parser)
    args = parser.parse_args(argv)

    source = _load_snapshot(args.input)
    core = AnalyticsCore.from_snapshot(source, InsightsConfig.from_env())
    try:
        batch = core.recalculate_scores(args.score_types, args.person_ids)
        at_risk = core.at_risk_customers(args.min_risk_level)
    except InsightsError as exc:
        logger.error("Scoring failed: %s", exc)
        return 1

    logger.info(
        "Scored %d items (%d failed); %d customers at risk",
        batch.processed,
        batch.failed,
        at_risk.total_at_risk,
    )
    _write_json(
        {
            "processed": batch.processed,
            "succeeded": batch.succeeded,
            "failed": batch.failed,
            "errors": batch.errors,
            "summary": core.predictions_summary(),
            "at_risk": at_risk,
        },
        args.output,
    )
    _save_snapshot(core, args.snapshot_out, source)
    return 0


def resolve_attributions_cli(argv: list[str] | None = None) -> int:
    """Backfill campaign attribution for recent sessions."""
    parser = _parser("Resolve campaign attribution for recent sessions")
    parser.add_argument(
        "--days-back",
        type=int,
        default=7,
        help="Only sessions started within this many days (default: 7)",
    )
    parser.add_argument(
        "--limit", type=int, default=1000, help="Maximum sessions to resolve (default: 1000)"
    )
    parser.add_argument(
        "--as-of",
        type=str,
        help="Reference time (ISO format). Defaults to now.",
    )
    _add_snapshot_out(parser)
    args = parser.parse_args(argv)

    source = _load_snapshot(args.input)
    core = AnalyticsCore.from_snapshot(source, InsightsConfig.from_env())
    try:
        result = core.bulk_resolve_attributions(
            args.days_back, args.limit, parse_datetime(args.as_of)
        )
    except InsightsError as exc:
        logger.error("Attribution backfill failed: %s", exc)
        return 1

    _write_json(result, args.output)
    _save_snapshot(core, args.snapshot_out, source)
    return 0


def main() -> None:
    raise SystemExit(score_customers_cli())


if __name__ == "__main__":  # pragma: no cover
    main()
