#!/usr/bin/env python3
"""
CLI entry point for weight calibration.

Usage:
    # Retroactive accuracy of the current weights (optionally save a report)
    python -m calibration.run evaluate --students students.csv --sessions sessions.csv --report

    # Preview proposed weights without saving
    python -m calibration.run simulate --weights proposed.yaml --students ... --sessions ...

    # Apply a new weight version
    python -m calibration.run update --weights proposed.yaml --actor admin-1 --reason "..." ...

    # Analyze one student's case
    python -m calibration.run case-study STUDENT_0007 --students ... --sessions ...

    # Weight history and audit status
    python -m calibration.run history --limit 20
    python -m calibration.run history --audit
"""

import argparse
import json
import logging
import sys
from datetime import date

import yaml

from churn_risk.records import FrameSessionRepository, FrameStudentRepository

from .artifacts import ArtifactManager
from .config import CalibrationConfig
from .logger import CalibrationLogger
from .service import ActionResult, CalibrationService
from .sql_store import SqlWeightStore


def _load_weights(path: str) -> dict:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return data.get("weights", data)


def _build_service(args, calibration: CalibrationConfig) -> CalibrationService:
    students = FrameStudentRepository.from_csv(args.students)
    sessions = FrameSessionRepository.from_csv(args.sessions, known_students=students.student_ids)
    store = SqlWeightStore.from_url(args.db or calibration.database_url, calibration.timeout_seconds)
    return CalibrationService.build(
        sessions,
        students,
        store,
        calibration=calibration,
        audit_log=CalibrationLogger(calibration.logs_dir),
    )


def _print_json(service: CalibrationService, data) -> None:
    print(json.dumps(service.to_jsonable(data), indent=2, default=str))


def _fail(result: ActionResult) -> int:
    print(f"ERROR: {result.error}")
    return 1


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Churn risk weight calibration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m calibration.run evaluate --students data/students.csv --sessions data/sessions.csv
  python -m calibration.run simulate --weights proposed.yaml --students ... --sessions ...
  python -m calibration.run history --audit --students ... --sessions ...
        """,
    )
    parser.add_argument("--students", required=True, help="Students CSV export")
    parser.add_argument("--sessions", required=True, help="Sessions CSV export")
    parser.add_argument("--db", help="Weight store database URL (default from config)")
    parser.add_argument("--config", help="CalibrationConfig YAML file")
    parser.add_argument("--as-of", type=date.fromisoformat, help="Evaluation date (YYYY-MM-DD)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    p_eval = sub.add_parser("evaluate", help="Retroactive accuracy of a weight set")
    p_eval.add_argument("--weights", help="Weights YAML (default: current weights)")
    p_eval.add_argument("--report", action="store_true", help="Save report artifacts")

    p_sim = sub.add_parser("simulate", help="Preview proposed weights without saving")
    p_sim.add_argument("--weights", required=True, help="Proposed weights YAML")

    p_upd = sub.add_parser("update", help="Apply a new weight version")
    p_upd.add_argument("--weights", required=True, help="New weights YAML")
    p_upd.add_argument("--actor", required=True, help="Administrator id")
    p_upd.add_argument("--reason", required=True, help="Change reason")

    p_case = sub.add_parser("case-study", help="Recommend weights from one student's case")
    p_case.add_argument("student_id")
    p_case.add_argument("--survey", help="Exit survey response")
    p_case.add_argument("--apply", action="store_true", help="Apply the suggested weights")
    p_case.add_argument("--actor", help="Administrator id (required with --apply)")
    p_case.add_argument("--reason", help="Change reason (default: the rationale)")

    p_hist = sub.add_parser("history", help="Weight change history")
    p_hist.add_argument("--limit", type=int, default=10)
    p_hist.add_argument("--id", dest="entry_id", help="Show one history entry")
    p_hist.add_argument("--audit", action="store_true", help="Show versions applied without full audit")

    p_learn = sub.add_parser("learning-events", help="Weight changes driven by case studies")
    p_learn.add_argument("--limit", type=int, default=20)

    p_churn = sub.add_parser("recent-churns", help="Recently churned students")
    p_churn.add_argument("--limit", type=int, default=10)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    calibration = CalibrationConfig.from_yaml(args.config) if args.config else CalibrationConfig()
    service = _build_service(args, calibration)

    if args.command == "evaluate":
        weights = _load_weights(args.weights) if args.weights else service.manager.get_current_weights()
        evaluated = service.evaluate_with_predictions(weights, args.as_of)
        if not evaluated.success:
            return _fail(evaluated)
        result = evaluated.data
        print("Retroactive accuracy:")
        print(result.metrics.summary())
        if args.report:
            report_dir = ArtifactManager(calibration.artifacts_dir).save_report(
                weights, result.metrics, result.predictions
            )
            print(f"\nReport saved to: {report_dir}/")
        return 0

    if args.command == "simulate":
        result = service.simulate_weight_change(_load_weights(args.weights), args.as_of)
        if not result.success:
            return _fail(result)
        sim = result.data
        print("Current weights:")
        print(sim.current_metrics.summary())
        print("\nProposed weights:")
        print(sim.metrics.summary())
        print(f"\nAccuracy change: {sim.accuracy_delta:+.1%}")
        print(f"Affected students: {len(sim.affected_students)}")
        for s in sim.affected_students:
            mark = "+" if s.is_improvement else "-"
            print(
                f"  [{mark}] {s.student_id}: {s.old_prediction} -> {s.new_prediction} "
                f"(actual {s.actual_outcome}, {s.old_risk_score:.3f} -> {s.new_risk_score:.3f})"
            )
        return 0

    if args.command == "update":
        result = service.update_weights(_load_weights(args.weights), args.actor, args.reason, args.as_of)
        if not result.success:
            return _fail(result)
        upd = result.data
        print(
            f"Applied version {upd.version}: accuracy {upd.accuracy_before:.1%} -> "
            f"{upd.accuracy_after:.1%} ({upd.delta:+.1%})"
        )
        return 0

    if args.command == "case-study":
        result = service.create_case_study(args.student_id, args.survey)
        if not result.success:
            return _fail(result)
        rec = result.data
        print(f"Student {rec.student_id}: predicted {rec.predicted_risk.level} "
              f"({rec.predicted_risk.score:.3f}), actual {rec.actual_outcome}")
        print()
        print(rec.rationale)
        print("\nSuggested weights:")
        for factor, weight in rec.suggested_weights.items():
            print(f"  {factor}: {weight:.4f}")

        if args.apply:
            if not rec.factor_analysis:
                print("\nNothing to apply.")
                return 0
            if not args.actor:
                print("ERROR: --actor is required with --apply")
                return 1
            applied = service.apply_case_study_weights(
                rec.student_id,
                rec.suggested_weights,
                args.actor,
                args.reason or rec.rationale,
                as_of=args.as_of,
            )
            if not applied.success:
                return _fail(applied)
            print(f"\nApplied version {applied.data.version} ({applied.data.delta:+.1%} accuracy)")
        return 0

    if args.command == "history":
        if args.audit:
            result = service.audit_status()
            if not result.success:
                return _fail(result)
            for audit in result.data:
                print(f"  v{audit.version}: {audit.status}")
            return 0
        if args.entry_id:
            result = service.get_weight_history_entry(args.entry_id)
            if not result.success:
                return _fail(result)
            _print_json(service, result.data)
            return 0
        result = service.get_weight_history(args.limit)
        if not result.success:
            return _fail(result)
        if not result.data:
            print("No weight changes recorded.")
        for entry in result.data:
            delta = f"{entry.delta:+.1%}" if entry.delta is not None else "n/a"
            print(f"  v{entry.version} {entry.created_at:%Y-%m-%d %H:%M} {entry.changed_by}: "
                  f"{entry.change_reason} ({delta})")
        return 0

    if args.command == "learning-events":
        result = service.get_learning_events(args.limit)
        if not result.success:
            return _fail(result)
        _print_json(service, result.data)
        return 0

    if args.command == "recent-churns":
        result = service.get_recent_churns(args.limit)
        if not result.success:
            return _fail(result)
        _print_json(service, result.data)
        return 0

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
