"""Command-line interface for DeepGuard."""
import argparse
import json
import logging
import os
import sys
from pathlib import Path

from .engine import DeepGuard, Submission
from .errors import UnknownPolicyError
from .policy import available_policies, get_policy
from .report import export_results, summarize, to_record

POLICY_ENV_VAR = "DEEPGUARD_POLICY"


def _configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def scan_command(args):
    """Scan media files command."""
    _configure_logging(getattr(args, "verbose", False))

    policy_name = getattr(args, "policy", None) or os.environ.get(POLICY_ENV_VAR)
    try:
        engine = DeepGuard(
            policy=policy_name,
            max_workers=getattr(args, "workers", 1),
            frame_count=getattr(args, "frames", 5),
            seed=getattr(args, "seed", None),
            jitter=not getattr(args, "no_jitter", False),
        )
    except UnknownPolicyError as e:
        print(f"Error: {e.args[0]}", file=sys.stderr)
        sys.exit(1)
    engine.warm_up()

    submissions = []
    for name in args.files:
        path = Path(name)
        if not path.exists():
            print(f"Error: File not found: {name}", file=sys.stderr)
            sys.exit(1)
        submissions.append(Submission(content=path.read_bytes(), filename=path.name))

    results = engine.detect_batch(submissions, timeout=getattr(args, "timeout", None))

    if args.json:
        print(json.dumps([to_record(r) for r in results], indent=2))
    else:
        print(f"\n{'='*60}")
        print("  DeepGuard Scan Report")
        print(f"{'='*60}\n")
        print(f"Policy: {engine.policy.name}\n")
        for result in results:
            if result.failed:
                print(f"  ! {result.filename}: FAILED ({result.error})")
                continue
            icon = "✗" if result.is_deepfake else "✓"
            verdict = "DEEPFAKE" if result.is_deepfake else "AUTHENTIC"
            print(f"  {icon} {result.filename}: {verdict} "
                  f"{result.confidence:.1f}% [{result.threat_level.value.upper()} RISK]")
            a = result.analysis
            print(f"      face {a.face_detection:.1f}  temporal {a.temporal_consistency:.1f}  "
                  f"artifact {a.artifact_detection:.1f}  quality {a.image_quality:.1f}  "
                  f"({result.processing_time:.0f} ms)")

        counts = summarize(results)
        print(f"\nScanned {counts['total']}: {counts['deepfakes']} flagged, "
              f"{counts['authentic']} authentic, {counts['failed']} failed")
        print(f"\n{'='*60}\n")

    if getattr(args, "export", None):
        path = export_results(results, args.export)
        print(f"Results exported to: {path.resolve()}", file=sys.stderr)

    if results and all(r.failed for r in results):
        sys.exit(2)
    sys.exit(1 if any(r.is_deepfake for r in results) else 0)


def policies_command(args):
    """List scoring policies command."""
    default = get_policy().name
    for name in available_policies():
        policy = get_policy(name)
        marker = " (default)" if name == default else ""
        print(f"{name}{marker}")
        if policy.description:
            print(f"    {policy.description}")
        print(f"    decision threshold {policy.decision_threshold:g}, "
              f"jitter ±{policy.jitter_amplitude:g}")


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="deepguard",
        description="Heuristic deepfake scoring for images and video"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Scan command
    scan_parser = subparsers.add_parser("scan", help="Score media files")
    scan_parser.add_argument("files", nargs="+", help="Images or videos to score")
    scan_parser.add_argument("-j", "--json", action="store_true", help="Output as JSON")
    scan_parser.add_argument("-e", "--export", metavar="DIR", help="Write an audit-log export to DIR")
    scan_parser.add_argument("-p", "--policy", help=f"Scoring policy (default: ${POLICY_ENV_VAR} or conservative)")
    scan_parser.add_argument("-f", "--frames", type=int, default=5, help="Frames sampled per video (default: 5)")
    scan_parser.add_argument("-w", "--workers", type=int, default=1, help="Number of parallel threads for analysis (default: 1)")
    scan_parser.add_argument("-t", "--timeout", type=float, help="Per-file timeout in seconds")
    scan_parser.add_argument("-s", "--seed", type=int, help="Seed for score jitter")
    scan_parser.add_argument("--no-jitter", action="store_true", help="Disable random score jitter")
    scan_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    scan_parser.set_defaults(func=scan_command)

    # Policies command
    policies_parser = subparsers.add_parser("policies", help="List scoring policies")
    policies_parser.set_defaults(func=policies_command)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
