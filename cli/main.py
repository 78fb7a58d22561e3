"""
Mixpack CLI - Main entry point

Command-line tool for budget-constrained mixing of compression levels.
"""

import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional


EXIT_OK = 0
EXIT_ERROR = 1
EXIT_NO_DOCUMENTS = 2
EXIT_INFEASIBLE = 3


def parse_levels(text: str) -> List[int]:
    """Parse `6`, `1,3,6` or `1-9` (and mixes like `1-3,9`)."""
    levels = []
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            lo, hi = part.split("-", 1)
            levels.extend(range(int(lo), int(hi) + 1))
        else:
            levels.append(int(part))
    return levels


def parse_document_arg(text: str):
    """Split `path[=algorithm]` into (path, algorithm or None)."""
    from optimizer.candidates import parse_algorithm

    path, sep, name = text.rpartition("=")
    if not sep:
        return text, None
    try:
        return path, parse_algorithm(name)
    except ValueError:
        # An '=' that is part of the file name
        return text, None


def _progress_callback(msg: str, progress: float):
    bar_width = 30
    filled = int(bar_width * progress)
    bar = "█" * filled + "░" * (bar_width - filled)
    print(f"\r[{bar}] {progress*100:5.1f}% - {msg[:50]:<50}", end="", flush=True)
    if progress >= 1.0:
        print()


def _run_plan(args):
    """Register documents and run the planning pipeline.

    Returns:
        (exit_code, result, documents, rejected); result is None on failure
    """
    from core.allocation import InfeasibleBudget
    from core.documents import register_documents
    from core.metrics import EstimationConfig
    from optimizer.candidates import candidates_for_documents, parse_algorithm
    from optimizer.selector import NoMeasurableDocuments, OptimizationConstraints, optimize_documents

    parsed = [parse_document_arg(d) for d in args.documents]
    documents, rejected = register_documents([p for p, _ in parsed])
    for path, reason in rejected:
        print(f"[WARN] Skipping {path}: {reason}", flush=True)
    if not documents:
        print("[ERROR] No readable document given", flush=True)
        return EXIT_NO_DOCUMENTS, None, documents, rejected

    by_path: Dict[str, object] = {str(Path(p)): alg for p, alg in parsed}
    restrictions = {doc.doc_id: by_path.get(str(doc.path)) for doc in documents}

    algorithms = None
    if args.algorithms:
        algorithms = [parse_algorithm(a) for a in args.algorithms.split(",") if a.strip()]
    levels = parse_levels(args.levels) if args.levels else None
    settings = candidates_for_documents(restrictions, default_algorithms=algorithms, levels=levels)

    estimation = None
    if args.estimate:
        estimation = EstimationConfig(
            block_count=args.blocks,
            block_ratio=args.block_ratio,
            random=args.random_blocks,
            seed=args.seed,
            parallel_blocks=args.parallel_blocks,
        )

    constraints = OptimizationConstraints(
        time_budget_s=args.budget,
        estimation=estimation,
        max_workers=args.jobs,
        output_dir=Path(args.output_dir) if getattr(args, "output_dir", None) else None,
    )

    try:
        result = optimize_documents(
            documents,
            settings,
            constraints,
            progress_callback=None if args.no_progress else _progress_callback,
            show_progress=not args.no_progress,
        )
    except NoMeasurableDocuments as e:
        print(f"[ERROR] {e}", flush=True)
        return EXIT_NO_DOCUMENTS, None, documents, rejected
    except InfeasibleBudget as e:
        print(f"[ERROR] {e}", flush=True)
        print(f"[ERROR] Try --budget {e.minimum_budget:.4f} or more", flush=True)
        return EXIT_INFEASIBLE, None, documents, rejected

    return EXIT_OK, result, documents, rejected


def _print_plan(result):
    plan = result.plan
    print()
    print("=" * 70)
    print("ALLOCATION")
    print("=" * 70)
    for doc_id, entry in plan.entries.items():
        if entry.kind.value == "store":
            choice = "store"
        elif entry.kind.value == "single":
            choice = entry.lower.setting.name
        else:
            choice = (
                f"{entry.lower.setting.name} x {entry.split_fraction:.3f} + "
                f"{entry.upper.setting.name} x {1 - entry.split_fraction:.3f}"
            )
        flag = " (estimated)" if entry.estimated else ""
        print(f"  {doc_id:<24} {choice:<36} {entry.time:8.4f}s {entry.size:12.0f} B{flag}")
    print("-" * 70)
    print(f"  Budget:             {plan.budget:.4f}s")
    print(f"  Planned time:       {plan.total_time:.4f}s")
    print(f"  Planned size:       {plan.total_size:.0f} / {plan.original_size} bytes")
    if plan.original_size:
        print(f"  Planned ratio:      {plan.total_size / plan.original_size:.4f}")
    print(f"  Planning time:      {result.optimization_time_s:.1f}s")
    print("=" * 70)


def cmd_optimize(args):
    """Measure and plan, without writing artifacts."""
    from artifact.format import build_report, write_report

    print(f"Mixpack Optimize - {len(args.documents)} documents, budget {args.budget}s")
    print()

    try:
        code, result, _, rejected = _run_plan(args)
    except ValueError as e:
        print(f"[ERROR] {e}", flush=True)
        return EXIT_ERROR
    if result is None:
        return code

    _print_plan(result)

    if args.report:
        report = build_report(result, rejected=rejected, command="optimize")
        path = write_report(report, args.report)
        print(f"\nReport saved to: {path}")
    return EXIT_OK


def cmd_pack(args):
    """Measure, plan and write one artifact per document."""
    from core.codecs import CodecError
    from artifact.composer import compose_plan, verify_artifact
    from artifact.format import build_report, write_report

    print(f"Mixpack Pack - {len(args.documents)} documents, budget {args.budget}s")
    print(f"  Output: {args.output_dir}")
    print()

    try:
        code, result, documents, rejected = _run_plan(args)
    except ValueError as e:
        print(f"[ERROR] {e}", flush=True)
        return EXIT_ERROR
    if result is None:
        return code

    _print_plan(result)

    output_dir = result.constraints.output_dir
    composition = compose_plan(
        documents,
        result.plan,
        output_dir,
        max_workers=result.constraints.max_workers,
        show_progress=not args.no_progress,
    )

    ok = not composition.errors
    if args.verify:
        by_id = {d.doc_id: d for d in documents}
        for doc_id, artifact in composition.artifacts.items():
            try:
                verified = verify_artifact(artifact.path, by_id[doc_id], artifact.algorithm)
            except (CodecError, OSError) as e:
                print(f"[ERROR] {doc_id}: {e}", flush=True)
                ok = False
                continue
            if verified:
                print(f"[COMPOSE] {doc_id}: verified", flush=True)
            else:
                print(f"[ERROR] {doc_id}: artifact does not decode to the source", flush=True)
                ok = False

    print()
    print("=" * 70)
    print("RESULTS")
    print("=" * 70)
    print(f"  Artifacts:          {len(composition.artifacts)}")
    print(f"  Achieved size:      {composition.total_size} bytes "
          f"(planned {result.plan.total_size:.0f})")
    print(f"  Achieved time:      {composition.total_time:.4f}s "
          f"(planned {result.plan.total_time:.4f}s)")
    if result.estimated:
        print("  Plan was based on estimated measurements")
    print("=" * 70)

    report_path = args.report or str(output_dir / "report.json")
    report = build_report(result, composition=composition, rejected=rejected, command="pack")
    path = write_report(report, report_path)
    print(f"\nReport saved to: {path}")

    return EXIT_OK if ok else EXIT_ERROR


def cmd_verify(args):
    """Decode every artifact listed in a report and compare with its source."""
    from core.codecs import Algorithm, CodecError
    from core.documents import Document
    from artifact.composer import verify_artifact
    from artifact.format import load_report

    try:
        report = load_report(args.report_path)
    except (OSError, ValueError) as e:
        print(f"[ERROR] {e}")
        return EXIT_ERROR

    checked = 0
    failed = 0
    for doc in report.documents:
        if not doc.artifact or not doc.artifact.get("path"):
            continue
        checked += 1
        algorithm = doc.artifact.get("algorithm")
        try:
            source = Document.from_path(doc.path, doc_id=doc.doc_id)
            ok = verify_artifact(
                doc.artifact["path"],
                source,
                Algorithm(algorithm) if algorithm else None,
            )
        except (CodecError, OSError, ValueError) as e:
            print(f"  [FAIL] {doc.doc_id}: {e}")
            failed += 1
            continue
        if ok:
            print(f"  [OK]   {doc.doc_id}")
        else:
            print(f"  [FAIL] {doc.doc_id}: content mismatch")
            failed += 1

    print()
    print(f"Verified {checked - failed}/{checked} artifacts")
    return EXIT_OK if failed == 0 else EXIT_ERROR


def cmd_info(args):
    """Show a summary of a run report."""
    from artifact.format import load_report

    try:
        report = load_report(args.report_path)
    except (OSError, ValueError) as e:
        print(f"[ERROR] {e}")
        return EXIT_ERROR

    totals = report.totals
    print()
    print("=" * 60)
    print("REPORT INFO")
    print("=" * 60)
    print(f"  Command:           {report.command}")
    print(f"  Created:           {report.created_at}")
    print(f"  Budget:            {report.budget}s")
    print(f"  Estimated:         {'yes' if report.estimated else 'no'}")
    print(f"  Documents:         {len(report.documents)}")
    print(f"  Excluded:          {len(report.unsatisfiable)}")
    print(f"  Failed samples:    {len(report.failures)}")
    if totals:
        print(f"  Original size:     {totals.get('original_size', 0)} bytes")
        print(f"  Planned size:      {totals.get('planned_size', 0):.0f} bytes")
        print(f"  Planned time:      {totals.get('planned_time', 0):.4f}s")
        if totals.get("achieved_size") is not None:
            print(f"  Achieved size:     {totals['achieved_size']} bytes")
            print(f"  Achieved time:     {totals['achieved_time']:.4f}s")
    print("-" * 60)
    for doc in report.documents:
        alloc = doc.allocation or {}
        kind = alloc.get("kind", "excluded")
        detail = ""
        if kind == "single":
            detail = alloc["lower"]
        elif kind == "split":
            detail = f"{alloc['lower']} / {alloc['upper']} @ {alloc['split_offset']}"
        print(f"  {doc.doc_id:<24} {kind:<8} {detail}")
    print("=" * 60)
    return EXIT_OK


def _add_plan_arguments(p: argparse.ArgumentParser):
    p.add_argument(
        "documents",
        nargs="+",
        help="Documents to compress, optionally restricted to one family: path[=gzip|bzip2|xz|zstd]"
    )
    p.add_argument(
        "--budget", "-b",
        type=float,
        required=True,
        help="Total compression time budget in seconds"
    )
    p.add_argument(
        "--algorithms", "-a",
        help="Comma-separated families for unrestricted documents (default: all)"
    )
    p.add_argument(
        "--levels", "-l",
        help="Levels to measure, e.g. '1-9' or '1,3,6' (default: each family's preset)"
    )
    p.add_argument(
        "--estimate",
        action="store_true",
        help="Estimate time and size from a sample of blocks instead of compressing whole documents"
    )
    p.add_argument(
        "--blocks",
        type=int,
        default=10,
        help="Number of sampled blocks per document (default: 10)"
    )
    p.add_argument(
        "--block-ratio",
        type=float,
        default=0.01,
        help="Size of one block as a fraction of the document (default: 0.01)"
    )
    p.add_argument(
        "--random-blocks",
        action="store_true",
        help="Sample blocks at random positions instead of evenly spaced"
    )
    p.add_argument(
        "--seed",
        type=int,
        help="Seed for random block positions"
    )
    p.add_argument(
        "--parallel-blocks",
        action="store_true",
        help="Compress the sampled blocks of one measurement concurrently"
    )
    p.add_argument(
        "--jobs", "-j",
        type=int,
        help="Worker threads (default: CPU count; 1 gives the most stable timings)"
    )
    p.add_argument(
        "--no-progress",
        action="store_true",
        help="Disable progress bars"
    )


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="mixpack",
        description="Mixpack - Mix compression levels across documents under a time budget"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # optimize command
    opt_parser = subparsers.add_parser("optimize", help="Measure and plan without writing artifacts")
    _add_plan_arguments(opt_parser)
    opt_parser.add_argument(
        "--report", "-r",
        help="Save the JSON report to this path"
    )

    # pack command
    pack_parser = subparsers.add_parser("pack", help="Plan and write compressed artifacts")
    _add_plan_arguments(pack_parser)
    pack_parser.add_argument(
        "--output-dir", "-o",
        default="mixpack_out",
        help="Directory for artifacts and report (default: mixpack_out)"
    )
    pack_parser.add_argument(
        "--report", "-r",
        help="Report path (default: <output-dir>/report.json)"
    )
    pack_parser.add_argument(
        "--verify",
        action="store_true",
        help="Decode every artifact after writing and compare with its source"
    )

    # verify command
    verify_parser = subparsers.add_parser("verify", help="Verify the artifacts listed in a report")
    verify_parser.add_argument("report_path", help="Path to report.json")

    # info command
    info_parser = subparsers.add_parser("info", help="Show report info")
    info_parser.add_argument("report_path", help="Path to report.json")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_ERROR

    if args.command == "optimize":
        return cmd_optimize(args)
    elif args.command == "pack":
        return cmd_pack(args)
    elif args.command == "verify":
        return cmd_verify(args)
    elif args.command == "info":
        return cmd_info(args)
    else:
        parser.print_help()
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
