"""
main.py — Sales Performance Reports — CLI Entry Point.

Runs the two pipeline stages from the command line: synthetic data
generation, and building + exporting one report for one viewer.

Usage:
    python main.py --generate-data
    python main.py --report team --viewer u-tl-1
    python main.py --report sales --viewer u-admin --timeframe last30days
    python main.py --report user --viewer u-admin --timeframe custom \\
        --start 2024-01-01 --end 2024-03-31

Outputs (data/output/):
    <Kind>_<Context>_<start>_to_<end>.xlsx

Exit codes: 0 success, 1 failure, 2 access denied.
"""

import argparse
import logging
import logging.handlers
import os
import sys
from datetime import datetime
from pathlib import Path

import yaml

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_DENIED = 2

REPORT_CHOICES = ["team", "sales", "user", "salesMember", "allSalesMembers"]
TIMEFRAME_CHOICES = ["today", "week", "month", "last7days", "last30days",
                     "last3months", "last6months", "yearToDate", "custom"]


def _configure_logging(log_dir: str = "logs", level: str = "INFO") -> None:
    """Configure rotating file handler + stream handler.

    Args:
        log_dir: Directory for log files.
        level: Log level string.
    """
    effective_level = os.environ.get("LOG_LEVEL", level).upper()
    numeric = getattr(logging, effective_level, logging.INFO)

    Path(log_dir).mkdir(parents=True, exist_ok=True)
    log_file = Path(log_dir) / f"reports_{datetime.today().strftime('%Y%m%d')}.log"

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)-35s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    fh = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=10 * 1024 * 1024, backupCount=7, encoding="utf-8"
    )
    fh.setFormatter(fmt)
    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(fmt)

    root = logging.getLogger()
    root.setLevel(numeric)
    root.addHandler(fh)
    root.addHandler(sh)


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sales-performance-reports",
        description="Sales performance reports: CRM records -> Excel workbooks.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --generate-data
  python main.py --report team --viewer u-tl-1
  python main.py --report salesMember --viewer u-tl-2 --timeframe week --week-start sunday
  python main.py --report allSalesMembers --viewer u-admin --follow-ups synthetic
  python main.py --report user --viewer u-admin --timeframe custom --start 2024-01-01 --end 2024-03-31
        """,
    )
    parser.add_argument("--config", default="config.yaml",
                        help="Path to config.yaml (default: config.yaml)")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])

    stages = parser.add_argument_group("Pipeline Stages")
    stages.add_argument("--generate-data", action="store_true",
                        help="Generate synthetic CRM dataset")
    stages.add_argument("--report", choices=REPORT_CHOICES,
                        help="Build and export one report")

    report = parser.add_argument_group("Report Options")
    report.add_argument("--viewer", help="Id of the user requesting the report")
    report.add_argument("--timeframe", choices=TIMEFRAME_CHOICES,
                        help="Reporting window (default: month, or custom when "
                             "--start/--end is given)")
    report.add_argument("--start", help="Custom range start (YYYY-MM-DD)")
    report.add_argument("--end", help="Custom range end (YYYY-MM-DD)")
    report.add_argument("--week-start", choices=["monday", "sunday"],
                        help="First day of the week (overrides config)")
    report.add_argument("--follow-ups", choices=["not_tracked", "synthetic"],
                        help="Follow-up metric mode (overrides config)")
    report.add_argument("--output-dir", help="Output directory (overrides config)")

    args = parser.parse_args(argv)
    bounded = bool(args.start or args.end)
    if args.timeframe is None:
        args.timeframe = "custom" if bounded else "month"
    elif bounded and args.timeframe != "custom":
        parser.error("--start/--end require --timeframe custom")
    return args


def _apply_overrides(cfg: dict, args: argparse.Namespace) -> dict:
    if args.week_start:
        cfg["date_ranges"]["week_start"] = args.week_start
    if args.follow_ups:
        cfg["metrics"]["follow_ups"] = args.follow_ups
    if args.output_dir:
        cfg["paths"]["output_dir"] = args.output_dir
    return cfg


def run_pipeline(args: argparse.Namespace, logger: logging.Logger) -> int:
    """Execute the requested pipeline stages.

    Args:
        args: Parsed CLI arguments.
        logger: Configured root logger.

    Returns:
        0 on success, 1 on error, 2 when the viewer may not see the report.
    """
    from sales_analytics.config import load_config
    from sales_analytics.data_loader import load_dataset
    from sales_analytics.data_simulator import generate_demo_dataset
    from sales_analytics.date_ranges import Timeframe
    from sales_analytics.excel_pack import export_report, save_export
    from sales_analytics.reports import (
        AccessDenied, ReportOptions, ReportRequest, ReportType, generate_report,
    )

    cfg = _apply_overrides(load_config(args.config), args)

    # -------------------------------------------------------------------------
    # Stage 1: Data generation
    # -------------------------------------------------------------------------
    if args.generate_data:
        logger.info("=" * 65)
        logger.info("STAGE 1: Data Generation")
        logger.info("=" * 65)
        try:
            path = generate_demo_dataset(args.config)
            logger.info("Data generation complete -- %s", path)
        except Exception as exc:
            logger.error("Data generation failed: %s", exc, exc_info=True)
            return EXIT_FAILED

    if not args.report:
        return EXIT_OK

    if not args.viewer:
        logger.error("--report requires --viewer")
        return EXIT_FAILED

    # -------------------------------------------------------------------------
    # Stage 2: Report assembly
    # -------------------------------------------------------------------------
    logger.info("=" * 65)
    logger.info("STAGE 2: Report Assembly")
    logger.info("=" * 65)
    try:
        dataset = load_dataset(cfg["paths"]["data_file"])
        custom = None
        if args.start or args.end:
            custom = {"startDate": args.start, "endDate": args.end}
        request = ReportRequest(
            viewer_id=args.viewer,
            report_type=ReportType(args.report),
            timeframe=Timeframe(args.timeframe),
            custom_range=custom,
        )
        report = generate_report(request, dataset, ReportOptions.from_config(cfg))
    except FileNotFoundError as exc:
        logger.error("Dataset missing. Run --generate-data first.\n%s", exc)
        return EXIT_FAILED
    except Exception as exc:
        logger.error("Report assembly failed: %s", exc, exc_info=True)
        return EXIT_FAILED

    if isinstance(report, AccessDenied):
        logger.error("Access denied for %s: %s", report.viewer_id, report.reason)
        return EXIT_DENIED

    # -------------------------------------------------------------------------
    # Stage 3: Excel export
    # -------------------------------------------------------------------------
    logger.info("=" * 65)
    logger.info("STAGE 3: Excel Export")
    logger.info("=" * 65)
    try:
        content, filename = export_report(
            report, cfg["report"]["brand"], cfg["report"]["currency"]
        )
        out_path = save_export(content, filename, cfg["paths"]["output_dir"])
    except Exception as exc:
        logger.error("Excel export failed: %s", exc, exc_info=True)
        return EXIT_FAILED

    logger.info("=" * 65)
    logger.info("PIPELINE COMPLETE")
    logger.info("  Report:  %s (%s)", args.report, report.period)
    logger.info("  Output:  %s", out_path)
    logger.info("=" * 65)
    return EXIT_OK


def main() -> None:
    """Parse args, configure logging, and run pipeline."""
    args = _parse_args()

    try:
        with open(args.config, "r") as fh:
            cfg = yaml.safe_load(fh) or {}
        log_dir = cfg.get("paths", {}).get("log_dir", "logs")
    except (OSError, yaml.YAMLError):
        log_dir = "logs"

    _configure_logging(log_dir=log_dir, level=args.log_level)
    logger = logging.getLogger(__name__)

    if not (args.generate_data or args.report):
        import subprocess
        subprocess.run([sys.executable, __file__, "--help"])
        sys.exit(EXIT_OK)

    logger.info(
        "Sales Performance Reports v1.0 | %s",
        datetime.today().strftime("%Y-%m-%d %H:%M:%S"),
    )
    sys.exit(run_pipeline(args, logger))


if __name__ == "__main__":
    main()
