#!/usr/bin/env python3
"""
Drone Video Repair — Entry Point.

Usage:
    python main.py broken.MP4                 # repair (prompts for format if needed)
    python main.py broken.MP4 --format 8      # repair, no prompt
    python main.py broken.MP4 --diagnose      # classify only, write nothing
    python main.py broken.MP4 --verify        # repair, then test-decode with ffmpeg
    python main.py --list-formats
"""

APP_VERSION = "2.0.0"

import sys
import json
import logging
import argparse
from typing import Optional

from dronefix.profiles import CAMERA_HINTS, FORMAT_PROFILES, describe_profiles, parse_selector
from dronefix.classifier import RepairPath
from dronefix.repair import RepairPlan, RepairResult, repair_file
from dronefix.header_synth import build_header
from dronefix.verify import verify_repaired_file

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1


def _configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def prompt_for_format(plan: Optional[RepairPlan] = None, stream=None) -> str:
    """Ask which video format was recorded; re-prompt until the answer is valid."""
    out = stream or sys.stderr
    while True:
        print("First, however, we need to know which video format was used. "
              "Enter this now.", file=out)
        for line in describe_profiles():
            print(f"\t{line}, then the \"Return\" key.", file=out)
        print("(If you are unsure which video format was used, then guess as follows:",
              file=out)
        for camera, code in CAMERA_HINTS:
            print(f"\tIf your file was from a {camera}: type {code}, "
                  f"then the \"Return\" key.", file=out)
        print(" If the resulting file is unplayable by VLC, then you probably guessed "
              "the wrong format;\n try again with another format.)", file=out)
        try:
            answer = input().strip()
        except EOFError:
            print("No format entered; using the default.", file=out)
            return ""
        if parse_selector(answer) is not None:
            return answer
        print("Invalid entry!", file=out)


def _print_result(result: RepairResult):
    print("─" * 60)
    for action in result.actions_taken:
        print(f"  {action}")
    if result.anomalies_recovered:
        print(f"  Skipped {result.resync_bytes_skipped:,} anomalous bytes")
    if result.truncated_final_unit:
        print("  Last NAL unit was cut short by the end of the file")
    print("─" * 60)


def _print_h264_help(output_path: str):
    print("This file can be played by the VLC media player "
          "(available at <http://www.videolan.org/vlc/>).")
    if not output_path.lower().endswith(".h264"):
        print("but you MUST first rename the file so that its name ends with \".h264\"!")
    print("To put it back into an .mp4 container without re-encoding:")
    print(f"  ffmpeg -framerate 30 -i \"{output_path}\" -c copy repaired.mp4")


def list_formats():
    print("Supported video formats:")
    for p in FORMAT_PROFILES:
        print(f"  [{p.code}] {p.label}")


def cli_mode(args) -> int:
    print("=" * 60)
    print(f"  Drone Video Repair  v{APP_VERSION}")
    print("  Repairs MP4 files left broken by an interrupted recording")
    print("=" * 60)
    print()

    if args.format is not None and parse_selector(args.format) is None:
        print(f"Unknown video format '{args.format}'. Use --list-formats.")
        return EXIT_FAILED

    def on_plan(plan: RepairPlan):
        print(f"File:   {args.file}")
        for line in plan.describe():
            print(f"  {line}")
        print()
        if plan.needs_profile and not args.diagnose:
            print("We can repair this file, but the result will be a '.h264' file "
                  "(playable by the VLC media player), not a '.mp4' file.")

    try:
        result = repair_file(
            args.file,
            output_path=args.output or None,
            profile_selector=args.format,
            choose_profile=prompt_for_format,
            on_plan=on_plan,
            diagnose_only=args.diagnose,
        )
    except OSError as e:
        print(f"Failed to open file: {e}")
        return EXIT_FAILED

    if not result.success:
        print(f"\n  ❌ {result.error}")
        print("  We cannot repair this file!")
        _write_report(args.report, result)
        return EXIT_FAILED

    if args.diagnose:
        print("  (Diagnose mode — nothing written)")
        _write_report(args.report, result)
        return EXIT_OK

    _print_result(result)
    print(f"\nRepaired file is \"{result.output_path}\"")
    if result.path == RepairPath.NAL_RESTREAM.value:
        _print_h264_help(result.output_path)

    integrity = None
    if args.verify:
        expected = build_header(result.ftyp_size) if result.ftyp_size else None
        integrity = verify_repaired_file(result.output_path, expected_header=expected,
                                         path=RepairPath(result.path))
        print(f"\n  {integrity.status_icon} Verify: {integrity.summary}")
        if not integrity.ffmpeg_available:
            print("  ℹ️  ffmpeg not found; only the file structure was checked")

    _write_report(args.report, result, integrity)
    print()
    if integrity is not None and not integrity.passed:
        return EXIT_FAILED
    return EXIT_OK


def _write_report(report_path: str, result: RepairResult, integrity=None):
    if not report_path:
        return
    data = result.to_dict()
    if integrity is not None:
        from dataclasses import asdict
        data["integrity"] = asdict(integrity)
    try:
        with open(report_path, "w") as f:
            json.dump(data, f, indent=2, default=str)
        print(f"  Log: {report_path}")
    except OSError as e:
        logger.warning("Could not write report %s: %s", report_path, e)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Repair video files left corrupted by an interrupted "
                    "drone camera recording.")
    parser.add_argument("file", nargs="?", help="Video file to repair")
    parser.add_argument("-o", "--output", default="",
                        help="Output path (default: <name>-repaired.mp4/.h264)")
    parser.add_argument("-f", "--format", default=None,
                        help="Video format code 0-9/A-E (skips the prompt)")
    parser.add_argument("--diagnose", action="store_true",
                        help="Classify the damage without writing anything")
    parser.add_argument("--verify", action="store_true",
                        help="Test-decode the repaired file with ffmpeg")
    parser.add_argument("--report", default="",
                        help="Write a JSON repair log to this path")
    parser.add_argument("--list-formats", action="store_true",
                        help="List the supported video formats and exit")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Debug logging")
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {APP_VERSION}")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list_formats:
        list_formats()
        return EXIT_OK
    if not args.file:
        parser.print_usage(sys.stderr)
        return EXIT_FAILED

    _configure_logging(args.verbose)
    return cli_mode(args)


if __name__ == "__main__":
    sys.exit(main())
