#!/usr/bin/env python3
"""
Case runner for named capture group lookups.

Loads YAML case files, compiles each pattern with regex_named and compares
the named results (or the raised error) against the expected values.
"""

import argparse
import io
import re
import sys
import yaml
from pathlib import Path

import regex_named

# Ensure UTF-8 output on Windows
if sys.platform == 'win32':
    sys.stdout = io.TextIOWrapper(sys.stdout.buffer, encoding='utf-8', errors='replace')
    sys.stderr = io.TextIOWrapper(sys.stderr.buffer, encoding='utf-8', errors='replace')

# Paths
ROOT_DIR = Path(__file__).parent
DEFAULT_CONFIG = ROOT_DIR / "tests.yaml"


def load_cases(config_path: Path) -> list[dict]:
    """Load the top-level list of cases from a YAML file."""
    with open(config_path, encoding='utf-8') as f:
        config = yaml.safe_load(f)
    if not isinstance(config, list):
        raise ValueError(f"Expected list in {config_path}, got {type(config)}")
    return config


def case_flags(case: dict) -> int:
    flags = 0
    for name in case.get("flags", []):
        flags |= getattr(re, name)
    return flags


def error_kind(exc: Exception) -> str:
    """Label for an error: SyntaxError for re's own, else the class name."""
    if isinstance(exc, re.error):
        return "SyntaxError"
    return type(exc).__name__


def run_case(case: dict):
    """Run one case. Returns (actual, expected) in comparable form."""
    pattern = case["pattern"]
    subject = case.get("subject", "")
    if case.get("bytes"):
        pattern = pattern.encode('utf-8')
        subject = subject.encode('utf-8')

    try:
        named = regex_named.compile(pattern, case_flags(case))
    except (regex_named.PatternError, re.error) as e:
        return {"error": error_kind(e)}, _expected(case)

    actual = regex_named.collect_results(
        named,
        subject,
        find_all=case.get("all", False),
        limit=case.get("limit", -1),
        index=case.get("index", False),
    )
    return actual, _expected(case)


def _expected(case: dict) -> dict:
    if "error" in case:
        return {"error": case["error"]}
    return case["expect"]


def report_mismatch(case: dict, actual: dict, expected: dict):
    print(f"\n=== MISMATCH on {case.get('name', 'unnamed')} ===")
    print(f"Pattern:  {case['pattern']!r}")
    print(f"Subject:  {case.get('subject', '')!r}")
    print(f"Actual:   {actual}")
    print(f"Expected: {expected}")


def main():
    parser = argparse.ArgumentParser(
        description="Run named capture group cases",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Config file format (YAML):
- name: name_and_age
  pattern: '(?P<name>\\w+) (?P<age>\\d+)'
  subject: "foo 42"
  expect:
    match: "foo 42"
    groups: {name: "foo", age: "42"}

Example usage:
    python run_tests.py                     # Run all cases from tests.yaml
    python run_tests.py -c my_cases.yaml    # Run cases from specific file
    python run_tests.py -n name_and_age     # Run only one case
    python run_tests.py -v                  # Verbose output
"""
    )
    parser.add_argument("--config", "-c", default=str(DEFAULT_CONFIG),
                        help="YAML config file with cases (default: tests.yaml)")
    parser.add_argument("--name", "-n", help="Run only the case with this name")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--list", "-l", action="store_true", help="List available cases")

    args = parser.parse_args()

    config_path = Path(args.config)
    if not config_path.exists():
        print(f"Error: Config file not found: {config_path}")
        sys.exit(1)

    try:
        cases = load_cases(config_path)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.list:
        print(f"Available cases in {config_path}:")
        for case in cases:
            name = case.get("name", "unnamed")
            print(f"  - {name}: pattern: {case.get('pattern', '')[:40]}")
        sys.exit(0)

    if args.name:
        cases = [c for c in cases if c.get("name") == args.name]
        if not cases:
            print(f"Error: No case named '{args.name}' found")
            sys.exit(1)

    failures = 0
    for case in cases:
        actual, expected = run_case(case)
        ok = actual == expected
        if not ok:
            failures += 1
            report_mismatch(case, actual, expected)
        elif args.verbose:
            print(f"[OK] {case.get('name', 'unnamed')}: {actual}")

    if failures:
        print(f"\n=== {failures} OF {len(cases)} CASE(S) FAILED ===")
    else:
        print(f"\n=== ALL {len(cases)} CASE(S) PASSED ===")

    sys.exit(0 if failures == 0 else 1)


if __name__ == "__main__":
    main()
