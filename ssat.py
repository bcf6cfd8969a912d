#!/usr/bin/env python3
"""
Solve a stochastic SAT problem stored in a DIMACS-style SSAT file.

Prints the file's comment lines, the time taken, the outcomes of the best
plan found and its success probability.

Usage:
  python ssat.py problem.ssat
  python ssat.py --all --check-invariants --log-level DEBUG problem.ssat

Exits with code 0 after a solve, 1 if the file cannot be read and 2 on
malformed input.
"""

from __future__ import annotations
import argparse
import sys
import time
from typing import List, Optional

import logger
import reader
import solver
from assignment import Assignment, format_assignment, successful, total_probability
from formula import Formula


def print_report(formula: Formula, assignments: List[Assignment], elapsed: float, show_all: bool = False) -> None:
    for comment in formula.comments:
        print(comment)
    print(f"Time Taken = {elapsed:.3f} seconds.")

    if show_all:
        print("All outcomes:")
        shown = assignments
    else:
        print("Assignments with non-zero chance of success:")
        shown = successful(assignments)
    for assignment in shown:
        print(format_assignment(assignment))
    print("")

    probability = total_probability(assignments)
    if probability == 0.0:
        print("No Satisfaction")
    else:
        print(f"Success Probability = {probability}")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Find the best plan for a stochastic SAT problem.")
    ap.add_argument("path", help="Path to the SSAT file")
    ap.add_argument("--all", action="store_true", help="Also list outcomes with zero success probability")
    ap.add_argument("--check-invariants", action="store_true",
                    help="Recompute all variable statistics after every assignment (slow)")
    ap.add_argument("--log-level", default="WARNING", help="Logging level, overridden by $LOGLEVEL")
    return ap.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logger.init_logger(args.log_level)

    started = time.perf_counter()
    try:
        formula = reader.read_formula(args.path, check_invariants=args.check_invariants)
    except OSError as e:
        print(f"Error: cannot read '{args.path}': {e}")
        return 1
    except ValueError as e:
        print(f"Error: {e}")
        return 2

    _status, assignments = solver.solve_ssat(formula)
    elapsed = time.perf_counter() - started
    print_report(formula, assignments, elapsed, show_all=args.all)
    return 0


if __name__ == "__main__":
    sys.exit(main())
