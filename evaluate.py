#!/usr/bin/env python3
"""
Evaluate the SSAT solver on randomly generated stochastic SAT instances.

This script generates random k-CNF formulas in which a fraction of the
variables are chance variables, writes each one to an SSAT file, reads it
back with `reader.read_formula`, runs `solver.solve_ssat`, and collects
metrics and plots.

Instance suites:
 - random: independently random clauses; the outcome is not known beforehand
 - sat: clauses are drawn so that a hidden assignment satisfies all of them,
     so the best plan has a non-zero success probability (labelled SAT)
 - --unsat-proportion makes that share of "sat" instances contradictory by
     adding the clauses (x) and (-x) for a random variable (labelled UNSAT)

Every outcome the solver returns is verified: an outcome with non-zero
probability must satisfy every clause, and the total must lie in 0..1.

Outputs:
  - CSV with one row per instance (outdir/metrics.csv)
  - Plots (PNG): time_by_size.png, status_counts.png, time_vs_dp_calls.png,
    probability_by_ratio.png
  - Instance files stored in outdir/tmp

Usage example:
  python evaluate.py --sizes 10 20 30 --instances-per-size 20 --clause-ratio 3.0 \
      --chance-fraction 0.5 --suite-mode sat --unsat-proportion 0.2 --timeout 10 --outdir outputs
"""
from __future__ import annotations

import argparse
import csv
import functools
import logging
import os
import random
import signal
import tempfile
import time
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, asdict
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

import matplotlib.pyplot as plt

import logger
import reader
import solver as solver_mod
from assignment import Assignment, total_probability

# Tolerance on the total probability of an instance's outcomes
PROBABILITY_TOLERANCE = 0.001

INSTRUMENTED = {
    "dp": "dp_calls",
    "try_assign": "try_assign_calls",
    "find_unit_variable": "unit_checks",
    "find_pure_variable": "pure_checks",
    "assign_next_chance": "chance_completions",
}

# Each counted call adds one wrapper frame on top of the solver's own
WRAPPED_FRAMES_PER_LEVEL = 2 * solver_mod.FRAMES_PER_LEVEL


@dataclass
class InstanceResult:
    num_vars: int
    n_clauses: int
    clause_length: int
    n_chance: int
    status: str  # SAT, UNSAT, TIMEOUT or ERROR
    wall_time_s: float
    dp_calls: int
    try_assign_calls: int
    unit_checks: int
    pure_checks: int
    chance_completions: int
    success_probability: float = 0.0
    n_outcomes: int = 0
    outcomes_valid: Optional[bool] = None
    error: str = ""
    expected_status: Optional[str] = None
    is_correct: Optional[bool] = None  # None when the instance is unlabelled


# ---------------------------
# Instance generators
# ---------------------------
def random_probabilities(num_vars: int, chance_fraction: float, rng: random.Random) -> Dict[int, float]:
    """Pick chance variables with probability `chance_fraction`; their chance of truth is uniform in 0.05..0.95."""
    probabilities: Dict[int, float] = {}
    for name in range(1, num_vars + 1):
        if rng.random() < chance_fraction:
            probabilities[name] = round(rng.uniform(0.05, 0.95), 2)
    return probabilities


def random_clause(num_vars: int, clause_length: int, rng: random.Random) -> List[int]:
    names = rng.sample(range(1, num_vars + 1), min(clause_length, num_vars))
    return [name if rng.random() < 0.5 else -name for name in names]


def generate_random_instance(
    num_vars: int, num_clauses: int, clause_length: int, chance_fraction: float, rng: random.Random
) -> Tuple[List[List[int]], Dict[int, float]]:
    """Uniform random k-CNF over distinct variables per clause."""
    if num_vars < 1:
        raise ValueError(f"Need at least one variable, got {num_vars}")
    clauses = [random_clause(num_vars, clause_length, rng) for _ in range(num_clauses)]
    return clauses, random_probabilities(num_vars, chance_fraction, rng)


def generate_planted_instance(
    num_vars: int, num_clauses: int, clause_length: int, chance_fraction: float, rng: random.Random
) -> Tuple[List[List[int]], Dict[int, float], List[int]]:
    """Random k-CNF in which every clause is satisfied by a hidden assignment.

    Chance variables favour their hidden value (0.75..0.95) so the hidden
    outcome keeps enough probability to survive rounding on moderate sizes.
    """
    if num_vars < 1:
        raise ValueError(f"Need at least one variable, got {num_vars}")
    hidden = [name if rng.random() < 0.5 else -name for name in range(1, num_vars + 1)]
    hidden_set = set(hidden)
    clauses: List[List[int]] = []
    while len(clauses) < num_clauses:
        clause = random_clause(num_vars, clause_length, rng)
        if any(lit in hidden_set for lit in clause):
            clauses.append(clause)

    probabilities: Dict[int, float] = {}
    for lit in hidden:
        if rng.random() < chance_fraction:
            favoured = round(rng.uniform(0.75, 0.95), 2)
            probabilities[abs(lit)] = favoured if lit > 0 else round(1.0 - favoured, 2)
    return clauses, probabilities, hidden


def make_contradictory(clauses: List[List[int]], num_vars: int, rng: random.Random) -> List[List[int]]:
    """Add (x) and (-x) for a random variable x, guaranteeing success probability 0."""
    name = rng.randint(1, num_vars)
    return clauses + [[name], [-name]]


# ---------------------------
# Outcome verification
# ---------------------------
def verify_cnf_satisfied(clauses: Iterable[Iterable[int]], model: List[int]) -> bool:
    """True if the model, a list of true literals, satisfies every clause."""
    true_literals = set(model)
    return all(any(lit in true_literals for lit in clause) for clause in clauses)


def verify_outcomes(clauses: Iterable[Iterable[int]], assignments: List[Assignment]) -> bool:
    clauses = [list(cl) for cl in clauses]
    for assignment in assignments:
        if assignment.probability > 0.0 and not verify_cnf_satisfied(clauses, assignment.literals()):
            return False
    total = total_probability(assignments)
    return 0.0 <= total <= 1.0 + PROBABILITY_TOLERANCE


# ---------------------------
# Solver instrumentation and time limit
# ---------------------------
@contextmanager
def instrumented_solver() -> Iterator[Dict[str, int]]:
    """Count calls to the solver steps named in INSTRUMENTED while the block runs.

    dp and its helpers call each other through module globals, so replacing
    the module attributes catches the recursive calls too.
    """
    counters = dict.fromkeys(INSTRUMENTED.values(), 0)
    originals = {name: getattr(solver_mod, name) for name in INSTRUMENTED}

    def counting(original: Callable, counter: str) -> Callable:
        @functools.wraps(original)
        def wrapper(*args, **kwargs):
            counters[counter] += 1
            return original(*args, **kwargs)
        return wrapper

    for name, counter in INSTRUMENTED.items():
        setattr(solver_mod, name, counting(originals[name], counter))
    try:
        yield counters
    finally:
        for name, original in originals.items():
            setattr(solver_mod, name, original)


class Timeout(Exception):
    pass


@contextmanager
def time_limit(seconds: Optional[float]) -> Iterator[None]:
    """Raise Timeout inside the block after `seconds` (whole seconds, Unix only; 0 or None disables)."""
    if not seconds or seconds <= 0 or not hasattr(signal, "SIGALRM"):
        yield
        return

    def on_alarm(signum, frame):  # noqa: ARG001
        raise Timeout()

    previous = signal.signal(signal.SIGALRM, on_alarm)
    signal.alarm(max(1, int(seconds)))
    try:
        yield
    finally:
        signal.alarm(0)
        signal.signal(signal.SIGALRM, previous)


# ---------------------------
# Running instances
# ---------------------------
def write_instance_tmp(
    clauses: List[List[int]], num_vars: int, probabilities: Dict[int, float], tmp_dir: str
) -> str:
    """Write an instance to a temporary SSAT file and return its path."""
    os.makedirs(tmp_dir, exist_ok=True)
    fd, path = tempfile.mkstemp(prefix="ssat_", suffix=".ssat", dir=tmp_dir, text=True)
    os.close(fd)
    comment = f"random instance, {num_vars} variables, {len(clauses)} clauses"
    return reader.write_formula(path, clauses, num_vars, probabilities, comments=[comment])


def run_one_instance(
    clauses: List[List[int]],
    num_vars: int,
    probabilities: Dict[int, float],
    clause_length: int,
    timeout_s: Optional[float],
    tmp_dir: str,
    expected_status: Optional[str] = None,
    check_invariants: bool = False,
) -> InstanceResult:
    """Round-trip one instance through an SSAT file, solve it and verify the outcomes."""
    counters = dict.fromkeys(INSTRUMENTED.values(), 0)

    def result(status: str, wall_time: float = 0.0, **fields) -> InstanceResult:
        return InstanceResult(
            num_vars=num_vars,
            n_clauses=len(clauses),
            clause_length=clause_length,
            n_chance=len(probabilities),
            status=status,
            wall_time_s=wall_time,
            expected_status=expected_status,
            is_correct=(status == expected_status) if expected_status in ("SAT", "UNSAT") else None,
            **counters,
            **fields,
        )

    try:
        path = write_instance_tmp(clauses, num_vars, probabilities, tmp_dir)
        formula = reader.read_formula(path, check_invariants=check_invariants)
    except (OSError, ValueError) as e:
        return result("ERROR", error=f"read: {type(e).__name__}: {e}")

    started = time.perf_counter()
    try:
        with instrumented_solver() as calls, time_limit(timeout_s):
            try:
                status, assignments = solver_mod.solve_ssat(formula, WRAPPED_FRAMES_PER_LEVEL)
            finally:
                counters.update(calls)
    except Timeout:
        return result("TIMEOUT", time.perf_counter() - started)
    except Exception as e:
        logging.error(f"[Evaluate] Solver failed on {path}: {e}")
        return result("ERROR", time.perf_counter() - started, error=f"solve: {type(e).__name__}: {e}")
    wall_time = time.perf_counter() - started

    return result(
        status,
        wall_time,
        success_probability=total_probability(assignments),
        n_outcomes=len(assignments),
        outcomes_valid=verify_outcomes(clauses, assignments),
    )


def save_csv(rows: List[InstanceResult], path: str) -> None:
    """One row per instance; the header follows the InstanceResult fields."""
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    fieldnames = list(InstanceResult.__dataclass_fields__)
    with open(path, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()
        writer.writerows(asdict(row) for row in rows)


def _save_figure(outdir: str, name: str, title: str, xlabel: str, ylabel: str) -> str:
    plt.title(title)
    plt.xlabel(xlabel)
    plt.ylabel(ylabel)
    path = os.path.join(outdir, name)
    plt.tight_layout()
    plt.savefig(path)
    plt.close()
    return path


def _scatter(x: List[float], y: List[float], colour: List[float],
             cmap: str, colour_label: str) -> None:
    plt.figure(figsize=(6, 4))
    points = plt.scatter(x, y, c=colour, cmap=cmap, alpha=0.7)
    plt.colorbar(points).set_label(colour_label)


def make_plots(rows: List[InstanceResult], outdir: str) -> List[str]:
    """Write the evaluation figures to outdir and return their paths."""
    os.makedirs(outdir, exist_ok=True)
    paths: List[str] = []
    solved = [r for r in rows if r.status in ("SAT", "UNSAT")]
    sizes = sorted({r.num_vars for r in rows})

    # Solve time per size, solved instances only
    solved_sizes = [n for n in sizes if any(r.num_vars == n for r in solved)]
    if solved_sizes:
        plt.figure(figsize=(6, 4))
        plt.boxplot([[r.wall_time_s for r in solved if r.num_vars == n] for n in solved_sizes], showfliers=False)
        plt.xticks(range(1, len(solved_sizes) + 1), [str(n) for n in solved_sizes])
        paths.append(_save_figure(outdir, "time_by_size.png", "Solve time by size (solved instances)",
                                  "Variables", "Seconds"))

    # Stacked status counts per size
    if sizes:
        per_size = {n: Counter(r.status for r in rows if r.num_vars == n) for n in sizes}
        plt.figure(figsize=(7, 4))
        bottom = [0] * len(sizes)
        for status in ("SAT", "UNSAT", "TIMEOUT", "ERROR"):
            heights = [per_size[n][status] for n in sizes]
            plt.bar([str(n) for n in sizes], heights, bottom=bottom, label=status)
            bottom = [b + h for b, h in zip(bottom, heights)]
        plt.legend()
        paths.append(_save_figure(outdir, "status_counts.png", "Outcome status by size", "Variables", "Instances"))

    if solved:
        _scatter([r.dp_calls for r in solved], [r.wall_time_s for r in solved],
                 [r.num_vars for r in solved], "viridis", "Variables")
        paths.append(_save_figure(outdir, "time_vs_dp_calls.png", "Time vs dp calls", "dp calls", "Seconds"))

        _scatter([r.n_clauses / r.num_vars for r in solved], [r.success_probability for r in solved],
                 [r.n_chance / r.num_vars for r in solved], "plasma", "Chance fraction")
        paths.append(_save_figure(outdir, "probability_by_ratio.png", "Success probability vs clause ratio",
                                  "Clauses / variables", "Success probability"))

    return paths


def print_summary(results: List[InstanceResult]) -> None:
    labeled = [r for r in results if r.expected_status in ("SAT", "UNSAT")]
    if labeled:
        correct = sum(1 for r in labeled if r.is_correct)
        print(f"Labeled accuracy: {correct}/{len(labeled)} = {correct / len(labeled):.3f}")
        confusion = Counter((r.expected_status, r.status) for r in labeled)
        for expected in ("SAT", "UNSAT"):
            cells = ", ".join(f"{status}={confusion[(expected, status)]}"
                              for status in ("SAT", "UNSAT", "TIMEOUT", "ERROR"))
            print(f"Expected {expected}: predicted {cells}")

    invalid = sum(1 for r in results if r.outcomes_valid is False)
    if invalid:
        print(f"Invalid outcomes in {invalid} instances")

    for n in sorted({r.num_vars for r in results}):
        solved = [r for r in results if r.num_vars == n and r.status in ("SAT", "UNSAT")]
        if not solved:
            continue
        mean_time = sum(r.wall_time_s for r in solved) / len(solved)
        mean_probability = sum(r.success_probability for r in solved) / len(solved)
        print(f"N={n}: mean time {mean_time:.3f}s, mean success probability {mean_probability:.3f}"
              f" over {len(solved)} instances")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Evaluate the SSAT solver on random instances.")
    ap.add_argument("--sizes", nargs="*", type=int, default=[10, 20], help="List of variable counts to test")
    ap.add_argument("--instances-per-size", type=int, default=10, help="How many instances per size")
    ap.add_argument("--clause-ratio", type=float, default=3.0, help="Clauses per variable")
    ap.add_argument("--clause-length", type=int, default=3, help="Literals per clause")
    ap.add_argument("--chance-fraction", type=float, default=0.5, help="Probability a variable is a chance variable (0..1)")
    ap.add_argument("--seed", type=int, default=None, help="Random seed")
    ap.add_argument("--timeout", type=float, default=10.0, help="Per-instance timeout in seconds (Unix only)")
    ap.add_argument("--outdir", type=str, default="outputs", help="Output dir for CSV and plots")
    ap.add_argument("--no-plots", action="store_true", help="Skip plotting")
    ap.add_argument("--suite-mode", choices=["random", "sat"], default="random", help="random: independent random clauses; sat: clauses satisfied by a hidden assignment")
    ap.add_argument("--unsat-proportion", type=float, default=0.0, help="Proportion (0..1) of instances made contradictory (only relevant for suite-mode=sat)")
    ap.add_argument("--check-invariants", action="store_true", help="Recompute solver statistics after every assignment (slow)")
    ap.add_argument("--log-level", default="WARNING", help="Logging level, overridden by $LOGLEVEL")
    return ap.parse_args(argv)


def generate_suite(args: argparse.Namespace, rng: random.Random
                   ) -> Iterator[Tuple[int, List[List[int]], Dict[int, float], Optional[str]]]:
    """Yield (num_vars, clauses, probabilities, expected_status) for every instance of the run."""
    for n in args.sizes:
        if n < 1:
            logging.warning(f"[Evaluate] Skipping size {n}, an instance needs at least one variable")
            continue
        num_clauses = max(1, round(args.clause_ratio * n))
        for _ in range(args.instances_per_size):
            if args.suite_mode == "random":
                clauses, probabilities = generate_random_instance(
                    n, num_clauses, args.clause_length, args.chance_fraction, rng)
                yield n, clauses, probabilities, None
                continue
            clauses, probabilities, _hidden = generate_planted_instance(
                n, num_clauses, args.clause_length, args.chance_fraction, rng)
            if rng.random() < args.unsat_proportion:
                yield n, make_contradictory(clauses, n, rng), probabilities, "UNSAT"
            else:
                yield n, clauses, probabilities, "SAT"


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    logger.init_logger(args.log_level)
    rng = random.Random(args.seed)
    tmp_dir = os.path.join(args.outdir, "tmp")

    results: List[InstanceResult] = []
    for n, clauses, probabilities, expected in generate_suite(args, rng):
        res = run_one_instance(clauses, n, probabilities, args.clause_length, args.timeout, tmp_dir,
                               expected_status=expected, check_invariants=args.check_invariants)
        results.append(res)
        print(f"N={n} #{len(results)} -> {res.status} p={res.success_probability}"
              f" in {res.wall_time_s:.3f}s, clauses={res.n_clauses}")

    # Save CSV
    csv_path = os.path.join(args.outdir, "metrics.csv")
    save_csv(results, csv_path)
    print(f"Saved metrics CSV -> {csv_path}")

    # Plots
    if not args.no_plots:
        for p in make_plots(results, args.outdir):
            print(f"Saved plot -> {p}")

    print_summary(results)


if __name__ == "__main__":
    main()
