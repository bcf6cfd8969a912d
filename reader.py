"""
SSAT Reader - DIMACS-style SSAT file (file -> Formula)

Implement: read_formula(path) -> Formula

File layout:
  c <comment>                      any number of comment lines
  p cnf <num_vars> <num_clauses>   the problem line
  <lit> <lit> ... 0                num_clauses clauses; a clause may span lines
  <var> <probability>              optional pairs, at most one per variable

A positive literal i is variable i, a negative one its negation. A
probability in 0..1 makes the variable a chance variable; a negative one (or
no pair at all) leaves it a choice variable.
"""

import logging
import math
import os
import re
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from formula import CHOICE, Formula


def _parse_problem_line(line: str) -> Tuple[int, int]:
  parts = re.compile("\\s+").split(line.strip())
  if len(parts) != 4 or parts[0] != "p" or parts[1] != "cnf":
    raise ValueError(f"Malformed problem line '{line}', expected 'p cnf <num_vars> <num_clauses>'")
  try:
    num_vars, num_clauses = int(parts[2]), int(parts[3])
  except ValueError:
    raise ValueError(f"Malformed problem line '{line}', counts must be integers") from None
  if num_vars < 0 or num_clauses < 0:
    raise ValueError(f"Malformed problem line '{line}', counts must not be negative")
  return num_vars, num_clauses


def _to_int(token: str, where: str) -> int:
  try:
    return int(token)
  except ValueError:
    raise ValueError(f"Expected an integer in {where}, got '{token}'") from None


def _to_float(token: str, where: str) -> float:
  try:
    return float(token)
  except ValueError:
    raise ValueError(f"Expected a number in {where}, got '{token}'") from None


def parse_formula(text: str, check_invariants: bool = False) -> Formula:
  """Parse SSAT text into a prepared Formula."""
  lines = text.splitlines()
  comments: List[str] = []
  header: Optional[Tuple[int, int]] = None
  body: List[str] = []

  for number, line in enumerate(lines, start=1):
    stripped = line.strip()
    if not stripped:
      continue
    if stripped[0] == "c":
      comments.append(stripped[1:].strip())
      continue
    if header is not None:
      body.append(stripped)
    elif stripped[0] == "p":
      header = _parse_problem_line(stripped)
    else:
      raise ValueError(f"Unexpected line {number} before the problem line: '{stripped}'")

  if header is None:
    raise ValueError("Missing problem line 'p cnf <num_vars> <num_clauses>'")
  num_vars, num_clauses = header
  logging.info(f"[Reader] Num variables: {num_vars}")
  logging.info(f"[Reader] Num clauses: {num_clauses}")
  for comment in comments:
    logging.info(f"[Reader] Comment: {comment}")

  formula = Formula(num_vars, check_invariants)
  formula.comments.extend(comments)
  tokens = " ".join(body).split()
  position = 0

  # 1) Clauses, each terminated by 0
  for index in range(1, num_clauses + 1):
    literals: List[int] = []
    while True:
      if position >= len(tokens):
        raise ValueError(f"Clause {index} of {num_clauses} is missing or not terminated by 0")
      lit = _to_int(tokens[position], f"clause {index}")
      position += 1
      if lit == 0:
        break
      if abs(lit) > num_vars:
        raise ValueError(f"Clause {index} has literal {lit} outside 1..{num_vars}")
      literals.append(lit)
    formula.add_clause(literals)

  # 2) Probabilities, as <var> <probability> pairs
  rest = tokens[position:]
  if len(rest) % 2 != 0:
    raise ValueError(f"Dangling token '{rest[-1]}' after the clauses, expected '<var> <probability>' pairs")
  seen = set()
  for name_token, value_token in zip(rest[0::2], rest[1::2]):
    name = _to_int(name_token, "a probability line")
    value = _to_float(value_token, f"the probability of variable {name_token}")
    if not 1 <= name <= num_vars:
      raise ValueError(f"Probability given for unknown variable {name}, expected 1..{num_vars}")
    if name in seen:
      raise ValueError(f"Variable {name} has more than one probability line")
    if math.isnan(value) or value > 1.0:
      raise ValueError(f"Variable {name} has probability {value_token} outside 0..1")
    seen.add(name)
    formula.set_probability(name, value)

  formula.prepare()
  return formula


def read_formula(path: str, check_invariants: bool = False) -> Formula:
  """Read an SSAT file and return its prepared Formula."""
  with open(path, "r") as f:
    text = f.read()
  return parse_formula(text, check_invariants)


def format_formula(
  clauses: Iterable[Sequence[int]],
  num_vars: int,
  probabilities: Optional[Mapping[int, float]] = None,
  comments: Iterable[str] = (),
) -> str:
  """Inverse of parse_formula. Every variable gets a probability line; choice variables get CHOICE."""
  clause_list = [list(clause) for clause in clauses]
  probabilities = probabilities or {}
  lines = [f"c {comment}" for comment in comments]
  lines.append(f"p cnf {num_vars} {len(clause_list)}")
  for clause in clause_list:
    lines.append(" ".join(str(lit) for lit in clause + [0]))
  for name in range(1, num_vars + 1):
    lines.append(f"{name} {probabilities.get(name, CHOICE)}")
  return "\n".join(lines) + "\n"


def write_formula(
  path: str,
  clauses: Iterable[Sequence[int]],
  num_vars: int,
  probabilities: Optional[Mapping[int, float]] = None,
  comments: Iterable[str] = (),
) -> str:
  directory = os.path.dirname(path)
  if directory:
    os.makedirs(directory, exist_ok=True)
  with open(path, "w") as f:
    f.write(format_formula(clauses, num_vars, probabilities, comments))
  return path
