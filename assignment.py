"""
Assignments produced by the SSAT search.

An Assignment is an immutable snapshot of every variable's value taken at a
leaf of the search, paired with the probability of reaching that leaf and
succeeding. A list of assignments is a set of disjoint outcomes; its total
probability is the success probability of the search node that produced it.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

from formula import FALSE, Variable

# Decimal places kept after every probability adjustment
PRECISION = 3


@dataclass(frozen=True)
class Assignment:
  values: Tuple[bool, ...]
  probability: float

  def __post_init__(self):
    if not 0.0 <= self.probability <= 1.0:
      raise ValueError(f"Assignment probability {self.probability} outside 0..1")

  @classmethod
  def snapshot(cls, variables: Sequence[Optional[Variable]], probability: float) -> "Assignment":
    """Record the variables (slot 0 unused) as true unless explicitly assigned false."""
    values = tuple(variable.assignment != FALSE for variable in variables[1:])
    return cls(values, probability)

  def value(self, name: int) -> bool:
    if not 1 <= name <= len(self.values):
      raise ValueError(f"Variable {name} outside 1..{len(self.values)}")
    return self.values[name - 1]

  def literals(self) -> List[int]:
    """DIMACS-style view: i if variable i is true, -i otherwise."""
    return [name if value else -name for name, value in enumerate(self.values, start=1)]

  def scaled(self, factor: float) -> "Assignment":
    return Assignment(self.values, round(self.probability * factor, PRECISION))

  def __str__(self) -> str:
    return format_assignment(self)


def scale_all(assignments: Iterable[Assignment], factor: float) -> List[Assignment]:
  return [assignment.scaled(factor) for assignment in assignments]


def total_probability(assignments: Iterable[Assignment]) -> float:
  """Probability mass of a set of disjoint outcomes."""
  return round(sum(assignment.probability for assignment in assignments), PRECISION)


def successful(assignments: Iterable[Assignment]) -> List[Assignment]:
  return [assignment for assignment in assignments if assignment.probability > 0.0]


def format_assignment(assignment: Assignment) -> str:
  cells = [f"{lit:>3}" for lit in assignment.literals()]
  return "\t".join(cells) + f"\t\t{assignment.probability}"
