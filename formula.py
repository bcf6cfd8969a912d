"""
SSAT formula model - literals, variables and clauses of a stochastic SAT problem

Every clause keeps the statistics of its variables current: how often each
variable still occurs positively / negatively in clauses that are not yet
satisfied, and in which clauses it is the last unassigned variable (unit).
The clauses re-derive these from the current assignment whenever one of their
variables is assigned or unassigned, so the search never recomputes them.

Notes:
- Occurrence counts only count literals of clauses that are not satisfied.
- A clause is unit for at most one variable at a time.
- Any disagreement between the statistics and the formula raises
  InvariantError where it is detected; nothing tries to repair it.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

# Assignment states
TRUE = 1
FALSE = 0
UNASSIGNED = -1

# Results of Variable.is_pure()
POSITIVE = 1
NEGATIVE = -1
NONE = 0

# Probability carried by choice variables (the solver picks their value)
CHOICE = -1.0


class InvariantError(AssertionError):
  """The incremental bookkeeping no longer matches the formula."""


def value_name(value: int) -> str:
  if value == TRUE:
    return "True"
  if value == FALSE:
    return "False"
  return "Unassigned"


@dataclass(frozen=True)
class Literal:
  """A variable occurring positively or negatively in a clause."""
  variable: "Variable"
  positive: bool

  def is_satisfied(self) -> bool:
    if self.positive:
      return self.variable.assignment == TRUE
    return self.variable.assignment == FALSE

  def is_falsified(self) -> bool:
    if self.positive:
      return self.variable.assignment == FALSE
    return self.variable.assignment == TRUE

  def __str__(self) -> str:
    sign = "" if self.positive else "-"
    return f"{sign}{self.variable.name}"


class Variable:
  """One variable of the formula.

  `probability` is the chance of being true for a chance variable, or the
  negative CHOICE sentinel for a choice variable.
  """

  def __init__(self, name: int, probability: float = CHOICE):
    self.name = name
    self.assignment = UNASSIGNED
    self.probability = probability
    self.times_positive = 0
    self.times_negative = 0
    # Insertion ordered; the first entry decides a forced value.
    self.unit_clauses: Dict["Clause", None] = {}

  def is_choice(self) -> bool:
    return self.probability < 0

  def is_chance(self) -> bool:
    return not self.is_choice()

  def set_probability(self, probability: float) -> None:
    if not probability <= 1.0:
      raise ValueError(f"Variable {self.name} has probability {probability} outside 0..1")
    self.probability = probability

  def chance_true(self) -> float:
    """Chance of being true, or CHOICE for a choice variable."""
    if self.is_choice():
      return CHOICE
    return self.probability

  def chance_false(self) -> float:
    """Chance of being false, or CHOICE for a choice variable."""
    if self.is_choice():
      return CHOICE
    return 1.0 - self.probability

  def is_assigned(self) -> bool:
    return self.assignment != UNASSIGNED

  def assign(self, value: int) -> None:
    if value not in (TRUE, FALSE):
      raise ValueError(f"Cannot assign {value!r} to variable {self.name}")
    if self.is_assigned():
      raise InvariantError(f"Variable {self.name} is already assigned {value_name(self.assignment)}")
    self.assignment = value

  def unassign(self) -> int:
    """Reset to UNASSIGNED and return the value it had."""
    if not self.is_assigned():
      raise InvariantError(f"Variable {self.name} is not assigned")
    prior = self.assignment
    self.assignment = UNASSIGNED
    return prior

  def inc_positive(self) -> None:
    self.times_positive += 1

  def dec_positive(self) -> None:
    if self.times_positive == 0:
      raise InvariantError(f"Variable {self.name} positive occurrence count would drop below zero")
    self.times_positive -= 1

  def inc_negative(self) -> None:
    self.times_negative += 1

  def dec_negative(self) -> None:
    if self.times_negative == 0:
      raise InvariantError(f"Variable {self.name} negative occurrence count would drop below zero")
    self.times_negative -= 1

  def add_unit_clause(self, clause: "Clause") -> None:
    if clause in self.unit_clauses:
      raise InvariantError(f"Clause {clause.index} is already unit for variable {self.name}")
    self.unit_clauses[clause] = None

  def remove_unit_clause(self, clause: "Clause") -> None:
    if clause not in self.unit_clauses:
      raise InvariantError(f"Clause {clause.index} is not unit for variable {self.name}")
    del self.unit_clauses[clause]

  def has_unit_clause(self, clause: "Clause") -> bool:
    return clause in self.unit_clauses

  def first_unit_clause(self) -> "Clause":
    return next(iter(self.unit_clauses))

  def is_unit(self) -> bool:
    return len(self.unit_clauses) > 0

  def is_pure(self) -> int:
    """POSITIVE or NEGATIVE if the variable occurs with one sign only, else NONE.

    A variable with no live occurrences at all reports POSITIVE.
    """
    if self.times_positive > 0 and self.times_negative > 0:
      return NONE
    if self.times_positive == 0 and self.times_negative == 0:
      return POSITIVE
    return POSITIVE if self.times_positive > 0 else NEGATIVE

  def __eq__(self, other: object) -> bool:
    if not isinstance(other, Variable):
      return NotImplemented
    return self.name == other.name

  def __hash__(self) -> int:
    return hash(self.name)

  def __repr__(self) -> str:
    return f"Variable({self.name}, {value_name(self.assignment)})"


class Clause:
  """A disjunction of literals, in the order they were read.

  Satisfaction is never stored: it is derived from the literals' variables.
  Clauses compare by identity so two clauses with the same literals stay
  distinct entries in a variable's unit clauses.
  """

  def __init__(self, index: int = 0):
    self.index = index
    self.literals: List[Literal] = []

  def add_literal(self, variable: Variable, positive: bool) -> Literal:
    """Only used while the formula is being built."""
    literal = Literal(variable, positive)
    logging.debug(f"[Formula] Adding literal {literal} to clause {self.index}")
    self.literals.append(literal)
    if positive:
      variable.inc_positive()
    else:
      variable.inc_negative()
    return literal

  def num_literals(self) -> int:
    return len(self.literals)

  def num_satisfied_literals(self) -> int:
    return sum(1 for literal in self.literals if literal.is_satisfied())

  def is_satisfied(self) -> bool:
    return any(literal.is_satisfied() for literal in self.literals)

  def is_unsatisfied(self) -> bool:
    """True once every literal is falsified (vacuously for an empty clause)."""
    return all(literal.is_falsified() for literal in self.literals)

  def literal_for(self, variable: Variable) -> Optional[Literal]:
    for literal in self.literals:
      if literal.variable == variable:
        return literal
    return None

  def contains(self, variable: Variable) -> bool:
    return self.literal_for(variable) is not None

  def unassigned_variables(self) -> List[Variable]:
    found: List[Variable] = []
    for literal in self.literals:
      if not literal.variable.is_assigned() and literal.variable not in found:
        found.append(literal.variable)
    return found

  def on_variable_assigned(self, variable: Variable) -> None:
    """Update the statistics after `variable` received a value."""
    if not self.contains(variable):
      return
    self.check_unitness()

    satisfied = [literal for literal in self.literals if literal.is_satisfied()]
    # Only the assignment that first satisfies the clause retires its literals.
    if satisfied and all(literal.variable == variable for literal in satisfied):
      for literal in self.literals:
        if literal.positive:
          literal.variable.dec_positive()
        else:
          literal.variable.dec_negative()

  def on_variable_unassigned(self, variable: Variable, prior_value: int) -> None:
    """Update the statistics after `variable` lost `prior_value`."""
    if self.is_satisfied():
      return
    if not self.contains(variable):
      return
    self.check_unitness()

    positive = prior_value == TRUE
    if not any(literal.variable == variable and literal.positive == positive for literal in self.literals):
      return
    # The clause was satisfied by this variable alone; its literals count again.
    for literal in self.literals:
      if literal.positive:
        literal.variable.inc_positive()
      else:
        literal.variable.inc_negative()

  def check_unitness(self) -> None:
    """Register the clause with its one unassigned variable, or with none."""
    if not self.is_satisfied():
      unassigned = self.unassigned_variables()
      if len(unassigned) == 1:
        unassigned[0].add_unit_clause(self)
        return
    for literal in self.literals:
      if literal.variable.has_unit_clause(self):
        literal.variable.remove_unit_clause(self)

  def __str__(self) -> str:
    return " ".join([str(literal) for literal in self.literals] + ["0"])

  def __repr__(self) -> str:
    return f"Clause({self.index}: {self})"


class Formula:
  """Variables and clauses of one SSAT problem, shared by a whole solve.

  Variables are indexed by name; slot 0 of `variables` is unused.
  """

  def __init__(self, num_vars: int, check_invariants: bool = False):
    if num_vars < 0:
      raise ValueError(f"Number of variables must not be negative, got {num_vars}")
    self.variables: List[Optional[Variable]] = [None] + [Variable(name) for name in range(1, num_vars + 1)]
    self.clauses: List[Clause] = []
    self.comments: List[str] = []
    self.check_invariants = check_invariants
    self._occurrences: Dict[int, List[Clause]] = {name: [] for name in range(1, num_vars + 1)}
    self._prepared = False

  @classmethod
  def from_clauses(
    cls,
    clauses: Iterable[Iterable[int]],
    num_vars: Optional[int] = None,
    probabilities: Optional[Mapping[int, float]] = None,
    check_invariants: bool = False,
  ) -> "Formula":
    """Build and prepare a formula from DIMACS-style integer clauses."""
    clause_list = [list(clause) for clause in clauses]
    if num_vars is None:
      num_vars = max((abs(lit) for clause in clause_list for lit in clause), default=0)
    formula = cls(num_vars, check_invariants)
    for clause in clause_list:
      formula.add_clause(clause)
    for name, probability in (probabilities or {}).items():
      formula.set_probability(name, probability)
    formula.prepare()
    return formula

  @property
  def num_vars(self) -> int:
    return len(self.variables) - 1

  def variable(self, name: int) -> Variable:
    if not 1 <= name <= self.num_vars:
      raise ValueError(f"Variable {name} outside 1..{self.num_vars}")
    return self.variables[name]

  def all_variables(self) -> Iterator[Variable]:
    return iter(self.variables[1:])

  def add_clause(self, literals: Iterable[int]) -> Clause:
    if self._prepared:
      raise ValueError("Clauses must be added before the formula is prepared")
    clause = Clause(len(self.clauses))
    literals = list(literals)
    for lit in literals:
      if lit == 0:
        raise ValueError(f"Clause {clause.index} contains 0, which only terminates a clause")
      self.variable(abs(lit))
    for lit in literals:
      variable = self.variables[abs(lit)]
      clause.add_literal(variable, lit > 0)
      occurrences = self._occurrences[variable.name]
      if not occurrences or occurrences[-1] is not clause:
        occurrences.append(clause)
    self.clauses.append(clause)
    return clause

  def set_probability(self, name: int, probability: float) -> None:
    self.variable(name).set_probability(probability)

  def prepare(self) -> None:
    """Initial unit sweep; must run once before the search starts."""
    if self._prepared:
      return
    for clause in self.clauses:
      clause.check_unitness()
    self._prepared = True
    n_chance = sum(1 for variable in self.all_variables() if variable.is_chance())
    logging.info(f"[Formula] {self.num_vars} variables ({n_chance} chance), {len(self.clauses)} clauses")

  def is_satisfied(self) -> bool:
    return all(clause.is_satisfied() for clause in self.clauses)

  def is_unsatisfied(self) -> bool:
    return any(clause.is_unsatisfied() for clause in self.clauses)

  def assign(self, variable: Variable, value: int) -> None:
    variable.assign(value)
    for clause in self._occurrences[variable.name]:
      clause.on_variable_assigned(variable)
    if self.check_invariants:
      self.check_statistics()

  def unassign(self, variable: Variable) -> int:
    prior = variable.unassign()
    for clause in self._occurrences[variable.name]:
      clause.on_variable_unassigned(variable, prior)
    if self.check_invariants:
      self.check_statistics()
    return prior

  def check_statistics(self) -> None:
    """Recompute every variable's statistics from scratch and compare."""
    for variable in self.all_variables():
      times_positive = 0
      times_negative = 0
      unit_clauses = set()
      for clause in self.clauses:
        if clause.is_satisfied():
          continue
        for literal in clause.literals:
          if literal.variable == variable:
            if literal.positive:
              times_positive += 1
            else:
              times_negative += 1
        if not variable.is_assigned() and clause.unassigned_variables() == [variable]:
          unit_clauses.add(clause)

      if (variable.times_positive, variable.times_negative) != (times_positive, times_negative):
        raise self.invariant_violation(
          f"Variable {variable.name} counts {variable.times_positive} positive / {variable.times_negative} negative"
          f" occurrences, formula has {times_positive} / {times_negative}")
      if set(variable.unit_clauses) != unit_clauses:
        raise self.invariant_violation(
          f"Variable {variable.name} is unit in clauses {sorted(c.index for c in variable.unit_clauses)},"
          f" formula says {sorted(c.index for c in unit_clauses)}")
      if (variable.is_pure() == NONE) != (times_positive > 0 and times_negative > 0):
        raise self.invariant_violation(f"Variable {variable.name} has the wrong purity")

  def invariant_violation(self, message: str) -> InvariantError:
    """Log the formula dump and return the error for the caller to raise."""
    dump = self.dump()
    logging.error(f"[Formula] {message}\n{dump}")
    return InvariantError(f"{message}\n{dump}")

  def dump(self) -> str:
    lines = ["Variable information"]
    for variable in self.all_variables():
      units = [clause.index for clause in variable.unit_clauses]
      lines.append(
        f"{variable.name}\tAssignment: {value_name(variable.assignment):<10}"
        f"\tTimes pos: {variable.times_positive}\tTimes neg: {variable.times_negative}"
        f"\tUnit clauses: {units}")
    lines.append("Literals in clauses: <#> means variable # has been assigned")
    for clause in self.clauses:
      status = "Satisfied" if clause.is_satisfied() else "Unsatisfied(yet)"
      shown = [f"<{literal}>" if literal.variable.is_assigned() else str(literal) for literal in clause.literals]
      lines.append(f"Clause {clause.index} is {status}: {' '.join(shown)}")
    return "\n".join(lines)
