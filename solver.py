"""
SSAT Solver - best plan and success probability of a stochastic SAT formula

Implement: solve_ssat(formula) -> (status, assignments)

Notes:
- The search is DPLL extended to stochastic SAT: a choice variable takes the
  value with the higher success probability, a chance variable keeps both of
  its outcomes weighted by their probabilities.
- Each call (dp) picks its variable in strict order: a unit variable, then a
  pure choice variable, then the first unassigned variable.
- The formula is one mutable structure shared by the whole call tree.
  try_assign undoes its assignment before returning, so a caller always sees
  the formula exactly as it left it.
- dp and the helpers call each other through module globals so evaluate.py
  can count calls by wrapping them.
"""

import logging
import sys
from typing import List, Optional, Tuple

from assignment import Assignment, scale_all, total_probability
from formula import FALSE, NONE, POSITIVE, TRUE, Formula, Variable, value_name

# Interpreter frames per decision level (dp -> try_assign -> assign_next_chance)
FRAMES_PER_LEVEL = 3
RECURSION_MARGIN = 200


def find_unit_variable(formula: Formula) -> Optional[Variable]:
  """Return the first unassigned variable that is unit in some clause."""
  for variable in formula.all_variables():
    if not variable.is_assigned() and variable.is_unit():
      return variable
  return None


def find_pure_variable(formula: Formula) -> Tuple[Optional[Variable], int]:
  """Return (variable, purity) for the first unassigned pure choice variable, else (None, NONE)."""
  for variable in formula.all_variables():
    if variable.is_choice() and not variable.is_assigned():
      purity = variable.is_pure()
      if purity != NONE:
        return variable, purity
  return None, NONE


def select_variable(formula: Formula) -> Optional[Variable]:
  for variable in formula.all_variables():
    if not variable.is_assigned():
      return variable
  return None


def next_chance_variable(formula: Formula) -> Optional[Variable]:
  for variable in formula.all_variables():
    if variable.is_chance() and not variable.is_assigned():
      return variable
  return None


def weight(variable: Variable, value: int) -> float:
  return variable.chance_true() if value == TRUE else variable.chance_false()


def opposite(value: int) -> int:
  return FALSE if value == TRUE else TRUE


def falsifies_unit_clause(variable: Variable, value: int) -> bool:
  """True if `value` leaves one of the clauses `variable` is unit in with no true literal."""
  positive = value == TRUE
  for clause in variable.unit_clauses:
    if not any(literal.variable == variable and literal.positive == positive for literal in clause.literals):
      return True
  return False


def dead_end(formula: Formula, variable: Variable, value: int) -> Assignment:
  """The single zero-probability outcome of giving `variable` a value that falsifies a clause."""
  values = list(Assignment.snapshot(formula.variables, 0.0).values)
  values[variable.name - 1] = value == TRUE
  return Assignment(tuple(values), 0.0)


def try_assign(formula: Formula, variable: Variable, value: int) -> List[Assignment]:
  """Assign `variable`, solve the rest of the formula, then unassign it again."""
  logging.debug(f"[Solver] Assigning variable {variable.name} to {value_name(value)}")
  formula.assign(variable, value)
  try:
    assignments = dp(formula)
  finally:
    formula.unassign(variable)
  logging.debug(f"[Solver] Variable {variable.name} = {value_name(value)} gave {len(assignments)} assignments")
  return assignments


def assign_next_chance(formula: Formula) -> List[Assignment]:
  """Assign the remaining chance variables once the formula is decided.

  Every combination becomes one Assignment: probability 1.0 if the formula
  is SAT, 0.0 if it is UNSAT, weighted by the chance values on its path.
  """
  variable = next_chance_variable(formula)
  if variable is None:
    if formula.is_satisfied():
      return [Assignment.snapshot(formula.variables, 1.0)]
    if formula.is_unsatisfied():
      return [Assignment.snapshot(formula.variables, 0.0)]
    raise formula.invariant_violation(
      "Assigned every chance variable after the formula was decided, but it is neither SAT nor UNSAT")

  logging.debug(f"[Solver] Completing chance variable {variable.name}")
  true_assignments = scale_all(try_assign(formula, variable, TRUE), variable.chance_true())
  false_assignments = scale_all(try_assign(formula, variable, FALSE), variable.chance_false())
  return true_assignments + false_assignments


def dp(formula: Formula) -> List[Assignment]:
  """Solve the formula from its current state.

  Returns disjoint outcomes whose total probability is the success
  probability of this state under optimal choices.
  """
  if formula.is_satisfied():
    logging.debug("[Solver] Formula is SAT")
    return assign_next_chance(formula)
  if formula.is_unsatisfied():
    logging.debug("[Solver] Formula is UNSAT")
    return assign_next_chance(formula)

  # 1) Unit variable: its value is forced by the first clause it is unit in
  variable = find_unit_variable(formula)
  if variable is not None:
    literal = variable.first_unit_clause().literal_for(variable)
    forced = TRUE if literal.positive else FALSE
    logging.debug(f"[Solver] Variable {variable.name} is unit, forced {value_name(forced)}")
    forced_assignments = try_assign(formula, variable, forced)
    if variable.is_choice():
      return forced_assignments
    # Chance decides, so the other value stays a possible outcome.
    other = opposite(forced)
    if falsifies_unit_clause(variable, other):
      other_assignments = [dead_end(formula, variable, other)]
    else:
      other_assignments = try_assign(formula, variable, other)
    return (scale_all(forced_assignments, weight(variable, forced))
            + scale_all(other_assignments, weight(variable, other)))

  # 2) Pure choice variable
  variable, purity = find_pure_variable(formula)
  if variable is not None:
    value = TRUE if purity == POSITIVE else FALSE
    logging.debug(f"[Solver] Variable {variable.name} is pure, assigning {value_name(value)}")
    return try_assign(formula, variable, value)

  # 3) Split on the first unassigned variable
  variable = select_variable(formula)
  if variable is None:
    raise formula.invariant_violation("Formula is neither SAT nor UNSAT but every variable is assigned")
  logging.debug(f"[Solver] No unit or pure variable, splitting on variable {variable.name}")
  true_assignments = try_assign(formula, variable, TRUE)
  false_assignments = try_assign(formula, variable, FALSE)

  if variable.is_choice():
    # Ties keep TRUE
    if total_probability(true_assignments) >= total_probability(false_assignments):
      return true_assignments
    return false_assignments
  return scale_all(true_assignments, variable.chance_true()) + scale_all(false_assignments, variable.chance_false())


def solve_ssat(formula: Formula, frames_per_level: int = FRAMES_PER_LEVEL) -> Tuple[str, List[Assignment]]:
  """
  Solve a formula and return its best plan.

  Returns:
    ("SAT", assignments)    if the plan succeeds with non-zero probability, or
    ("UNSAT", assignments)  if it cannot succeed.
  The assignments are the plan's outcomes; total_probability(assignments)
  is its success probability.

  frames_per_level sizes the recursion limit; callers that wrap the search
  functions pass a larger value. The previous limit is restored afterwards.
  """
  formula.prepare()

  # The search recurses once per decided variable
  previous_limit = sys.getrecursionlimit()
  needed = frames_per_level * formula.num_vars + RECURSION_MARGIN
  if previous_limit < needed:
    sys.setrecursionlimit(needed)
  try:
    assignments = dp(formula)
  finally:
    sys.setrecursionlimit(previous_limit)
  probability = total_probability(assignments)
  logging.info(f"[Solver] {len(assignments)} outcomes, success probability {probability}")
  status = "SAT" if probability > 0.0 else "UNSAT"
  return status, assignments
