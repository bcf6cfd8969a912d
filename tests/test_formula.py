import random

import pytest

from formula import (CHOICE, FALSE, NEGATIVE, NONE, POSITIVE, TRUE, UNASSIGNED,
                     Clause, Formula, InvariantError, Literal, Variable)


def state(formula):
    """Every piece of incremental bookkeeping, for before/after comparisons."""
    variables = [
        (v.assignment, v.times_positive, v.times_negative, [c.index for c in v.unit_clauses])
        for v in formula.all_variables()
    ]
    return variables, [c.is_satisfied() for c in formula.clauses]


def expected_satisfied(clause):
    return any(
        literal.variable.assignment == (TRUE if literal.positive else FALSE)
        for literal in clause.literals
    )


def test_literal_satisfaction_follows_assignment():
    v = Variable(1)
    pos, neg = Literal(v, True), Literal(v, False)
    assert not pos.is_satisfied() and not neg.is_satisfied()
    assert not pos.is_falsified() and not neg.is_falsified()

    v.assign(TRUE)
    assert pos.is_satisfied() and neg.is_falsified()
    v.unassign()
    v.assign(FALSE)
    assert neg.is_satisfied() and pos.is_falsified()


def test_literal_equality_and_text():
    assert Literal(Variable(3), False) == Literal(Variable(3), False)
    assert Literal(Variable(3), False) != Literal(Variable(3), True)
    assert Literal(Variable(3), True) != Literal(Variable(4), True)
    assert str(Literal(Variable(3), False)) == "-3"
    assert str(Literal(Variable(3), True)) == "3"


def test_literal_is_immutable():
    literal = Literal(Variable(1), True)
    with pytest.raises(AttributeError):
        literal.positive = False


def test_variable_kinds():
    choice = Variable(1)
    assert choice.is_choice() and not choice.is_chance()
    assert choice.chance_true() == CHOICE
    assert choice.chance_false() == CHOICE

    chance = Variable(2, 0.3)
    assert chance.is_chance() and not chance.is_choice()
    assert chance.chance_true() == pytest.approx(0.3)
    assert chance.chance_false() == pytest.approx(0.7)

    assert Variable(3, 0.0).is_chance()
    assert Variable(4, -0.5).is_choice()


def test_variable_rejects_probability_above_one():
    with pytest.raises(ValueError):
        Variable(1).set_probability(1.5)
    with pytest.raises(ValueError):
        Variable(1).set_probability(float("nan"))


def test_variable_assign_and_unassign():
    v = Variable(1)
    v.assign(TRUE)
    assert v.is_assigned()
    with pytest.raises(InvariantError):
        v.assign(FALSE)
    assert v.unassign() == TRUE
    assert v.assignment == UNASSIGNED
    with pytest.raises(InvariantError):
        v.unassign()
    with pytest.raises(ValueError):
        v.assign(UNASSIGNED)


def test_invariant_error_is_an_assertion():
    assert issubclass(InvariantError, AssertionError)


def test_occurrence_counts_never_go_negative():
    v = Variable(1)
    v.inc_positive()
    v.dec_positive()
    with pytest.raises(InvariantError):
        v.dec_positive()
    with pytest.raises(InvariantError):
        v.dec_negative()


def test_unit_clause_registration_keeps_insertion_order():
    v = Variable(1)
    first, second = Clause(0), Clause(1)
    assert not v.is_unit()

    v.add_unit_clause(first)
    v.add_unit_clause(second)
    assert v.is_unit()
    assert v.first_unit_clause() is first
    assert v.has_unit_clause(second)
    with pytest.raises(InvariantError):
        v.add_unit_clause(first)

    v.remove_unit_clause(first)
    assert v.first_unit_clause() is second
    with pytest.raises(InvariantError):
        v.remove_unit_clause(first)


def test_purity():
    v = Variable(1)
    assert v.is_pure() == POSITIVE
    v.inc_negative()
    assert v.is_pure() == NEGATIVE
    v.inc_positive()
    assert v.is_pure() == NONE
    v.dec_negative()
    assert v.is_pure() == POSITIVE


def test_add_clause_counts_every_literal():
    f = Formula(2)
    clause = f.add_clause([1, -2, 1])
    assert clause.num_literals() == 3
    assert f.variable(1).times_positive == 2
    assert f.variable(2).times_negative == 1
    assert clause.literal_for(f.variable(2)) == Literal(f.variable(2), False)
    assert str(clause) == "1 -2 1 0"


def test_literal_for_missing_variable():
    f = Formula(3)
    clause = f.add_clause([1, 2])
    assert clause.literal_for(f.variable(3)) is None
    assert not clause.contains(f.variable(3))


def test_add_clause_rejects_bad_literals_without_side_effects():
    f = Formula(2)
    with pytest.raises(ValueError):
        f.add_clause([3])
    with pytest.raises(ValueError):
        f.add_clause([1, 0])
    assert f.clauses == []
    assert f.variable(1).times_positive == 0


def test_add_clause_after_prepare_is_rejected():
    f = Formula.from_clauses([[1]])
    with pytest.raises(ValueError):
        f.add_clause([1])


def test_variable_lookup_out_of_range():
    f = Formula(2)
    with pytest.raises(ValueError):
        f.variable(0)
    with pytest.raises(ValueError):
        f.variable(3)


def test_prepare_registers_initial_unit_clauses():
    f = Formula.from_clauses([[1], [-1, 2], [2, 3]])
    assert list(f.variable(1).unit_clauses) == [f.clauses[0]]
    assert not f.variable(2).is_unit()
    assert not f.variable(3).is_unit()


def test_assignment_satisfies_clause_and_retires_its_literals():
    f = Formula.from_clauses([[1, 2], [-1, 3]])
    v1, v2, v3 = f.variable(1), f.variable(2), f.variable(3)

    f.assign(v1, TRUE)
    assert f.clauses[0].is_satisfied()
    assert f.clauses[0].num_satisfied_literals() == 1
    assert v2.times_positive == 0
    assert (v1.times_positive, v1.times_negative) == (0, 1)
    # -1 is falsified, so the second clause now forces 3
    assert v3.first_unit_clause() is f.clauses[1]

    f.unassign(v1)
    assert (v1.times_positive, v1.times_negative) == (1, 1)
    assert v2.times_positive == 1
    assert not v3.is_unit()


def test_clause_satisfied_by_another_variable_is_not_counted_twice():
    f = Formula.from_clauses([[1, 2]])
    v1, v2 = f.variable(1), f.variable(2)

    f.assign(v1, TRUE)
    f.assign(v2, TRUE)
    assert (v1.times_positive, v2.times_positive) == (0, 0)
    f.unassign(v2)
    assert (v1.times_positive, v2.times_positive) == (0, 0)
    f.unassign(v1)
    assert (v1.times_positive, v2.times_positive) == (1, 1)


def test_unsatisfied_clause():
    f = Formula.from_clauses([[1, -2]])
    clause = f.clauses[0]

    f.assign(f.variable(1), FALSE)
    assert not clause.is_unsatisfied()
    assert f.variable(2).is_unit()

    f.assign(f.variable(2), TRUE)
    assert clause.is_unsatisfied() and not clause.is_satisfied()
    assert f.is_unsatisfied() and not f.is_satisfied()
    assert not f.variable(2).is_unit()


def test_empty_formula_and_empty_clause():
    assert Formula.from_clauses([], num_vars=2).is_satisfied()
    assert Formula.from_clauses([[]], num_vars=1).is_unsatisfied()


def test_duplicate_and_complementary_literals_round_trip():
    f = Formula.from_clauses([[1, 1, 2], [1, -1]], check_invariants=True)
    before = state(f)
    for value in (TRUE, FALSE):
        f.assign(f.variable(1), value)
        f.unassign(f.variable(1))
        assert state(f) == before


def test_bookkeeping_matches_brute_force_along_random_searches():
    rng = random.Random(7)
    for _ in range(40):
        num_vars = rng.randint(1, 5)
        clauses = [
            [rng.choice([1, -1]) * rng.randint(1, num_vars) for _ in range(rng.randint(1, 3))]
            for _ in range(rng.randint(1, 6))
        ]
        f = Formula.from_clauses(clauses, num_vars=num_vars)
        initial = state(f)
        stack = []
        for _ in range(40):
            unassigned = [v for v in f.all_variables() if not v.is_assigned()]
            if stack and (not unassigned or rng.random() < 0.4):
                f.unassign(stack.pop())
            else:
                variable = rng.choice(unassigned)
                f.assign(variable, rng.choice([TRUE, FALSE]))
                stack.append(variable)
            f.check_statistics()
            for clause in f.clauses:
                assert clause.is_satisfied() == expected_satisfied(clause)
        while stack:
            f.unassign(stack.pop())
        assert state(f) == initial


def test_check_statistics_reports_corruption_with_dump():
    f = Formula.from_clauses([[1, 2]])
    f.variable(1).times_positive = 5
    with pytest.raises(InvariantError) as excinfo:
        f.check_statistics()
    message = str(excinfo.value)
    assert "Variable 1" in message
    assert "Times pos: 5" in message
    assert "Clause 0 is Unsatisfied(yet)" in message


def test_dump_marks_assigned_literals():
    f = Formula.from_clauses([[1, -2]])
    f.assign(f.variable(2), TRUE)
    assert "Clause 0 is Unsatisfied(yet): 1 <-2>" in f.dump()
