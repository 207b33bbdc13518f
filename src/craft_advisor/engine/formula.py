"""Formula evaluator for Scaling expressions and the variable bag they read.

A reference to a variable that is not in the bag resolves to 0 instead
of failing, matching how the host evaluates formulas.
"""

from __future__ import annotations

import logging
import math
import re

from craft_advisor.models.catalog import Catalog
from craft_advisor.models.effect import Scaling
from craft_advisor.models.recipe import Recipe
from craft_advisor.models.state import CraftState

logger = logging.getLogger(__name__)

Variables = dict[str, float]

_STACKS_PREFIX = "stacks_"


def evaluate(scaling: Scaling | None, variables: Variables, default: float = 0.0) -> float:
    """Resolve a Scaling against `variables`. Pure and total."""
    if scaling is None:
        return default
    result = float(scaling.base_value)
    if scaling.stat_reference:
        result += scaling.stat_multiplier * float(variables.get(scaling.stat_reference, 0.0))
    if scaling.named_variable:
        result += scaling.variable_multiplier * float(variables.get(scaling.named_variable, 0.0))
    if scaling.additive_eqn:
        result += eval_expression(scaling.additive_eqn, variables)
    if scaling.cap is not None:
        result = min(result, evaluate(scaling.cap, variables, default=math.inf))
    return result


def expected_crit_multiplier(crit_chance: float, crit_multiplier: float) -> float:
    """Expected gain multiplier from crits.

    Both arguments are percentages. Crit chance above 100 converts into
    extra multiplier at 1:3.
    """
    excess = max(0.0, crit_chance - 100.0)
    effective_multiplier = crit_multiplier + excess * 3.0
    p = min(max(crit_chance, 0.0), 100.0) / 100.0
    return 1.0 - p + p * (effective_multiplier / 100.0)


def stacks_variable(buff_id: str) -> str:
    """Variable name exposing a buff's stack count."""
    return f"{_STACKS_PREFIX}{buff_id}"


def build_variables(
    state: CraftState,
    catalog: Catalog,
    recipe: Recipe,
    *,
    stacks: int | None = None,
) -> Variables:
    """Assemble the variable bag for evaluating scalings against `state`.

    Buff stat modifiers are added onto base stats first, then condition
    multipliers scale control and intensity. `stacks` binds the generic
    `stacks` variable (the owning buff's count when resolving buff effects).
    """
    variables: Variables = {
        "pool": float(state.pool),
        "maxpool": float(state.max_pool),
        "stability": float(state.stability),
        "maxstability": float(state.max_stability),
        "toxicity": float(state.toxicity),
        "maxtoxicity": float(recipe.max_toxicity or 0),
        "completion": float(state.completion),
        "perfection": float(state.perfection),
        "turn": float(state.turn),
        "poolCostPercentage": 100.0,
        "stabilityCostPercentage": 100.0,
        "successChanceBonus": 0.0,
        "stacks": float(stacks or 0),
    }
    for name, value in state.stats.items():
        variables[name] = float(value)

    for buff_id, count in state.active_buffs.items():
        variables[stacks_variable(buff_id)] = float(count)

    # Modifiers read the pre-buff stats so buff order does not matter.
    base = dict(variables)
    for buff_id, count in state.active_buffs.items():
        buff = catalog.buff(buff_id)
        if buff is None or not buff.stats:
            continue
        bound = dict(base)
        bound["stacks"] = float(count)
        for stat, modifier in buff.stats.items():
            variables[stat] = variables.get(stat, 0.0) + evaluate(modifier, bound)

    for effect in recipe.effects_for(state.condition):
        if effect.kind in ("control", "intensity") and effect.multiplier is not None:
            variables[effect.kind] = variables.get(effect.kind, 0.0) * (1.0 + effect.multiplier)
    return variables


# ---------------------------------------------------------------------------
# Expression evaluation
# ---------------------------------------------------------------------------

_TOKEN_RE = re.compile(r"\s*(?:((?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)|([A-Za-z_][A-Za-z0-9_]*)|(.))")


class _ExpressionError(ValueError):
    pass


def _tokenize(expr: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    for number, name, op in _TOKEN_RE.findall(expr):
        if number:
            tokens.append(("num", number))
        elif name:
            tokens.append(("name", name))
        elif op.strip():
            if op not in "+-*/()":
                raise _ExpressionError(f"unexpected character {op!r}")
            tokens.append(("op", op))
    return tokens


class _Parser:
    """Recursive-descent evaluator for + - * / and parentheses."""

    def __init__(self, tokens: list[tuple[str, str]], variables: Variables) -> None:
        self._tokens = tokens
        self._pos = 0
        self._variables = variables

    def _peek(self) -> tuple[str, str] | None:
        if self._pos < len(self._tokens):
            return self._tokens[self._pos]
        return None

    def _take(self) -> tuple[str, str]:
        token = self._peek()
        if token is None:
            raise _ExpressionError("unexpected end of expression")
        self._pos += 1
        return token

    def parse(self) -> float:
        value = self._expr()
        if self._peek() is not None:
            raise _ExpressionError(f"trailing token {self._peek()[1]!r}")
        return value

    def _expr(self) -> float:
        value = self._term()
        while self._peek() in (("op", "+"), ("op", "-")):
            _, op = self._take()
            right = self._term()
            value = value + right if op == "+" else value - right
        return value

    def _term(self) -> float:
        value = self._factor()
        while self._peek() in (("op", "*"), ("op", "/")):
            _, op = self._take()
            right = self._factor()
            if op == "*":
                value *= right
            else:
                value = value / right if right != 0 else 0.0
        return value

    def _factor(self) -> float:
        kind, text = self._take()
        if kind == "num":
            return float(text)
        if kind == "name":
            return float(self._variables.get(text, 0.0))
        if text == "-":
            return -self._factor()
        if text == "+":
            return self._factor()
        if text == "(":
            value = self._expr()
            if self._peek() == ("op", ")"):
                self._take()
            return value
        raise _ExpressionError(f"unexpected token {text!r}")


def eval_expression(expr: str, variables: Variables) -> float:
    """Evaluate a host equation string; malformed input resolves to 0."""
    if not expr or not expr.strip():
        return 0.0
    try:
        value = _Parser(_tokenize(expr), variables).parse()
    except _ExpressionError as exc:
        logger.debug("Could not evaluate expression %r: %s", expr, exc)
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return value
