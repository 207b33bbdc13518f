"""Recommend the next crafting technique from snapshot and catalog JSON.

Usage examples:
    python -m scripts.recommend --snapshot-file snapshot.json --catalog-file catalog.json
    python -m scripts.recommend --snapshot-json '{"state":{"pool":20,"stability":5,"maxStability":5}}' \
        --catalog-file catalog.json --depth 2
    python -m scripts.recommend --snapshot-file snapshot.json --catalog-file catalog.json --json
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any

from craft_advisor.engine.condition_drift import ForecastDriftPolicy, StaticDriftPolicy
from craft_advisor.models.errors import AdvisorError
from craft_advisor.optimizer.search import ActionPlan, Advisor, Recommendation
from craft_advisor.optimizer.specs import AdvisorConfig
from craft_advisor.parser.catalog_parser import catalog_from_dict
from craft_advisor.parser.snapshot_parser import snapshot_from_dict

logger = logging.getLogger("craft_advisor.recommend")


def _load_json_arg(raw_json: str | None, file_path: Path | None) -> dict[str, Any]:
    if raw_json is not None:
        payload = json.loads(raw_json)
    elif file_path is not None:
        payload = json.loads(file_path.read_text())
    else:
        return {}
    if not isinstance(payload, dict):
        raise ValueError("JSON payload must be an object")
    return payload


def _config_from_args(payload: dict[str, Any], depth: int | None, alternatives: int | None) -> AdvisorConfig:
    config = AdvisorConfig.from_dict(payload)
    if depth is not None:
        config = dataclasses.replace(config, lookahead_depth=depth)
    if alternatives is not None:
        config.max_alternatives = max(0, alternatives)
    return config


def _render_plan(plan: ActionPlan, label: str) -> list[str]:
    cost = plan.cost
    cost_parts = [f"pool {cost.pool}", f"stability {cost.stability}"]
    if cost.toxicity:
        cost_parts.append(f"toxicity {cost.toxicity}")
    if cost.buff_id is not None and cost.buff_stacks:
        cost_parts.append(f"{cost.buff_stacks}x {cost.buff_id}")
    return [
        f"{label}: {plan.name} [{plan.type}] score={plan.score:.3f}",
        f"    chance {plan.success_chance:.0%}, cost {', '.join(cost_parts)}",
        f"    expected: completion {plan.expected_completion_gain:+g}, "
        f"perfection {plan.expected_perfection_gain:+g}, "
        f"stability {plan.expected_stability_change:+g}",
        f"    rotation: {' -> '.join(plan.rotation)}",
        f"    why: {plan.reasoning}",
    ]


def _render_text_result(result: Recommendation) -> str:
    lines: list[str] = []
    lines.append(f"success: {'yes' if result.success else 'no'}")
    if result.error_kind:
        lines.append(f"error: {result.error_kind}")
    if result.status is not None:
        lines.append(f"craft status: {result.status.value}")
    if result.best is not None:
        lines.extend(_render_plan(result.best, "best"))
        for i, plan in enumerate(result.alternatives, start=1):
            lines.extend(_render_plan(plan, f"alt {i}"))
    if result.blocked_reasons:
        lines.append("blocked:")
        lines.extend(f"  - {exc.technique_id}: {exc.details}" for exc in result.blocked_reasons)
    if result.parity_drift:
        lines.append("parity drift:")
        lines.extend(
            f"  - {d.capability.value} {d.detail}: native={d.native!r} local={d.local!r}"
            for d in result.parity_drift
        )
    if result.messages:
        lines.append("messages:")
        lines.extend(f"  - {msg}" for msg in result.messages)
    m = result.metrics
    lines.append(
        f"searched {m.nodes_explored} nodes ({m.cache_hits} cached) "
        f"at depth {m.depth} in {m.elapsed_ms:.1f} ms"
    )
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Recommend the next crafting technique")
    snapshot_group = parser.add_mutually_exclusive_group(required=True)
    snapshot_group.add_argument("--snapshot-file", type=Path, help="Path to craft snapshot JSON.")
    snapshot_group.add_argument("--snapshot-json", type=str, help="Inline craft snapshot JSON.")

    catalog_group = parser.add_mutually_exclusive_group(required=True)
    catalog_group.add_argument("--catalog-file", type=Path, help="Path to technique/buff catalog JSON.")
    catalog_group.add_argument("--catalog-json", type=str, help="Inline catalog JSON.")

    parser.add_argument("--config-file", type=Path, help="Path to advisor settings JSON.")
    parser.add_argument("--depth", type=int, help="Lookahead depth (1-6).")
    parser.add_argument("--alternatives", type=int, help="Number of alternatives to show.")
    parser.add_argument(
        "--static-conditions",
        action="store_true",
        help="Assume the condition never changes instead of following the forecast.",
    )
    parser.add_argument("--harmony", type=float, default=0.0, help="Harmony used for drift forecasts.")
    parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON output.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        state, recipe = snapshot_from_dict(_load_json_arg(args.snapshot_json, args.snapshot_file))
        catalog = catalog_from_dict(_load_json_arg(args.catalog_json, args.catalog_file))
        config = _config_from_args(
            _load_json_arg(None, args.config_file), args.depth, args.alternatives
        )
    except (OSError, ValueError, AdvisorError) as exc:
        logger.error("Could not load inputs: %s", exc)
        return 2

    drift = StaticDriftPolicy() if args.static_conditions else ForecastDriftPolicy(harmony=args.harmony)
    result = Advisor(catalog, recipe, drift).recommend(state, config)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(_render_text_result(result))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
