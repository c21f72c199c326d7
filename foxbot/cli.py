"""
Evaluate one phase for one agent from a JSON snapshot.

Usage:
    # Best decision for fox "p2"
    foxbot-eval snapshot.json --agent p2 --phase DECISION

    # Full ranking as JSON, with a tuned config
    foxbot-eval snapshot.json --agent p2 --phase OPS --config tuned.json --json

    # Phase taken from the snapshot's own "phase" field
    foxbot-eval snapshot.json --agent p2 --verbose
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from .combo_matrix import get_combo_matrix, log_combo_stats
from .policy import evaluate_phase
from .strategy_config import get_config, set_config_path

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


def load_snapshot(path: Path) -> dict:
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def print_result(result, out=None):
    out = out or sys.stdout
    print(f"Phase: {result.phase}", file=out)
    if result.best is None:
        print(f"No candidates ({result.meta.get('reason', '?')}) - use the host default", file=out)
        return
    print(f"Best:  {result.best.display_text or result.best.action_id} ({result.best.score:.2f})", file=out)
    if result.meta.get('reason'):
        print(f"Why:   {result.meta['reason']}", file=out)
    print("", file=out)
    for i, action in enumerate(result.ranked, 1):
        flag = "" if action.available else "  [unavailable]"
        print(f"{i:2}. {action.display_text or action.action_id:<36} {action.score:8.2f}{flag}", file=out)
        for reason in action.reasoning:
            print(f"      - {reason}", file=out)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Evaluate a fox raid phase for one bot')
    parser.add_argument('snapshot', help='Path to a JSON game snapshot')
    parser.add_argument('--agent', required=True, help='Id of the fox to evaluate')
    parser.add_argument('--phase', default=None,
                        help='MOVE, OPS, ACTIONS or DECISION (default: the snapshot\'s phase)')
    parser.add_argument('--config', default=None, help='Strategy config JSON (default: packaged default)')
    parser.add_argument('--json', action='store_true', help='Print the result as JSON')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format=LOG_FORMAT,
    )

    if args.config:
        set_config_path(args.config)
    config = get_config()
    if args.verbose:
        log_combo_stats(get_combo_matrix(config.get_section('combo')))

    try:
        snapshot = load_snapshot(Path(args.snapshot))
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"❌ Could not read snapshot {args.snapshot}: {e}")
        return 2

    phase = args.phase or snapshot.get('phase')
    if not phase:
        logger.error("❌ No --phase given and the snapshot has no 'phase' field")
        return 2

    result = evaluate_phase(phase, snapshot, args.agent, config=config)
    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print_result(result)
    return 0 if result.best is not None else 1


if __name__ == '__main__':
    sys.exit(main())
