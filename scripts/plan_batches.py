"""Scan a project directory and print the batch plan as JSON.

Usage:
    python scripts/plan_batches.py path/to/project --token-budget 40000 --max-items 6
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from docflow.core.config import BatchingConfig
from docflow.engine.batch_packer import BatchPacker
from docflow.scanning.project_scanner import scan_work_items


def build_plan(root: str, token_budget: int, max_items: int, tokens_per_byte: float) -> dict[str, Any]:
    """Scan root and pack its files; returns a JSON-ready plan."""
    items = scan_work_items(root, tokens_per_byte=tokens_per_byte)
    batches = BatchPacker().pack(items, token_budget, max_items)
    return {
        "root": root,
        "token_budget": token_budget,
        "max_items_per_batch": max_items,
        "total_items": len(items),
        "total_estimated_tokens": sum(i.estimated_tokens for i in items),
        "batches": [b.model_dump(mode="json") for b in batches],
    }


def main(argv: list[str] | None = None) -> int:
    defaults = BatchingConfig()
    parser = argparse.ArgumentParser(description="Print the batch plan for a project directory")
    parser.add_argument("root", help="Project directory to scan")
    parser.add_argument("--token-budget", type=int, default=defaults.token_budget)
    parser.add_argument("--max-items", type=int, default=defaults.max_items_per_batch)
    parser.add_argument("--tokens-per-byte", type=float, default=defaults.tokens_per_byte)
    parser.add_argument("--summary", action="store_true", help="Print batch ids and sizes only")
    args = parser.parse_args(argv)

    plan = build_plan(args.root, args.token_budget, args.max_items, args.tokens_per_byte)
    if args.summary:
        for batch in plan["batches"]:
            print(f"{batch['batch_id']}: {len(batch['items'])} items, "
                  f"{batch['total_estimated_tokens']} tokens")
        print(f"{plan['total_items']} items in {len(plan['batches'])} batches")
    else:
        json.dump(plan, sys.stdout, indent=2)
        print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
