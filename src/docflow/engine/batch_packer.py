"""BatchPacker: greedy first-fit packing of work items under a token budget.

Items are taken in descending importance (ties keep their input order) and
appended to the open batch until either the token budget or the per-batch
item cap would be exceeded. An item that alone exceeds the budget is emitted
as a singleton overflow batch so arbitrarily large inputs still make progress.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from docflow.core.exceptions import ConfigurationError
from docflow.models.tasks import Batch, WorkItem

logger = logging.getLogger(__name__)


class BatchPacker:
    """Organizes prioritized work items into token-bounded batches."""

    def pack(
        self,
        items: Iterable[WorkItem],
        token_budget: int,
        max_items_per_batch: int,
    ) -> list[Batch]:
        if token_budget <= 0:
            raise ConfigurationError(f"token_budget must be positive, got {token_budget}")
        if max_items_per_batch <= 0:
            raise ConfigurationError(
                f"max_items_per_batch must be positive, got {max_items_per_batch}"
            )

        # sorted() is stable, including with reverse=True
        ordered = sorted(items, key=lambda item: item.importance, reverse=True)

        batches: list[Batch] = []
        current: list[WorkItem] = []
        current_tokens = 0

        def close_current() -> None:
            nonlocal current, current_tokens
            if current:
                seq = len(batches) + 1
                batches.append(Batch(
                    batch_id=f"batch_{seq}",
                    sequence_number=seq,
                    items=current,
                    total_estimated_tokens=current_tokens,
                ))
            current = []
            current_tokens = 0

        for item in ordered:
            if item.estimated_tokens > token_budget:
                close_current()
                seq = len(batches) + 1
                logger.warning(
                    "Work item %s needs %d tokens, over the %d budget; packing it alone",
                    item.path, item.estimated_tokens, token_budget,
                )
                batches.append(Batch(
                    batch_id=f"batch_{seq}_large",
                    sequence_number=seq,
                    items=[item],
                    total_estimated_tokens=item.estimated_tokens,
                    is_singleton_overflow=True,
                ))
                continue

            would_exceed_tokens = current_tokens + item.estimated_tokens > token_budget
            would_exceed_count = len(current) >= max_items_per_batch
            if current and (would_exceed_tokens or would_exceed_count):
                close_current()

            current.append(item)
            current_tokens += item.estimated_tokens

        close_current()

        logger.info(
            "Packed %d work items into %d batches (budget=%d, max_items=%d)",
            len(ordered), len(batches), token_budget, max_items_per_batch,
        )
        return batches
