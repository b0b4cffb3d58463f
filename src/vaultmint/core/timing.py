"""Scoped timing blocks.

Each block owns its own start time, so concurrent jobs can time operations
with the same name without sharing any state.
"""

import time
from contextlib import contextmanager
from typing import Iterator

import structlog

logger = structlog.get_logger(__name__)


@contextmanager
def timed(operation: str, **fields) -> Iterator[None]:
    """Log the duration of the enclosed block as ``timing.<operation>``.

    The block's outcome is included so failed operations still report how
    long they ran before raising.

    Example:
        with timed("mint.create_token", claim_id=str(claim_id)):
            address = await ledger.create_token(signer, params)
    """
    start = time.perf_counter()
    outcome = "succeeded"
    try:
        yield
    except BaseException:
        outcome = "failed"
        raise
    finally:
        logger.info(
            f"timing.{operation}",
            duration_seconds=round(time.perf_counter() - start, 4),
            outcome=outcome,
            **fields,
        )
