"""Job dispatching for the prepare and mint channels."""

from vaultmint.workers.dispatcher import Channel, Dispatcher
from vaultmint.workers.events import JobEvents, bind_worker_events
from vaultmint.workers.jobs import MintJob, PrepareJob, enqueue_mint, enqueue_prepare, parse_job

__all__ = [
    "Channel",
    "Dispatcher",
    "JobEvents",
    "bind_worker_events",
    "MintJob",
    "PrepareJob",
    "enqueue_mint",
    "enqueue_prepare",
    "parse_job",
]
