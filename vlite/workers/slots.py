# vlite/workers/slots.py
from typing import Iterable


def admissible(parallel_limit: int, active_count: int) -> int:
    """How many more jobs may start right now. Never preempts running ones."""
    return max(0, parallel_limit - active_count)


def pick_admissible(queued_ids: Iterable[str], parallel_limit: int, active_count: int) -> list[str]:
    """First-queued, first-admitted."""
    n = admissible(parallel_limit, active_count)
    picked = []
    for job_id in queued_ids:
        if len(picked) >= n:
            break
        picked.append(job_id)
    return picked
