"""Rate-paced, resumable checksum sweep over a persistent work queue.

Each scheduled tick recovers stale claims, tops the queue up (fixed
limit or paced over a horizon), drains it one item at a time, and sends
one mismatch summary. Items that fail validation are released and retried
on a later tick; there is no retry cap.

The queue is a plain SQLite table rather than a broker: the tool runs
from cron on one machine. Overlapping invocations stay safe because the
claim is a conditional ``UPDATE ... WHERE status = 'queued'``, queue
positions are allocated under ``BEGIN IMMEDIATE``, and only the holder of
the current claim (worker id plus attempt number) may delete or release it.
"""
