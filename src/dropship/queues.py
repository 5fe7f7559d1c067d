"""Named background queues.

Each kind of background work runs on its own queue so that a slow FTP
upload never blocks webhook ingestion or a catalog sync.
"""

from enum import Enum


class DropshipQueue(Enum):
    SUBMISSION = "submission"
    WEBHOOKS = "webhooks"
    RETRY = "retry"
    SYNC = "sync"
    PRICING = "pricing"
