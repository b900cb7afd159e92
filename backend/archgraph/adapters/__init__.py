"""
Adapters the runtime reaches external systems through.
"""

from archgraph.adapters.persistence import (
    PersistenceAdapter,
    PersistencePool,
    SQLAlchemyPersistenceAdapter,
)
from archgraph.adapters.queue import (
    InMemoryQueueAdapter,
    QueueAdapter,
    QueueJobResult,
    RedisQueueAdapter,
    create_queue_adapter,
)
