from .inmemory_job_queue import InMemoryJobQueue
from .redis_job_queue import RedisJobQueue

__all__ = ["InMemoryJobQueue", "RedisJobQueue"]
