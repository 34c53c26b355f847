from hookreel.jobs.scheduler import LocalScheduler
from hookreel.jobs.store import InMemoryJobStore, JobRecord, JobStore

__all__ = ["InMemoryJobStore", "JobRecord", "JobStore", "LocalScheduler"]
