"""In-memory job registry, keyed by job ID. Finished jobs are kept up to a limit, oldest evicted first."""

from collections import OrderedDict

from models.clip import ClipJob

MAX_FINISHED_JOBS = 500


class JobRegistry(OrderedDict[str, ClipJob]):
    def __init__(self, *args, max_finished: int = MAX_FINISHED_JOBS, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.max_finished = max_finished

    def add(self, job: ClipJob) -> None:
        self[job.id] = job
        self.prune()

    def prune(self) -> None:
        """Drop the oldest done/failed jobs beyond ``max_finished``. Running jobs are never evicted."""
        finished = [job_id for job_id, job in self.items() if job.is_terminal]
        for job_id in finished[: max(0, len(finished) - self.max_finished)]:
            del self[job_id]


jobs = JobRegistry()
