# vlite/errors.py
class QueueError(Exception):
    """Base class for queue command failures."""


class JobNotFoundError(QueueError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class JobBusyError(QueueError):
    """The job is processing; stop it before removing it."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job is processing: {job_id}")
