from storage import JobStorage, TagDirectory
from log_setup import get_logger

log = get_logger("dispatcher")


class Dispatcher:
    """Turns a tag-addressed command into a pending job for the bound host."""

    def __init__(self, jobs: JobStorage, tags: TagDirectory):
        self.jobs = jobs
        self.tags = tags

    def submit_job(self, tag: str, shell: str) -> int:
        # Raises NotFoundError before anything is written
        hostname = self.tags.resolve_tag(tag)
        job_id = self.jobs.create_job(hostname, shell)
        log.info(f"submitted job {job_id} to tag {tag} ({hostname})")
        return job_id
