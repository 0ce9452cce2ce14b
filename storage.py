from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database import Job, JobState, TagBinding, get_session
from errors import NotFoundError, StoreError, ValidationError
from log_setup import get_logger

log = get_logger("storage")


class JobStorage:
    """
    Repository of jobs.

    Delivery is at-least-once: next_pending_job does not claim the row, so a
    job stays TO_SCHEDULE (and may be handed out again) until its result is
    recorded.
    """

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_session

    def _session(self):
        return self._session_factory()

    def create_job(self, hostname: str, shell: str) -> int:
        if not hostname:
            raise ValidationError("hostname is required")
        if not shell or not shell.strip():
            raise ValidationError("command is required")

        session = self._session()
        try:
            job = Job(shell=shell, state=JobState.TO_SCHEDULE, result="", hostname=hostname)
            session.add(job)
            session.commit()
            job_id = job.id
        except SQLAlchemyError as e:
            session.rollback()
            log.error(f"create job for {hostname} failed: {e}")
            raise StoreError(str(e)) from e
        finally:
            session.close()
        log.info(f"job {job_id} queued for {hostname}")
        return job_id

    def next_pending_job(self, hostname: str) -> Optional[Job]:
        """Earliest-inserted TO_SCHEDULE job for `hostname`, or None."""
        session = self._session()
        try:
            return (
                session.query(Job)
                .filter(Job.hostname == hostname, Job.state == JobState.TO_SCHEDULE)
                .order_by(Job.id)
                .first()
            )
        except SQLAlchemyError as e:
            log.error(f"pending job lookup for {hostname} failed: {e}")
            raise StoreError(str(e)) from e
        finally:
            session.close()

    def record_result(self, job_id: int, succeeded: bool, result_text: str) -> bool:
        """
        Move a job to SUCCEEDED or FAILED.

        Returns False, without touching the store, when the job is unknown or
        already finished.
        """
        state = JobState.SUCCEEDED if succeeded else JobState.FAILED
        session = self._session()
        try:
            updated = (
                session.query(Job)
                .filter(Job.id == job_id, Job.state == JobState.TO_SCHEDULE)
                .update({Job.state: state, Job.result: result_text}, synchronize_session=False)
            )
            session.commit()
            if not updated:
                exists = session.query(Job.id).filter(Job.id == job_id).first()
                if exists:
                    log.warning(f"job {job_id} already finished, ignoring duplicate result")
                else:
                    log.warning(f"result for unknown job {job_id} ignored")
                return False
        except SQLAlchemyError as e:
            session.rollback()
            log.error(f"recording result of job {job_id} failed: {e}")
            raise StoreError(str(e)) from e
        finally:
            session.close()
        log.info(f"job {job_id} -> {state.name}")
        return True

    def get_job(self, job_id: int) -> Optional[Job]:
        session = self._session()
        try:
            return session.get(Job, job_id)
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
        finally:
            session.close()

    def list_jobs(self, state: Optional[JobState] = None, hostname: Optional[str] = None, limit: int = 100) -> List[Job]:
        session = self._session()
        try:
            query = session.query(Job)
            if state is not None:
                query = query.filter(Job.state == state)
            if hostname:
                query = query.filter(Job.hostname == hostname)
            return query.order_by(Job.id).limit(max(1, limit)).all()
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
        finally:
            session.close()

    def counts_by_state(self) -> Dict[str, int]:
        session = self._session()
        try:
            results = session.query(Job.state, func.count(Job.id)).group_by(Job.state).all()
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
        finally:
            session.close()
        rows = {JobState(state).name.lower(): count for state, count in results}
        # ensure keys
        for s in JobState:
            rows.setdefault(s.name.lower(), 0)
        return rows


class TagDirectory:
    """One-to-one mapping between operator-facing tags and agent hostnames."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_session

    def resolve_tag(self, tag: str) -> str:
        session = self._session_factory()
        try:
            binding = session.query(TagBinding).filter(TagBinding.tag == tag).first()
        except SQLAlchemyError as e:
            log.error(f"tag lookup for {tag} failed: {e}")
            raise StoreError(str(e)) from e
        finally:
            session.close()
        if binding is None:
            raise NotFoundError("tagname not found")
        return binding.hostname

    def bind(self, tag: str, hostname: str):
        if not tag or not hostname:
            raise ValidationError("tag and hostname are required")
        session = self._session_factory()
        try:
            session.add(TagBinding(tag=tag, hostname=hostname))
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise ValidationError(f"tag '{tag}' or hostname '{hostname}' is already bound") from e
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(str(e)) from e
        finally:
            session.close()
        log.info(f"tag {tag} bound to {hostname}")

    def list_bindings(self) -> List[TagBinding]:
        session = self._session_factory()
        try:
            return session.query(TagBinding).order_by(TagBinding.tag).all()
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
        finally:
            session.close()
