"""
Job Pipeline

Runs many (topic, exercise type) generation jobs strictly one after
another for a single session.

State machine::

    idle -> running <-> paused
    running | paused -> stopped
    running -> completed

Pause lets the in-flight job finish and holds the next one at the gate.
Stop fires the session's cancellation token: the in-flight provider call
is aborted, that job is marked ``error`` ("stopped by user") and the
remaining jobs stay ``pending``. Any other job failure is recorded on
the job and the pipeline moves on.
"""

import asyncio
import enum
import math
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from fractions import Fraction
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Union

from lingoloop.common.cancellation import CancellationToken, PauseGate
from lingoloop.common.config import PipelineConfig
from lingoloop.common.error_handling import (
    GenerationCancelledError,
    LingoloopError,
    NotFoundError,
    PipelineStateError,
    convert_exception,
    log_error,
)
from lingoloop.common.logger import LoggerAdapter, app_logger
from lingoloop.domain.models import Difficulty, ExerciseType, GenerationJob, JobStatus, Topic
from lingoloop.generation.service import BulkGenerationRequest, BulkGenerationService

logger = app_logger.getChild("generation.pipeline")

JobRunner = Callable[[GenerationJob, CancellationToken], Awaitable[int]]

DEFAULT_RETENTION_SECONDS = 3600


class PipelineState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    STOPPED = "stopped"


def pacing_delay_ms(index: int, base_ms: int = 1000, step_ms: int = 200, max_ms: int = 5000) -> int:
    """Delay after the job at ``index`` (0-based) before the next one starts."""
    return min(base_ms + step_ms * index, max_ms)


def build_jobs(
    topics: Iterable[Topic],
    total_per_topic: int,
    type_weights: Mapping[Union[str, ExerciseType], float],
) -> List[GenerationJob]:
    """
    One job per (topic, exercise type) with a positive computed count.

    Each job requests ``ceil(total_per_topic * weight / 100)``; types whose
    count comes out at zero get no job.

    Raises:
        ValueError: a weight names an unknown exercise type
    """
    jobs: List[GenerationJob] = []
    for topic in topics:
        for type_key, weight in type_weights.items():
            exercise_type = ExerciseType(type_key)
            count = math.ceil(Fraction(total_per_topic) * Fraction(str(weight or 0)) / 100)
            if count <= 0:
                logger.debug(f"No job for {topic.topic_id}/{exercise_type.value}: computed count is 0")
                continue
            jobs.append(GenerationJob(topic=topic, exercise_type=exercise_type, requested_count=count))
    return jobs


@dataclass
class PipelineSummary:
    pipeline_id: str
    state: PipelineState
    jobs: List[GenerationJob]
    duration_seconds: float = 0.0

    def count(self, status: JobStatus) -> int:
        return sum(1 for job in self.jobs if job.status == status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pipeline_id": self.pipeline_id,
            "state": self.state.value,
            "total_jobs": len(self.jobs),
            "completed": self.count(JobStatus.COMPLETED),
            "failed": self.count(JobStatus.ERROR),
            "pending": self.count(JobStatus.PENDING),
            "generated": sum(job.generated_count for job in self.jobs),
            "duration_seconds": round(self.duration_seconds, 3),
            "jobs": [job.to_dict() for job in self.jobs],
        }


class JobPipeline:
    """Sequential job runner with pause, resume and stop."""

    def __init__(
        self,
        runner: JobRunner,
        config: Optional[PipelineConfig] = None,
        pipeline_id: Optional[str] = None,
    ):
        self.runner = runner
        self.config = config or PipelineConfig()
        self.pipeline_id = pipeline_id or str(uuid.uuid4())
        self.token = CancellationToken()
        self.gate = PauseGate()
        self.state = PipelineState.IDLE
        self.jobs: List[GenerationJob] = []
        self._started: Optional[float] = None
        self._finished: Optional[float] = None
        self.log = LoggerAdapter(logger, {"pipeline_id": self.pipeline_id})

    def _transition(self, new_state: PipelineState) -> None:
        self.log.info(f"Pipeline {self.state.value} -> {new_state.value}")
        self.state = new_state

    def pause(self) -> None:
        """
        Hold the next job; the in-flight one keeps running.

        Raises:
            PipelineStateError: the pipeline is not running
        """
        if self.state != PipelineState.RUNNING:
            raise PipelineStateError(f"Cannot pause a pipeline that is {self.state.value}")
        self.gate.close()
        self._transition(PipelineState.PAUSED)

    def resume(self) -> None:
        """
        Release the gate.

        Raises:
            PipelineStateError: the pipeline is not paused
        """
        if self.state != PipelineState.PAUSED:
            raise PipelineStateError(f"Cannot resume a pipeline that is {self.state.value}")
        self._transition(PipelineState.RUNNING)
        self.gate.open()

    def stop(self) -> None:
        """
        Abort the in-flight job and skip everything after it.

        Raises:
            PipelineStateError: the pipeline already finished
        """
        if self.state in (PipelineState.COMPLETED, PipelineState.STOPPED):
            raise PipelineStateError(f"Cannot stop a pipeline that is {self.state.value}")
        self.token.cancel()
        self._transition(PipelineState.STOPPED)

    def summary(self) -> PipelineSummary:
        if self._started is None:
            duration = 0.0
        else:
            duration = (self._finished or time.perf_counter()) - self._started
        return PipelineSummary(self.pipeline_id, self.state, self.jobs, duration)

    async def _run_job(self, job: GenerationJob) -> None:
        log = self.log.with_context(job_id=job.job_id)
        job.status = JobStatus.GENERATING
        job.started_at = datetime.now(timezone.utc)
        log.info(f"Job {job.job_id} generating {job.requested_count}")

        try:
            job.generated_count = await self.runner(job, self.token)
            job.status = JobStatus.COMPLETED
        except GenerationCancelledError as e:
            job.status = JobStatus.ERROR
            job.error_message = e.message
            job.error_code = e.code.value
            log.info(f"Job {job.job_id} stopped")
            raise
        except LingoloopError as e:
            job.status = JobStatus.ERROR
            job.error_message = e.message
            job.error_code = e.code.value
            log_error(e, context={"job_id": job.job_id}, log=log)
        except Exception as e:
            error = convert_exception(e, context={"job_id": job.job_id})
            job.status = JobStatus.ERROR
            job.error_message = error.message
            job.error_code = error.code.value
            log_error(error, include_stack_trace=True, log=log)
        finally:
            job.finished_at = datetime.now(timezone.utc)

        log.info(f"Job {job.job_id} {job.status.value} ({job.generated_count} generated)")

    async def run(self, jobs: Optional[Iterable[GenerationJob]] = None) -> PipelineSummary:
        """
        Process ``jobs`` (or the jobs already queued) in order.

        Returns:
            Final summary with every job's status

        Raises:
            PipelineStateError: the pipeline was already started
        """
        if self._started is not None:
            raise PipelineStateError(f"Pipeline {self.pipeline_id} was already started")

        self.jobs = [job for job in (self.jobs if jobs is None else jobs) if job.requested_count > 0]
        self._started = time.perf_counter()
        if self.state == PipelineState.IDLE:
            self._transition(PipelineState.RUNNING)

        try:
            for index, job in enumerate(self.jobs):
                if index > 0:
                    delay = pacing_delay_ms(
                        index - 1,
                        self.config.base_delay_ms,
                        self.config.delay_step_ms,
                        self.config.max_delay_ms,
                    )
                    await self.token.sleep(delay / 1000.0)
                await self.gate.wait(self.token)
                await self._run_job(job)
        except GenerationCancelledError:
            self.log.info("Pipeline halted by stop request")

        self._finished = time.perf_counter()
        if self.token.cancelled:
            if self.state != PipelineState.STOPPED:
                self._transition(PipelineState.STOPPED)
        else:
            self._transition(PipelineState.COMPLETED)

        summary = self.summary()
        self.log.info(
            f"Pipeline finished: {summary.count(JobStatus.COMPLETED)} completed, "
            f"{summary.count(JobStatus.ERROR)} failed, {summary.count(JobStatus.PENDING)} not attempted"
        )
        return summary


class BulkJobRunner:
    """Runs a pipeline job through the bulk generation service."""

    def __init__(self, service: BulkGenerationService, difficulty_distribution: Mapping[Union[str, Difficulty], float]):
        self.service = service
        self.difficulty_distribution = {
            Difficulty(k).value: v for k, v in difficulty_distribution.items()
        }

    async def __call__(self, job: GenerationJob, token: CancellationToken) -> int:
        result = await self.service.generate(
            BulkGenerationRequest(
                topic_id=job.topic.topic_id,
                topic_name=job.topic.name,
                topic_description=job.topic.description,
                level=job.topic.level.value,
                exercise_type=job.exercise_type.value,
                count=job.requested_count,
                difficulty_distribution=self.difficulty_distribution,
            ),
            token,
        )
        return result.deliverables_created


@dataclass
class PipelineSession:
    pipeline: JobPipeline
    task: "asyncio.Task[PipelineSummary]"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None


class PipelineRegistry:
    """
    Pipelines started from the API, keyed by id.

    Finished pipelines stay queryable for ``retention_seconds`` and are
    then dropped the next time a pipeline is started or looked up.
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_RETENTION_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.retention_seconds = retention_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._sessions: Dict[str, PipelineSession] = {}

    def _mark_finished(self, session: PipelineSession) -> None:
        if session.finished_at is None:
            session.finished_at = self._clock()

    def _evict_finished(self) -> None:
        now = self._clock()
        expired = []
        for pipeline_id, session in self._sessions.items():
            if not session.task.done():
                continue
            self._mark_finished(session)
            if (now - session.finished_at).total_seconds() >= self.retention_seconds:
                expired.append(pipeline_id)
        for pipeline_id in expired:
            del self._sessions[pipeline_id]
        if expired:
            logger.debug(f"Evicted {len(expired)} finished pipelines")

    def start(self, pipeline: JobPipeline, jobs: List[GenerationJob]) -> PipelineSession:
        self._evict_finished()
        pipeline.jobs = [job for job in jobs if job.requested_count > 0]
        task = asyncio.create_task(pipeline.run(), name=f"pipeline-{pipeline.pipeline_id}")
        session = PipelineSession(pipeline=pipeline, task=task)
        task.add_done_callback(lambda _: self._mark_finished(session))
        self._sessions[pipeline.pipeline_id] = session
        return session

    def get(self, pipeline_id: str) -> JobPipeline:
        """
        Raises:
            NotFoundError: no pipeline with this id
        """
        self._evict_finished()
        session = self._sessions.get(pipeline_id)
        if session is None:
            raise NotFoundError("Pipeline", pipeline_id)
        return session.pipeline

    async def shutdown(self) -> None:
        """Stop every unfinished pipeline and wait for it to wind down."""
        tasks = []
        for session in self._sessions.values():
            if not session.task.done():
                if session.pipeline.state not in (PipelineState.COMPLETED, PipelineState.STOPPED):
                    session.pipeline.stop()
                tasks.append(session.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
