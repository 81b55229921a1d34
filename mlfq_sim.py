"""
mlfq_sim.py
--------------------
**SUMMARY**:

This module implements a discrete-time simulation of a Multi-Level Feedback Queue (MLFQ)
CPU scheduler over a fixed set of jobs whose arrival and burst times are known up front.

• **Priority and Quanta:** The scheduler keeps one FIFO queue per priority level. Level 0
  is the highest priority. Each level has its own time quantum, supplied by the caller as
  an ordered list (`quantums[0]` belongs to level 0). The values need not be increasing.

• **Demotion:** A job that uses up its level's quantum without finishing is moved to the
  tail of the next lower level. Jobs on the lowest level stay there and are re-queued at
  its tail. There is no priority boost, so a job can wait on a lower level for as long as
  a higher level has work.

• **Arrivals:** Before every dispatch decision, jobs whose arrival time has been reached
  are admitted to level 0 in registry order. A job demoted at instant t is therefore
  queued ahead of jobs admitted at that same instant.

• **Data Structures:** The input jobs are `Job` records held by a read-only `JobRegistry`.
  Every run works on fresh `TrackedJob` copies, so the registry can be reused across
  quantum configurations. Each level is a `JobQueue`.

• **Engine and CPU:** `MLFQEngine` owns the queues, the tracked jobs and the execution
  timeline. A single `CPU` runs as a SimPy process that asks the engine for the next job
  and advances the simulated clock by the time it runs, or by one unit when idle.

• **Metrics Collection:** A `StatisticsCollector` derives turnaround and waiting times per
  job, in registry order, and the averages used to compare quantum configurations.

Usage example:

```
registry = JobRegistry([Job("A", 0, 10), Job("B", 1, 5), Job("C", 2, 8)])
result = simulate(registry, quantums=[5, 10, 20])
print("\\n".join(result.timeline_lines()))
```
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
import logging
import simpy

logger = logging.getLogger(__name__)

IDLE_LABEL = "IDLE"


class SimulationError(Exception):
    """Base class for every error raised by the simulator."""

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        self.message = message
        self.field = field
        self.value = value
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.field and self.value is not None:
            return f"{self.field} (value={self.value!r}): {self.message}"
        elif self.field:
            return f"{self.field}: {self.message}"
        return self.message


class ConfigurationError(SimulationError):
    """Invalid quanta or job definitions, detected before a run starts."""


class SchedulerInvariantError(SimulationError):
    """The scheduling loop left a job in a state it should never reach."""


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class Job:
    """A job to be scheduled.

    Attributes
    ----------
    id: Unique job identifier.
    arrival_time: Time at which the job becomes eligible to run.
    burst_time: Total CPU time the job needs.
    """

    id: str
    arrival_time: int
    burst_time: int

    def __post_init__(self):
        if not isinstance(self.id, str) or not self.id:
            raise ConfigurationError("job id must be a non-empty string", "id", self.id)
        if not _is_int(self.arrival_time) or self.arrival_time < 0:
            raise ConfigurationError(
                "arrival time must be a non-negative integer",
                f"{self.id}.arrival_time",
                self.arrival_time,
            )
        if not _is_int(self.burst_time) or self.burst_time <= 0:
            raise ConfigurationError(
                "burst time must be a positive integer",
                f"{self.id}.burst_time",
                self.burst_time,
            )


@dataclass
class TrackedJob:
    """Working copy of a `Job` for a single simulation run.

    Attributes
    ----------
    id, arrival_time, burst_time: Copied from the job.

    remaining_time: CPU time still needed; reaches exactly 0 on completion.
    current_level: Priority level the job is queued on (0 = highest).
    completion_time: Time at which the job finished, None until then.
    enqueued: Whether the job has been admitted to level 0.
    """

    id: str
    arrival_time: int
    burst_time: int
    remaining_time: int = field(init=False)
    current_level: int = 0
    completion_time: Optional[int] = None
    enqueued: bool = False

    def __post_init__(self):
        self.remaining_time = self.burst_time

    @classmethod
    def from_job(cls, job: Job) -> "TrackedJob":
        return cls(id=job.id, arrival_time=job.arrival_time, burst_time=job.burst_time)

    @property
    def finished(self) -> bool:
        return self.remaining_time == 0


class JobRegistry:
    """Read-only, ordered collection of the jobs to schedule.

    Registry order is the tie-break for jobs arriving at the same instant and the
    order in which statistics are reported.
    """

    def __init__(self, jobs: Iterable[Job]):
        self._jobs: Tuple[Job, ...] = tuple(jobs)
        seen = set()
        for job in self._jobs:
            if job.id in seen:
                raise ConfigurationError("job ids must be unique", "id", job.id)
            seen.add(job.id)

    @property
    def jobs(self) -> Tuple[Job, ...]:
        return self._jobs

    def track(self) -> List[TrackedJob]:
        """Return fresh working copies for one run. The registry itself is never mutated."""
        return [TrackedJob.from_job(job) for job in self._jobs]

    def __iter__(self) -> Iterator[Job]:
        return iter(self._jobs)

    def __len__(self) -> int:
        return len(self._jobs)

    def __repr__(self) -> str:
        return f"JobRegistry({list(self._jobs)!r})"


@dataclass(frozen=True)
class ExecutionInterval:
    """One contiguous slice of the timeline, either a job running on a level or idle time."""

    start: int
    end: int
    job_id: Optional[str] = None
    level: Optional[int] = None

    @property
    def is_idle(self) -> bool:
        return self.job_id is None

    @property
    def duration(self) -> int:
        return self.end - self.start

    @property
    def label(self) -> str:
        if self.is_idle:
            return IDLE_LABEL
        return f"{self.job_id} (Level {self.level})"

    def __str__(self) -> str:
        return f"{self.start}-{self.end}: {self.label}"


@dataclass(frozen=True)
class JobStats:
    id: str
    turnaround_time: int
    waiting_time: int
    completion_time: int


def validate_quantums(quantums: Sequence[int]) -> Tuple[int, ...]:
    """Check a quantum configuration and return it as a tuple.

    Raises
    ------
    ConfigurationError
        If the list is empty or holds anything other than positive integers.
    """
    if quantums is None or len(quantums) == 0:
        raise ConfigurationError("at least one level is required", "quantums", quantums)
    for level, quantum in enumerate(quantums):
        if not _is_int(quantum) or quantum <= 0:
            raise ConfigurationError(
                "quantum must be a positive integer", f"quantums[{level}]", quantum
            )
    return tuple(quantums)


class JobQueue:
    """A FIFO queue holding the jobs waiting on one priority level."""

    def __init__(self):
        self.queue: Deque[TrackedJob] = deque()

    def add_to_end(self, job: TrackedJob) -> None:
        """Add a job to the tail of the queue (arrival or demotion)."""
        self.queue.append(job)

    def remove_from_head(self) -> Optional[TrackedJob]:
        """Remove and return the oldest job in the queue, if any."""
        if self.queue:
            return self.queue.popleft()
        return None

    def is_empty(self) -> bool:
        return not self.queue

    def __len__(self) -> int:
        return len(self.queue)


class StatisticsCollector:
    """Collects per-job statistics and run-level metrics for one simulation run."""

    def __init__(self):
        self.job_stats: List[JobStats] = []
        self.num_dispatches: int = 0  # job intervals, i.e. context switches
        self.idle_time: int = 0

    def collect(self, jobs: Sequence[TrackedJob]) -> List[JobStats]:
        """Derive turnaround and waiting time for each job, keeping the order of `jobs`.

        Raises
        ------
        SchedulerInvariantError
            If a job has no completion time, which means the scheduling loop ended early.
        """
        self.job_stats = []
        for job in jobs:
            if job.completion_time is None:
                raise SchedulerInvariantError(
                    "job reached statistics without a completion time",
                    f"{job.id}.completion_time",
                )
            turnaround = job.completion_time - job.arrival_time
            self.job_stats.append(
                JobStats(
                    id=job.id,
                    turnaround_time=turnaround,
                    waiting_time=turnaround - job.burst_time,
                    completion_time=job.completion_time,
                )
            )
        return self.job_stats

    def calculate_averages(self) -> Dict[str, float]:
        num = len(self.job_stats)
        avg_turn = sum(s.turnaround_time for s in self.job_stats) / num if num > 0 else 0.0
        avg_wait = sum(s.waiting_time for s in self.job_stats) / num if num > 0 else 0.0
        return {
            "average_turnaround_time": avg_turn,
            "average_waiting_time": avg_wait,
            "num_jobs": num,
            "num_dispatches": self.num_dispatches,
            "idle_time": self.idle_time,
        }


class CPU:
    """The single simulated CPU.

    The CPU runs a loop as a SimPy process: it admits arrivals, asks the engine for
    the next job and holds the clock for as long as the job runs. When nothing is
    ready it stays idle for one time unit and tries again. The loop returns once
    every job has finished.
    """

    def __init__(self, env: simpy.Environment, engine: "MLFQEngine"):
        self.env = env
        self.engine = engine
        self.current_job: Optional[TrackedJob] = None
        self.process = env.process(self.run_loop())

    def run_loop(self):
        engine = self.engine
        while not engine.all_finished():
            engine.admit_arrivals(self.env.now)
            job, level = engine.request_next_job()
            if job is None:
                engine.record_idle(self.env.now)
                yield self.env.timeout(1)
                continue
            self.current_job = job
            run_time = min(engine.quantums[level], job.remaining_time)
            engine.record_run(self.env.now, run_time, job, level)
            yield self.env.timeout(run_time)
            job.remaining_time -= run_time
            if job.finished:
                engine.on_job_complete(job)
            else:
                engine.on_quantum_expired(job)
            self.current_job = None
        return self.env.now


class MLFQEngine:
    """Owns the MLFQ queues, the tracked jobs and the timeline of one run."""

    def __init__(self, env: simpy.Environment, jobs: List[TrackedJob], quantums: Sequence[int]):
        """Create an engine for a single run.

        Parameters
        ----------
        env : simpy.Environment
            Environment providing the simulated clock.
        jobs : list of TrackedJob
            Fresh working copies, in registry order. The engine mutates them.
        quantums : sequence of int
            Time quantum per level, level 0 first.
        """
        self.env = env
        self.quantums = validate_quantums(quantums)
        self.max_level = len(self.quantums) - 1
        self.jobs = jobs
        self.queues: List[JobQueue] = [JobQueue() for _ in self.quantums]
        self.timeline: List[ExecutionInterval] = []
        self.jobs_finished: int = 0
        self.stats = StatisticsCollector()
        self.cpu = CPU(env, self)

    def all_finished(self) -> bool:
        return self.jobs_finished == len(self.jobs)

    # --- Event handlers ---
    def admit_arrivals(self, now: int) -> None:
        """Append every job that has arrived by `now` to level 0, in registry order."""
        for job in self.jobs:
            if not job.enqueued and job.arrival_time <= now:
                job.enqueued = True
                self.queues[0].add_to_end(job)
                logger.debug(f"t={now}: admitted {job.id} to level 0")

    def request_next_job(self) -> Tuple[Optional[TrackedJob], int]:
        """Remove and return the head of the highest-priority non-empty queue.

        Returns the job and the level it was taken from, or (None, -1) when every
        queue is empty.
        """
        for level, queue in enumerate(self.queues):
            if not queue.is_empty():
                return queue.remove_from_head(), level
        return None, -1

    def record_run(self, start: int, run_time: int, job: TrackedJob, level: int) -> None:
        self.timeline.append(ExecutionInterval(start, start + run_time, job.id, level))
        self.stats.num_dispatches += 1
        logger.debug(f"t={start}: dispatched {job.id} from level {level} for {run_time}")

    def record_idle(self, start: int) -> None:
        self.timeline.append(ExecutionInterval(start, start + 1))
        self.stats.idle_time += 1
        logger.debug(f"t={start}: CPU idle")

    def on_job_complete(self, job: TrackedJob) -> None:
        """Mark a job finished at the current time. It never re-enters a queue."""
        job.completion_time = self.env.now
        self.jobs_finished += 1
        logger.debug(f"t={self.env.now}: {job.id} completed")

    def on_quantum_expired(self, job: TrackedJob) -> None:
        """Demote a job that used its whole quantum and enqueue it at the tail of its new level."""
        job.current_level = min(job.current_level + 1, self.max_level)
        self.queues[job.current_level].add_to_end(job)
        logger.debug(f"t={self.env.now}: {job.id} requeued on level {job.current_level}")


@dataclass
class SimulationResult:
    """Everything produced by one run of `simulate()`."""

    quantums: Tuple[int, ...]
    timeline: List[ExecutionInterval]
    job_stats: List[JobStats]
    jobs: List[TrackedJob]
    averages: Dict[str, float]

    @property
    def makespan(self) -> int:
        return self.timeline[-1].end if self.timeline else 0

    def timeline_lines(self) -> List[str]:
        return [str(interval) for interval in self.timeline]

    def stats_lines(self) -> List[str]:
        return [
            f"{s.id} | Turnaround Time: {s.turnaround_time}, Waiting Time: {s.waiting_time}"
            for s in self.job_stats
        ]


def simulate(registry: Iterable[Job], quantums: Sequence[int]) -> SimulationResult:
    """Run the MLFQ simulation for one quantum configuration.

    The run works on fresh copies of the jobs, so the same registry can be passed
    to any number of runs and each result is independent of the others.

    Parameters
    ----------
    registry : JobRegistry or iterable of Job
        Jobs to schedule. Order breaks ties between simultaneous arrivals and is
        the order of the returned statistics.
    quantums : sequence of int
        Time quantum per priority level, level 0 (highest priority) first.

    Returns
    -------
    SimulationResult
        The execution timeline, per-job statistics in registry order, the final
        state of the tracked jobs and averages including
        `average_turnaround_time`, `average_waiting_time` and `num_dispatches`.

    Raises
    ------
    ConfigurationError
        If `quantums` is empty or holds a non-positive value, or the jobs are invalid.
    SchedulerInvariantError
        If a job ends the run without a completion time.
    """
    quantums = validate_quantums(quantums)
    if not isinstance(registry, JobRegistry):
        registry = JobRegistry(registry)
    logger.info(f"Simulating {len(registry)} jobs with quantums {list(quantums)}")

    env = simpy.Environment()
    engine = MLFQEngine(env, registry.track(), quantums)
    env.run(until=engine.cpu.process)

    job_stats = engine.stats.collect(engine.jobs)
    averages = engine.stats.calculate_averages()
    averages["makespan"] = env.now
    logger.info(
        f"Finished at t={env.now}: average turnaround {averages['average_turnaround_time']:.2f}, "
        f"average waiting {averages['average_waiting_time']:.2f}"
    )
    return SimulationResult(
        quantums=quantums,
        timeline=engine.timeline,
        job_stats=job_stats,
        jobs=engine.jobs,
        averages=averages,
    )


if __name__ == "__main__":
    # Example usage: run a small simulation and print results
    result = simulate(
        [Job("A", 0, 10), Job("B", 1, 5), Job("C", 2, 8)],
        quantums=[5, 10, 20],
    )
    print("--- CPU Timeline ---")
    print("\n".join(result.timeline_lines()))
    print("\n--- Job Stats ---")
    print("\n".join(result.stats_lines()))
    for k, v in result.averages.items():
        print(f"{k}: {v:.4f}" if isinstance(v, float) else f"{k}: {v}")
