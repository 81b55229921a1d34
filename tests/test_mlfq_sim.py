import pytest

from mlfq_sim import (
    ConfigurationError,
    ExecutionInterval,
    Job,
    JobRegistry,
    SchedulerInvariantError,
    StatisticsCollector,
    TrackedJob,
    simulate,
)
from scenario import generate_jobs


def _jobs():
    return JobRegistry(
        [
            Job("A", arrival_time=0, burst_time=10),
            Job("B", arrival_time=1, burst_time=5),
            Job("C", arrival_time=2, burst_time=8),
        ]
    )


def _stats(result):
    return {s.id: (s.turnaround_time, s.waiting_time) for s in result.job_stats}


def test_reference_scenario_timeline():
    res = simulate(_jobs(), [5, 10, 20])
    assert res.timeline_lines() == [
        "0-5: A (Level 0)",
        "5-10: B (Level 0)",
        "10-15: C (Level 0)",
        "15-20: A (Level 1)",
        "20-23: C (Level 1)",
    ]
    assert _stats(res) == {"A": (20, 10), "B": (9, 4), "C": (21, 13)}
    assert res.averages["average_turnaround_time"] == pytest.approx(50 / 3)
    assert res.averages["average_waiting_time"] == pytest.approx(9)
    assert res.averages["num_dispatches"] == 5
    assert res.averages["idle_time"] == 0
    assert res.makespan == 23


def test_small_quanta_demote_to_lowest_level():
    res = simulate(_jobs(), [2, 4, 8])
    assert res.timeline_lines() == [
        "0-2: A (Level 0)",
        "2-4: B (Level 0)",
        "4-6: C (Level 0)",
        "6-10: A (Level 1)",
        "10-13: B (Level 1)",
        "13-17: C (Level 1)",
        "17-21: A (Level 2)",
        "21-23: C (Level 2)",
    ]
    assert _stats(res) == {"A": (21, 11), "B": (12, 7), "C": (21, 13)}


@pytest.mark.parametrize(
    "quantums, avg_turnaround, avg_waiting",
    [
        ([10, 20, 40], 15, 22 / 3),
        ([8, 16, 32], 18, 31 / 3),
        ([3, 6, 12], 59 / 3, 12),
    ],
)
def test_averages_per_configuration(quantums, avg_turnaround, avg_waiting):
    res = simulate(_jobs(), quantums)
    assert res.averages["average_turnaround_time"] == pytest.approx(avg_turnaround)
    assert res.averages["average_waiting_time"] == pytest.approx(avg_waiting)


def test_stats_follow_registry_order_not_completion_order():
    res = simulate(_jobs(), [5, 10, 20])
    # B finishes first, A second, C last
    assert [s.id for s in res.job_stats] == ["A", "B", "C"]
    assert [s.completion_time for s in res.job_stats] == [20, 10, 23]


def test_idle_gap_is_filled_with_unit_intervals():
    res = simulate([Job("A", 0, 3), Job("B", 6, 2)], [4])
    assert res.timeline_lines() == [
        "0-3: A (Level 0)",
        "3-4: IDLE",
        "4-5: IDLE",
        "5-6: IDLE",
        "6-8: B (Level 0)",
    ]
    assert res.averages["idle_time"] == 3
    assert _stats(res) == {"A": (3, 0), "B": (2, 0)}


def test_idle_before_first_arrival():
    res = simulate([Job("A", 2, 1)], [1])
    assert res.timeline_lines() == ["0-1: IDLE", "1-2: IDLE", "2-3: A (Level 0)"]


def test_single_level_requeues_at_tail_of_level_zero():
    res = simulate([Job("A", 0, 5), Job("B", 0, 3)], [2])
    assert res.timeline_lines() == [
        "0-2: A (Level 0)",
        "2-4: B (Level 0)",
        "4-6: A (Level 0)",
        "6-7: B (Level 0)",
        "7-8: A (Level 0)",
    ]
    assert all(job.current_level == 0 for job in res.jobs)
    assert _stats(res) == {"A": (8, 3), "B": (7, 4)}


def test_demoted_job_queued_before_same_instant_arrival():
    res = simulate([Job("A", 0, 4), Job("B", 2, 1)], [2])
    assert res.timeline_lines() == [
        "0-2: A (Level 0)",
        "2-4: A (Level 0)",
        "4-5: B (Level 0)",
    ]


def test_new_arrival_runs_before_demoted_job():
    res = simulate([Job("A", 0, 4), Job("B", 2, 1)], [2, 2])
    assert res.timeline_lines() == [
        "0-2: A (Level 0)",
        "2-3: B (Level 0)",
        "3-5: A (Level 1)",
    ]


def test_simultaneous_arrivals_admitted_in_registry_order():
    res = simulate([Job("Z", 0, 1), Job("Y", 0, 1), Job("X", 0, 1)], [5])
    assert [i.job_id for i in res.timeline] == ["Z", "Y", "X"]


def test_non_monotonic_quanta_are_allowed():
    res = simulate([Job("A", 0, 7)], [4, 1, 2])
    assert res.timeline_lines() == [
        "0-4: A (Level 0)",
        "4-5: A (Level 1)",
        "5-7: A (Level 2)",
    ]


def test_empty_registry_produces_empty_run():
    res = simulate([], [3])
    assert res.timeline == []
    assert res.job_stats == []
    assert res.averages["average_turnaround_time"] == 0.0
    assert res.makespan == 0


@pytest.mark.parametrize("quantums", [[], [5, 0, 10], [-1], [2.5], [True]])
def test_invalid_quantums_rejected(quantums):
    with pytest.raises(ConfigurationError):
        simulate(_jobs(), quantums)


def test_configuration_error_names_offending_level():
    with pytest.raises(ConfigurationError, match=r"quantums\[1\]"):
        simulate(_jobs(), [5, 0])


@pytest.mark.parametrize(
    "job_id, arrival, burst",
    [("A", -1, 5), ("A", 0, 0), ("A", 0, -3), ("", 0, 1), ("A", 1.5, 2)],
)
def test_invalid_jobs_rejected(job_id, arrival, burst):
    with pytest.raises(ConfigurationError):
        Job(job_id, arrival, burst)


def test_duplicate_job_ids_rejected():
    with pytest.raises(ConfigurationError):
        JobRegistry([Job("A", 0, 1), Job("A", 3, 2)])


def test_missing_completion_time_is_an_invariant_error():
    finished = TrackedJob.from_job(Job("A", 0, 2))
    finished.remaining_time = 0
    finished.completion_time = 2
    unfinished = TrackedJob.from_job(Job("B", 0, 2))
    with pytest.raises(SchedulerInvariantError, match="B.completion_time"):
        StatisticsCollector().collect([finished, unfinished])


def test_track_returns_fresh_copies():
    registry = _jobs()
    first = registry.track()
    first[0].remaining_time = 0
    second = registry.track()
    assert second[0].remaining_time == 10
    assert second[0] is not first[0]


def test_runs_are_independent_and_repeatable():
    registry = _jobs()
    first = simulate(registry, [5, 10, 20])
    simulate(registry, [2, 4, 8])
    again = simulate(registry, [5, 10, 20])
    assert first.timeline_lines() == again.timeline_lines()
    assert first.job_stats == again.job_stats
    assert first.jobs is not again.jobs
    assert registry.jobs == _jobs().jobs


def test_interval_formatting():
    assert str(ExecutionInterval(3, 7, "B", 2)) == "3-7: B (Level 2)"
    assert str(ExecutionInterval(7, 8)) == "7-8: IDLE"
    assert ExecutionInterval(7, 8).is_idle


def _check_run(registry, quantums):
    res = simulate(registry, quantums)
    max_level = len(quantums) - 1

    # Timeline starts at 0, is contiguous and covers the whole run
    clock = 0
    for interval in res.timeline:
        assert interval.start == clock
        assert interval.end > interval.start
        clock = interval.end
    assert sum(i.duration for i in res.timeline) == res.makespan == clock

    by_id = {job.id: job for job in registry}
    for job in res.jobs:
        assert job.remaining_time == 0
        assert job.completion_time is not None
        runs = [i for i in res.timeline if i.job_id == job.id]
        assert sum(i.duration for i in runs) == job.burst_time
        assert runs[0].start >= by_id[job.id].arrival_time
        assert runs[-1].end == job.completion_time
        # Levels only move down, one step per dispatch, and stop at the lowest level
        levels = [i.level for i in runs]
        assert levels[0] == 0
        for prev, nxt in zip(levels, levels[1:]):
            assert nxt == min(prev + 1, max_level)

    for stats in res.job_stats:
        job = by_id[stats.id]
        assert stats.turnaround_time == stats.completion_time - job.arrival_time
        assert stats.waiting_time == stats.turnaround_time - job.burst_time
        assert stats.waiting_time >= 0
    return res


@pytest.mark.parametrize("seed", range(8))
@pytest.mark.parametrize("quantums", [[1], [2, 4, 8], [5, 3], [1, 1, 1, 1]])
def test_scheduler_properties_on_generated_workloads(seed, quantums):
    registry = generate_jobs(6, max_arrival=15, max_burst=9, seed=seed)
    res = _check_run(registry, quantums)
    assert [s.id for s in res.job_stats] == [job.id for job in registry]
