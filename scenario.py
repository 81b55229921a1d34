# scenario.py
"""
Prepared scenarios for the MLFQ simulator, and the command-line runner.
Each scenario is a dict with a "name" and the "quantums" to pass into simulate().
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple
import argparse
import logging
import random
import sys

from mlfq_sim import ConfigurationError, Job, JobRegistry, SimulationResult, simulate

logger = logging.getLogger(__name__)

# Reference workload: one long job first, then a short and a medium one
DEFAULT_JOBS = JobRegistry(
    [
        Job("A", arrival_time=0, burst_time=10),
        Job("B", arrival_time=1, burst_time=5),
        Job("C", arrival_time=2, burst_time=8),
    ]
)

# Quantum configurations compared against the reference workload.
# On DEFAULT_JOBS, [10, 20, 40] gives the lowest averages (turnaround 15, waiting 7.33);
# [2, 4, 8] splits the jobs into the most dispatches without improving either average.
QUANTUM_SCENARIOS = [
    {"name": "T1_baseline", "quantums": [5, 10, 20]},
    {"name": "T2_small_quantum", "quantums": [2, 4, 8]},
    {"name": "T3_medium_quantum", "quantums": [8, 16, 32]},
    {"name": "T4_short_quantum", "quantums": [3, 6, 12]},
    {"name": "T5_large_quantum", "quantums": [10, 20, 40]},
]


def generate_jobs(
    count: int,
    max_arrival: int = 10,
    max_burst: int = 10,
    seed: Optional[int] = None,
) -> JobRegistry:
    """Build a random registry of `count` jobs with ids J1..Jn.

    Arrival times are drawn from [0, max_arrival] and burst times from
    [1, max_burst]. The whole registry is fixed before any run starts; the same
    seed always gives the same jobs.
    """
    if count < 0:
        raise ConfigurationError("job count must be non-negative", "count", count)
    if max_arrival < 0:
        raise ConfigurationError("must be non-negative", "max_arrival", max_arrival)
    if max_burst < 1:
        raise ConfigurationError("must be at least 1", "max_burst", max_burst)
    rng = random.Random(seed)
    jobs = [
        Job(f"J{i}", rng.randint(0, max_arrival), rng.randint(1, max_burst))
        for i in range(1, count + 1)
    ]
    return JobRegistry(jobs)


def run_scenarios(
    scenarios: Sequence[Dict[str, Any]],
    registry: JobRegistry = DEFAULT_JOBS,
) -> List[Tuple[str, Optional[SimulationResult], Optional[ConfigurationError]]]:
    """Run every scenario in order against the same registry.

    Returns one (name, result, error) entry per scenario. A scenario whose
    configuration is rejected gets its error recorded and does not stop the
    remaining scenarios.
    """
    outcomes = []
    for scenario in scenarios:
        name = scenario["name"]
        try:
            result = simulate(registry, scenario["quantums"])
        except ConfigurationError as err:
            logger.error(f"Scenario {name} failed: {err}")
            outcomes.append((name, None, err))
            continue
        outcomes.append((name, result, None))
    return outcomes


# --- Command line ---
def parse_quantums(text: str) -> List[int]:
    """Parse "5,10,20" into [5, 10, 20]. Range checks are left to simulate()."""
    text = text.strip()
    if not text:
        return []
    try:
        return [int(part) for part in text.split(",")]
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid quantum list: {text!r}")


def parse_job(text: str) -> Job:
    """Parse "ID:ARRIVAL:BURST" into a Job."""
    parts = text.split(":")
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"expected ID:ARRIVAL:BURST, got {text!r}")
    job_id, arrival, burst = parts
    try:
        return Job(job_id, int(arrival), int(burst))
    except ValueError:
        raise argparse.ArgumentTypeError(f"arrival and burst must be integers: {text!r}")
    except ConfigurationError as err:
        raise argparse.ArgumentTypeError(str(err))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mlfq-sim",
        description="Simulate a Multi-Level Feedback Queue scheduler over a fixed job set.",
    )
    parser.add_argument(
        "--quantums",
        type=parse_quantums,
        action="append",
        metavar="Q0,Q1,...",
        help="comma-separated quantum per level; repeat to compare configurations",
    )
    jobs = parser.add_mutually_exclusive_group()
    jobs.add_argument(
        "--job",
        type=parse_job,
        action="append",
        dest="jobs",
        metavar="ID:ARRIVAL:BURST",
        help="job to schedule; repeat for each job (default: A:0:10 B:1:5 C:2:8)",
    )
    jobs.add_argument(
        "--random-jobs", type=int, metavar="N", help="schedule N randomly generated jobs"
    )
    parser.add_argument("--seed", type=int, default=None, help="seed for --random-jobs")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="logging verbosity (default: WARNING)",
    )
    return parser


def print_result(index: int, result: SimulationResult) -> None:
    print(f"=== Test {index}: Quantums = {list(result.quantums)} ===")
    print("--- CPU Timeline ---")
    print("\n".join(result.timeline_lines()))
    print("\n--- Job Stats ---")
    print("\n".join(result.stats_lines()))
    averages = result.averages
    print(
        f"Average Turnaround Time: {averages['average_turnaround_time']:.2f}, "
        f"Average Waiting Time: {averages['average_waiting_time']:.2f}"
    )
    print()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.random_jobs is not None:
        try:
            registry = generate_jobs(args.random_jobs, seed=args.seed)
        except ConfigurationError as err:
            parser.error(str(err))
    elif args.jobs:
        try:
            registry = JobRegistry(args.jobs)
        except ConfigurationError as err:
            parser.error(str(err))
    else:
        registry = DEFAULT_JOBS

    if args.quantums:
        scenarios = [
            {"name": f"cli_{i}", "quantums": q} for i, q in enumerate(args.quantums, start=1)
        ]
    else:
        scenarios = QUANTUM_SCENARIOS

    status = 0
    for index, (name, result, error) in enumerate(run_scenarios(scenarios, registry), start=1):
        if error is not None:
            print(f"=== Test {index}: {name} ===")
            print(f"ERROR: {error}\n")
            status = 1
            continue
        print_result(index, result)
    return status


if __name__ == "__main__":
    sys.exit(main())
