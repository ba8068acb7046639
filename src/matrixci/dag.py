# dag.py
from __future__ import annotations

from typing import Dict, List, Tuple

from .model import Job


def build_dag(jobs: List[Job]) -> Tuple[Dict[str, List[str]], Dict[str, int]]:
    """
    Build the `needs` graph for a workflow's jobs.

    Returns (dependents, indegree), both keyed by job name in declaration order.
    Raises ValueError for duplicate names or needs on unknown jobs.
    """
    names = [j.name for j in jobs]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ValueError(f"Duplicate job names found: {dupes}")

    dependents: Dict[str, List[str]] = {n: [] for n in names}
    indeg: Dict[str, int] = {n: 0 for n in names}

    for job in jobs:
        for need in dict.fromkeys(job.needs or []):
            if need not in indeg:
                raise ValueError(
                    f"Job '{job.name}' needs missing job '{need}'. "
                    f"Known jobs: {sorted(names)}"
                )
            dependents[need].append(job.name)
            indeg[job.name] += 1

    return dependents, indeg


def topo_levels(jobs: List[Job]) -> List[List[Job]]:
    """
    Group jobs into levels; every job's needs sit in earlier levels.
    Jobs in a level keep their declaration order.
    """
    dependents, indeg = build_dag(jobs)
    by_name = {j.name: j for j in jobs}
    remaining = dict(indeg)

    levels: List[List[Job]] = []
    ready = [n for n, d in remaining.items() if d == 0]
    while ready:
        levels.append([by_name[n] for n in ready])
        for name in ready:
            del remaining[name]
            for child in dependents[name]:
                remaining[child] -= 1
        ready = [n for n, d in remaining.items() if d == 0]

    if remaining:
        raise ValueError(f"Job needs form a cycle. Stuck jobs: {sorted(remaining)}")

    return levels


def execution_order(jobs: List[Job]) -> List[Job]:
    """Flatten levels into the order jobs run in."""
    return [job for level in topo_levels(jobs) for job in level]
