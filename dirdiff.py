"""
dirdiff.py

Compare two directories of PNG images pairwise by filename. For every file
present on both sides a composite (original A | diff | original B) is written
to the output directory, the diff being produced by ImageMagick compare.

Usage examples:
  python dirdiff.py shots/before shots/after shots/diff
  python dirdiff.py -t 8 -compare "magick compare" --report results/report.csv before after diff

Prints:
  Comparing images:
  	<output path>            (one line per finished job, in completion order)
  JOBS_OK: <n>
  JOBS_DEGRADED: <n>
  JOBS_FAILED: <n>
  ELAPSED_MS: <ms>
  JOB_MS_AVG: <ms>
  JOB_MS_MAX: <ms>
"""
import os
import time
import argparse
from collections import Counter
from contextlib import closing
from concurrent.futures import ThreadPoolExecutor, wait, FIRST_COMPLETED
from dataclasses import dataclass, field
from functools import partial
from itertools import islice
from pathlib import Path
from typing import Optional

import psutil

from composite import (
    DECODE_ERRORS, EMPTY, combine_images, common_size_image_lengths, load_png, save_png
)
from compare_tool import run_compare, write_report

ON_ERROR_CHOICES = ('continue', 'fail')

def default_threads():
    return psutil.cpu_count(logical=True) or os.cpu_count() or 1

# -------------------------
# Jobs and configuration
# -------------------------
@dataclass(frozen=True)
class DiffJob:
    input_a: Path
    input_b: Path
    output: Path

    @property
    def tmp_path(self):
        # padded copy of the shorter input; never ends in .png so it cannot
        # be another job's output
        return self.output.with_name(self.output.name + '.pad.tmp')

@dataclass
class JobResult:
    job: DiffJob
    status: str = 'ok'  # ok | degraded | failed
    errors: list = field(default_factory=list)
    compare_returncode: Optional[int] = None
    time_ms: float = 0.0

@dataclass(frozen=True)
class PipelineConfig:
    threads: int = field(default_factory=default_threads)
    compare_path: str = 'compare'
    on_error: str = 'continue'
    timeout: Optional[float] = None

    def __post_init__(self):
        if self.threads < 1:
            raise ValueError(f"threads must be at least 1, got {self.threads}")
        if self.on_error not in ON_ERROR_CHOICES:
            raise ValueError(f"on_error must be one of {ON_ERROR_CHOICES}, got {self.on_error!r}")

# -------------------------
# Job source and filter
# -------------------------
def grab_jobs(dir1, dir2, out_dir):
    """
    Yield one DiffJob per .png file in dir1, paired with the same name in
    dir2 and out_dir. Order follows the directory listing.

    An unreadable dir1 raises OSError on the first iteration.
    """
    dir1, dir2, out_dir = Path(dir1), Path(dir2), Path(out_dir)
    with os.scandir(dir1) as entries:
        for entry in entries:
            if os.path.splitext(entry.name)[1] == '.png':
                yield DiffJob(dir1 / entry.name, dir2 / entry.name, out_dir / entry.name)

def filter_diff_job(job):
    # missing or unreachable counterparts are expected, drop them quietly;
    # os.path.isfile treats every stat error as "not a file"
    if not os.path.isfile(job.input_a) or not os.path.isfile(job.input_b):
        return None
    return job

# -------------------------
# Tasks
# -------------------------
# A task maps a job to a result, or to None when the job should be dropped.

def chain_tasks(*tasks):
    def run(job):
        for task in tasks:
            job = task(job)
            if job is None:
                return None
        return job
    return run

def perform_task(task, jobs):
    for job in jobs:
        result = task(job)
        if result is not None:
            yield result

def fan_out(task, jobs, threads):
    """
    Run task over jobs on a pool of `threads` workers and yield the results
    in completion order.

    Jobs are pulled from the source lazily, one for each worker that frees
    up, so no more than `threads` jobs are in flight. The generator ends once
    the source is exhausted and every submitted job has finished.
    """
    jobs = iter(jobs)
    with ThreadPoolExecutor(max_workers=threads) as exe:
        pending = {exe.submit(task, job) for job in islice(jobs, threads)}
        while pending:
            done, pending = wait(pending, return_when=FIRST_COMPLETED)
            for f in done:
                for job in islice(jobs, 1):
                    pending.add(exe.submit(task, job))
                result = f.result()
                if result is not None:
                    yield result

# -------------------------
# Diff worker
# -------------------------
class JobFailed(Exception):
    pass

def _remove(path):
    try:
        os.remove(path)
    except OSError:
        pass

def _record(result, config, message):
    result.errors.append(message)
    if config.on_error == 'fail':
        raise JobFailed(message)

def _load_or_empty(path, result, config):
    try:
        return load_png(path)
    except DECODE_ERRORS as e:
        _record(result, config, f"could not decode {path}: {e}")
        return EMPTY

def _diff_job(job, config, result):
    # 1. pad the shorter image so both inputs share a height
    try:
        in_a, in_b, _ = common_size_image_lengths(job.input_a, job.input_b, job.tmp_path)
    except DECODE_ERRORS as e:
        _record(result, config, f"could not normalize sizes: {e}")
        in_a, in_b = job.input_a, job.input_b

    # 2. let compare write the raw diff to the output path
    _remove(job.output)
    cmp = run_compare(config.compare_path, in_a, in_b, job.output, timeout=config.timeout)
    result.compare_returncode = cmp.returncode
    if not cmp.ok:
        msg = cmp.error
        if cmp.output.strip():
            msg += ": " + cmp.output.strip()
        _record(result, config, msg)

    # 3. A | diff | B, written over the raw diff
    bufs = [_load_or_empty(p, result, config) for p in (in_a, job.output, in_b)]
    if all(b.size == 0 for b in bufs):
        result.errors.append("no image could be decoded")
        raise JobFailed(result.errors[-1])
    save_png(combine_images(*bufs), job.output)

def diff_files(job, config):
    """
    Produce the composite for one job. Never raises: problems end up in the
    returned JobResult.
    """
    result = JobResult(job)
    t0 = time.perf_counter()
    try:
        _diff_job(job, config, result)
    except JobFailed:
        result.status = 'failed'
    except Exception as e:
        # anything else is still local to this job
        result.errors.append(f"{type(e).__name__}: {e}")
        result.status = 'failed'
    finally:
        # 4. cleanup
        _remove(job.tmp_path)
    if result.status != 'failed' and result.errors:
        result.status = 'degraded'
    result.time_ms = (time.perf_counter() - t0) * 1000.0
    return result

# -------------------------
# Pipeline
# -------------------------
def run_pipeline(dir1, dir2, out_dir, config=None):
    """
    Lazily compare dir1 against dir2, yielding a JobResult per filtered pair
    in completion order. out_dir must exist.
    """
    if config is None:
        config = PipelineConfig()
    jobs = grab_jobs(dir1, dir2, out_dir)
    task = chain_tasks(filter_diff_job, partial(diff_files, config=config))
    if config.threads == 1:
        return perform_task(task, jobs)
    return fan_out(task, jobs, config.threads)

def job_time_stats(results):
    # (average, slowest) job time in ms
    times = [r.time_ms for r in results]
    if len(times) == 0:
        return 0.0, 0.0
    return sum(times)/len(times), max(times)

# -------------------------
# CLI
# -------------------------
def positive_int(value):
    n = int(value)
    if n < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return n

def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description='Compare two directories of PNG images and write A | diff | B composites.')
    p.add_argument('dir1', help='first directory of .png files')
    p.add_argument('dir2', help='second directory, matched by filename')
    p.add_argument('out_dir', help='composites are written here (created if missing)')
    p.add_argument('-t', '--threads', type=positive_int, default=default_threads(),
                   help='number of images compared concurrently (default: CPU count)')
    p.add_argument('-compare', '--compare', dest='compare', default='compare',
                   help='ImageMagick compare command')
    p.add_argument('--on-error', choices=ON_ERROR_CHOICES, default='continue',
                   help='continue: composite whatever could be produced; fail: skip the job')
    p.add_argument('--timeout', type=float, default=None,
                   help='seconds to wait for each compare call')
    p.add_argument('--report', type=str, default=None, help='write a CSV row per job here')
    p.add_argument('--verbose', action='store_true', help='print the errors of each job')
    return p.parse_args(argv)

def main(argv=None):
    args = parse_args(argv)
    config = PipelineConfig(
        threads=args.threads,
        compare_path=args.compare,
        on_error=args.on_error,
        timeout=args.timeout,
    )
    os.makedirs(args.out_dir, exist_ok=True)

    t0 = time.perf_counter()
    counts = Counter()
    finished = []

    print("Comparing images:")
    results = run_pipeline(args.dir1, args.dir2, args.out_dir, config)
    if args.report:
        results = write_report(results, args.report)
    try:
        with closing(results):
            for r in results:
                counts[r.status] += 1
                finished.append(r)
                if r.status == 'ok':
                    print("\t", r.job.output)
                else:
                    print("\t", r.job.output, f"[{r.status}]")
                if args.verbose:
                    for e in r.errors:
                        print("\t\tWarning:", e)
    except OSError as e:
        print(f"Error: {e}")
        return 1

    ms = (time.perf_counter() - t0) * 1000.0
    job_avg, job_max = job_time_stats(finished)

    print(f"JOBS_OK: {counts['ok']}")
    print(f"JOBS_DEGRADED: {counts['degraded']}")
    print(f"JOBS_FAILED: {counts['failed']}")
    print(f"ELAPSED_MS: {ms:.3f}")
    print(f"JOB_MS_AVG: {job_avg:.3f}")
    print(f"JOB_MS_MAX: {job_max:.3f}")

    if config.on_error == 'fail' and counts['failed']:
        return 1
    return 0

if __name__ == '__main__':
    raise SystemExit(main())
