"""
Fan-out / join worker pool for independent units of work.

Every unit is isolated: an exception or a timeout in one task is captured in
its TaskOutcome and never cancels the others. Timed-out tasks are abandoned,
not killed; their threads finish in the background while the remaining work
runs on a replacement pool.
"""

import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass

from errors import FitTimeoutError

POLL_INTERVAL = 0.05


@dataclass(frozen=True)
class TaskOutcome:
    key: object
    value: object = None
    error: BaseException = None
    elapsed: float = 0.0

    @property
    def ok(self):
        return self.error is None


def _timed(fn, started, key):
    def run():
        started[key] = time.monotonic()
        return fn()
    return run


def run_tasks(tasks, max_workers=4, timeout=None, verbose=False):
    """
    tasks: mapping key -> zero-argument callable.
    Returns {key: TaskOutcome} in the order of `tasks`.
    timeout is per task, counted from the moment the task starts running.
    """
    tasks = dict(tasks)
    if not tasks:
        return {}

    if max_workers is None or max_workers <= 1:
        return {key: _run_inline(key, fn, verbose) for key, fn in tasks.items()}

    queued = list(tasks.items())
    outcomes = {}
    started = {}
    running = {}
    retired = []
    executor = ThreadPoolExecutor(max_workers=max_workers)
    try:
        while queued or running:
            # never more than max_workers live tasks, so every submission starts at once
            while queued and len(running) < max_workers:
                key, fn = queued.pop(0)
                running[executor.submit(_timed(fn, started, key))] = key

            done, _ = wait(list(running), timeout=POLL_INTERVAL, return_when=FIRST_COMPLETED)
            now = time.monotonic()
            for future in done:
                key = running.pop(future)
                elapsed = now - started.get(key, now)
                try:
                    outcomes[key] = TaskOutcome(key, value=future.result(), elapsed=elapsed)
                except Exception as e:
                    if verbose:
                        print(f"Error processing {key}: {e}")
                    outcomes[key] = TaskOutcome(key, error=e, elapsed=elapsed)

            if timeout is None:
                continue
            expired = [f for f, key in running.items()
                       if key in started and now - started[key] > timeout]
            for future in expired:
                key = running.pop(future)
                if verbose:
                    print(f"Timed out: {key} after {timeout}s")
                outcomes[key] = TaskOutcome(key, error=FitTimeoutError(key, timeout),
                                            elapsed=now - started[key])
            if expired:
                # abandoned threads still hold their slots; queued work moves to a fresh pool
                retired.append(executor)
                executor = ThreadPoolExecutor(max_workers=max_workers)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
        for old in retired:
            old.shutdown(wait=False)

    return {key: outcomes[key] for key in tasks}


def split_outcomes(outcomes):
    """({key: value} for successes, {key: error} for failures), both in task order."""
    values = {key: o.value for key, o in outcomes.items() if o.ok}
    errors = {key: o.error for key, o in outcomes.items() if not o.ok}
    return values, errors


def _run_inline(key, fn, verbose):
    start = time.monotonic()
    try:
        value = fn()
    except Exception as e:
        if verbose:
            print(f"Error processing {key}: {e}")
        return TaskOutcome(key, error=e, elapsed=time.monotonic() - start)
    return TaskOutcome(key, value=value, elapsed=time.monotonic() - start)
