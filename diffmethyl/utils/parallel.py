"""Worker pool helpers for embarrassingly parallel per-row computations."""

import logging
from multiprocessing import Pool, cpu_count

import psutil
from tqdm import tqdm

logger = logging.getLogger(__name__)

__all__ = ["chunk_bounds", "get_optimal_core_count", "parallel_map"]


def get_optimal_core_count(reserve_mem_gb=1.0):
    """Determine optimal core count based on CPU and memory constraints."""
    process = psutil.Process()
    current_proc_mem_gb = process.memory_info().rss / 1e9
    avail_mem_gb = psutil.virtual_memory().available / 1e9
    usable_mem_gb = max(0, avail_mem_gb - reserve_mem_gb)

    if current_proc_mem_gb <= 0:
        # Fallback: use 1 core if memory usage can't be estimated
        return 1

    mem_based_cores = int(usable_mem_gb // current_proc_mem_gb)

    return max(1, min(cpu_count() - 1, mem_based_cores))


def chunk_bounds(n_items, chunk_size):
    """Splits range(n_items) into consecutive (start, stop) slices.

    Example:
        >>> chunk_bounds(5, 2)
        [(0, 2), (2, 4), (4, 5)]
    """
    if chunk_size < 1:
        msg = "'chunk_size' must be positive"
        raise ValueError(msg)
    return [
        (start, min(start + chunk_size, n_items))
        for start in range(0, n_items, chunk_size)
    ]


def parallel_map(func, tasks, n_jobs=None, desc="Processing"):
    """Applies 'func' to every task using a pool of worker processes.

    Results are yielded in completion order, so every task must carry the
    key of its own output slot (for example the start of its row slice) and
    'func' must return it together with its result. Tasks share no state.
    An exception in any worker propagates and aborts the whole map.

    Args:
        func (callable): Picklable module level function.
        tasks (list): Arguments, one per call of 'func'.
        n_jobs (int, optional): Number of worker processes. If None, a
            reasonable number is chosen from the available CPUs and memory.
            With 1 the tasks run in the calling process.
        desc (str): Progress bar label.

    Yields:
        The return values of 'func'.
    """
    tasks = list(tasks)
    if len(tasks) == 0:
        return
    if n_jobs is None:
        n_jobs = max(1, min(len(tasks), get_optimal_core_count()))
    else:
        n_jobs = max(1, min(n_jobs, len(tasks), cpu_count()))

    logger.info("Running %s task(s) on %s core(s).", len(tasks), n_jobs)

    if n_jobs == 1:
        # This is significantly faster than Pool(1)
        with tqdm(total=len(tasks), desc=desc) as tqdm_bar:
            for task in tasks:
                yield func(task)
                _ = tqdm_bar.update(1)
        return

    # fmt: off
    with Pool(n_jobs) as pool, tqdm(total=len(tasks), desc=desc) as tqdm_bar: # noqa: E501
        # fmt: on
        for result in pool.imap_unordered(func, tasks):
            yield result
            _ = tqdm_bar.update(1)
