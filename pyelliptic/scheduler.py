"""Decomposition of a 4d solve into independent slices, and their parallel execution

Every slice owns its buffers, so tasks share no mutable state and need no locking.
Tasks are submitted in a fixed order and their results are collected in that same order,
which makes the write back into the output field independent of completion order.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from pyelliptic.field import LineSelector, PlaneSelector


logger = logging.getLogger(__name__)

_default_executor = None
_default_lock = threading.Lock()


def default_executor(max_workers=None):
    """Process wide worker pool, created on first use

    `max_workers` only has an effect on the call that creates the pool
    """
    global _default_executor
    with _default_lock:
        if _default_executor is None:
            _default_executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='pyelliptic')
        return _default_executor


def shutdown_default_executor(wait=True):
    global _default_executor
    with _default_lock:
        if _default_executor is not None:
            _default_executor.shutdown(wait=wait)
            _default_executor = None


class SolveReport(object):
    """Summary of the per slice results of one solve

    Parameters
    ----------
    results : list of SliceResult
        in submission order
    """

    def __init__(self, results):
        self.results = list(results)

    def __len__(self):
        return len(self.results)

    def __iter__(self):
        return iter(self.results)

    @property
    def loops(self):
        return [r.loops for r in self.results]

    @property
    def max_loops(self):
        return max(self.loops) if self.results else 0

    @property
    def converged(self):
        """All slices stopped below tolerance"""
        return all(r.converged for r in self.results)

    @property
    def overflowed(self):
        """Identities of the slices that still overflow"""
        return [r.identity for r in self.results if r.overflowed]

    @property
    def repaired(self):
        """Identities of the slices whose coefficients were modified"""
        return [r.identity for r in self.results if r.repaired]

    @property
    def ok(self):
        return not self.overflowed

    def __repr__(self):
        return 'SolveReport(slices={}, max_loops={}, converged={}, overflowed={})'.format(
            len(self), self.max_loops, self.converged, len(self.overflowed))


class SliceScheduler(object):
    """Run slice tasks on an executor, collecting results in submission order

    Parameters
    ----------
    executor : concurrent.futures.Executor, optional
        if None, tasks run one after the other in the calling thread
    """

    def __init__(self, executor=None):
        self.executor = executor

    def map(self, tasks):
        """Run callables, returning their results in the order given

        If a task raises, the tasks not yet started are cancelled and the exception propagates
        """
        tasks = list(tasks)
        if self.executor is None:
            return [task() for task in tasks]

        futures = [self.executor.submit(task) for task in tasks]
        try:
            return [future.result() for future in futures]
        except BaseException:
            for future in futures:
                future.cancel()
            raise

    def solve(self, fields, selector, build, policy, criteria=None, level=logging.DEBUG):
        """Solve every slice of S in place

        Parameters
        ----------
        fields : dict of str -> Field or None
            'S' is the solution field; coefficient fields that are None are taken to be zero
        selector : PlaneSelector or LineSelector
            decides how the fields are cut into slices
        build : callable
            maps a dict of slice buffers, keyed like `fields`, onto an equation object
        policy : StabilizationPolicy
        criteria : ConvergenceCriteria, optional
        level : int
            logging level of the per slice progress lines

        Returns
        -------
        SolveReport
        """
        S = fields['S']
        indices = selector.indices(S)
        shape = selector.shape(S)

        def task(index):
            buffers = {
                name: np.zeros(shape) if field is None else selector.extract(field, index)
                for name, field in fields.items()
            }
            equation = build(buffers)
            identity = selector.describe(S, index)
            result = policy.run(equation, buffers['S'], criteria, identity=identity)
            logger.log(level, result.describe())
            return result, buffers, equation.repairable

        outcomes = self.map([lambda index=index: task(index) for index in indices])

        results = []
        for index, (result, buffers, repairable) in zip(indices, outcomes):
            selector.assign(S, index, result.solved)
            if result.repaired:
                for name in repairable:
                    if fields.get(name) is not None:
                        selector.assign(fields[name], index, buffers[name])
            results.append(result)
        return SolveReport(results)

    def solve_planes(self, fields, combination, build, policy, criteria=None, level=logging.DEBUG):
        """Solve every (t, z) or (t, x) plane of a DimensionCombination"""
        return self.solve(fields, PlaneSelector(combination), build, policy, criteria, level)

    def solve_lines(self, fields, dimension, build, policy, criteria=None, level=logging.DEBUG):
        """Solve every line along a Dimension"""
        return self.solve(fields, LineSelector(dimension), build, policy, criteria, level)
