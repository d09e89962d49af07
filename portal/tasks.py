"""
Side-Effect Queue
Best-effort jobs (retest invalidation, key consumption) decoupled from the
submission path. Jobs are drained after the critical path returns; a failing job
is logged and never reaches the caller.
"""
import logging
import threading
from collections import deque, namedtuple

logger = logging.getLogger(__name__)

Job = namedtuple('Job', ['name', 'func', 'args', 'kwargs'])


class SideEffectQueue:
    """FIFO of deferred best-effort jobs"""

    def __init__(self):
        self._jobs = deque()
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._jobs)

    def enqueue(self, name, func, *args, **kwargs):
        with self._lock:
            self._jobs.append(Job(name, func, args, kwargs))
        logger.debug("Queued side effect %s", name)

    def pending(self):
        """Names of queued jobs, oldest first"""
        with self._lock:
            return [job.name for job in self._jobs]

    def clear(self):
        with self._lock:
            self._jobs.clear()

    def _pop(self):
        with self._lock:
            return self._jobs.popleft() if self._jobs else None

    def drain(self):
        """
        Run every queued job in order.

        Returns:
            list: names of jobs that failed
        """
        failed = []
        while True:
            job = self._pop()
            if job is None:
                break
            try:
                job.func(*job.args, **job.kwargs)
                logger.info("Side effect %s completed", job.name)
            except Exception:
                logger.exception("Side effect %s failed", job.name)
                failed.append(job.name)
        return failed


def dispatch_side_effects(app, queue=None):
    """
    Hand queued jobs to a Socket.IO background task, or drain inline when
    SIDE_EFFECTS_INLINE is set.
    """
    from portal.extensions import side_effects, socketio

    queue = queue if queue is not None else side_effects
    if not len(queue):
        return None

    if app.config.get('SIDE_EFFECTS_INLINE'):
        return queue.drain()

    def _drain_in_context():
        with app.app_context():
            queue.drain()

    socketio.start_background_task(_drain_in_context)
    return None
