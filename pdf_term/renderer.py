# renderer.py
import itertools
import logging
import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, Dict, Iterable, List, Optional

from PIL import Image

from pdf_term.cache import PageCache
from pdf_term.config import MAX_RENDER_WORKERS
from pdf_term.errors import EngineFailure, RenderCancelled
from pdf_term.models import Priority, RenderKey

logger = logging.getLogger(__name__)

_STOP_PRIORITY = -1


class CancelToken:
    """Cooperative cancellation flag, checked before each engine call."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class RenderHandle:
    """The eventual result of a render request, shared by every requester of a key."""

    def __init__(self, key: RenderKey):
        self.key = key
        self._future: Future = Future()

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: Optional[float] = None) -> Image.Image:
        return self._future.result(timeout)

    def exception(self, timeout: Optional[float] = None) -> Optional[BaseException]:
        return self._future.exception(timeout)

    @property
    def cancelled(self) -> bool:
        return self.done() and isinstance(self._future.exception(), RenderCancelled)

    def add_done_callback(self, fn: Callable[["RenderHandle"], Any]):
        self._future.add_done_callback(lambda _: fn(self))

    def _set_result(self, image: Image.Image):
        self._future.set_result(image)

    def _set_exception(self, error: BaseException):
        self._future.set_exception(error)


class _RenderJob:
    def __init__(self, key: RenderKey, priority: Priority, generation: int, document, cache_generation: int):
        self.key = key
        self.priority = priority
        self.generation = generation
        self.document = document
        self.cache_generation = cache_generation
        self.token = CancelToken()
        self.handle = RenderHandle(key)
        self.dispatched = False


class _Task:
    def __init__(self, fn: Callable[[], Any], priority: Priority):
        self.fn = fn
        self.priority = priority
        self.future: Future = Future()


class RenderWorker(threading.Thread):
    """
    A worker thread that pulls render jobs and search tasks off the
    scheduler's priority queue.
    """

    def __init__(self, scheduler: "RenderScheduler", name: str):
        super().__init__(daemon=True, name=name)
        self.scheduler = scheduler
        self.start()

    def run(self):
        while True:
            _, _, task = self.scheduler._queue.get()
            if task is None:  # Sentinel value to stop the thread
                break
            self.scheduler._execute(task)


class RenderScheduler:
    """
    Turns render requests into engine calls.

    - At most one job is in flight per render key; repeated requests attach
      to the existing handle.
    - Jobs run in priority order (visible, then prefetch, then search) on a
      small pool of ``RenderWorker`` threads.
    - Cancellation is fire-and-forget: the handle fails with
      ``RenderCancelled`` immediately, and if the engine call is already
      running its bitmap is dropped when it comes back.
    - Each dispatch takes a number from a monotonically increasing counter;
      a finished job is cached only if nothing cancelled or superseded it and
      the cache generation it was requested under is still current.

    With ``workers=0`` no threads are started and queued work runs when
    ``run_pending`` is called, which keeps tests deterministic.
    """

    def __init__(
        self,
        document,
        cache: PageCache,
        events: Optional[queue.Queue] = None,
        workers: int = MAX_RENDER_WORKERS,
    ):
        self._document = document
        self._cache = cache
        self._events = events
        self._queue: "queue.PriorityQueue" = queue.PriorityQueue()
        self._seq = itertools.count()
        self._dispatch = itertools.count(1)
        self._lock = threading.Lock()
        self._inflight: Dict[RenderKey, _RenderJob] = {}
        self._latest_dispatch: Dict[int, int] = {}
        self._wanted: frozenset = frozenset()
        self._stopped = False
        self.workers: List[RenderWorker] = [
            RenderWorker(self, name=f"render-worker-{i}") for i in range(workers)
        ]

    def request(self, key: RenderKey, priority: Priority = Priority.VISIBLE) -> RenderHandle:
        """Request a bitmap for ``key``; returns the (possibly shared) handle."""
        with self._lock:
            image = self._cache.get(key)
            if image is not None:
                handle = RenderHandle(key)
                handle._set_result(image)
                return handle

            job = self._inflight.get(key)
            if job is not None:
                if priority < job.priority and not job.dispatched:
                    job.priority = priority
                    self._queue.put((priority, next(self._seq), job))
                return job.handle

            job = _RenderJob(
                key,
                priority,
                generation=next(self._dispatch),
                document=self._document,
                cache_generation=self._cache.generation,
            )
            self._inflight[key] = job
            self._latest_dispatch[key.page] = job.generation
            self._queue.put((priority, next(self._seq), job))
            return job.handle

    def cancel(self, key: RenderKey) -> bool:
        """Cancel the in-flight job for ``key``. Never blocks on the engine."""
        with self._lock:
            job = self._inflight.pop(key, None)
        if job is None:
            return False
        self._cancel_job(job)
        return True

    def on_viewport_change(
        self, visible_keys: Iterable[RenderKey], prefetch_keys: Iterable[RenderKey] = ()
    ) -> Dict[RenderKey, RenderHandle]:
        """
        Cancel jobs that are no longer visible or prefetched, then request the
        visible keys ahead of the prefetch keys.
        """
        visible_keys = list(visible_keys)
        prefetch_keys = list(prefetch_keys)
        with self._lock:
            self._wanted = frozenset(visible_keys) | frozenset(prefetch_keys)
            stale = [job for key, job in self._inflight.items() if key not in self._wanted]
            for job in stale:
                del self._inflight[job.key]
        for job in stale:
            self._cancel_job(job)

        handles: Dict[RenderKey, RenderHandle] = {}
        for key in visible_keys:
            handles[key] = self.request(key, Priority.VISIBLE)
        for key in prefetch_keys:
            if key not in handles:
                handles[key] = self.request(key, Priority.PREFETCH)
        return handles

    def submit(self, fn: Callable[[], Any], priority: Priority = Priority.SEARCH) -> Future:
        """Run ``fn`` on the worker pool (used for search scans)."""
        task = _Task(fn, priority)
        self._queue.put((priority, next(self._seq), task))
        return task.future

    def has_pending(self, max_priority: Priority = Priority.PREFETCH) -> bool:
        """True while any render job at ``max_priority`` or more urgent is unfinished."""
        with self._lock:
            return any(job.priority <= max_priority for job in self._inflight.values())

    def set_document(self, document):
        """Swap in a reloaded document and cancel everything rendered against the old one."""
        with self._lock:
            self._document = document
            stale = list(self._inflight.values())
            self._inflight.clear()
            self._latest_dispatch.clear()
            self._wanted = frozenset()
        for job in stale:
            self._cancel_job(job)

    def run_pending(self) -> int:
        """Run queued work on the calling thread (only meaningful with ``workers=0``)."""
        ran = 0
        while True:
            try:
                _, _, task = self._queue.get_nowait()
            except queue.Empty:
                return ran
            if task is None:
                continue
            self._execute(task)
            ran += 1

    def stop(self):
        """Stops the worker threads."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            stale = list(self._inflight.values())
            self._inflight.clear()
        for job in stale:
            self._cancel_job(job)
        for _ in self.workers:
            self._queue.put((_STOP_PRIORITY, next(self._seq), None))

    def _cancel_job(self, job: _RenderJob):
        job.token.cancel()
        if not job.handle.done():
            job.handle._set_exception(RenderCancelled(f"render of page {job.key.page + 1} cancelled"))
        logger.debug("Cancelled render job %s", job.key)

    def _post(self, *event):
        if self._events is not None:
            self._events.put(event)

    def _execute(self, task):
        if isinstance(task, _Task):
            self._run_task(task)
        else:
            self._run_job(task)

    def _run_task(self, task: _Task):
        if not task.future.set_running_or_notify_cancel():
            return
        try:
            result = task.fn()
        except Exception as exc:
            task.future.set_exception(exc)
        else:
            task.future.set_result(result)
        self._post("task_done")

    def _run_job(self, job: _RenderJob):
        with self._lock:
            if job.dispatched or job.token.cancelled:
                return
            job.dispatched = True

        image = None
        error = None
        try:
            image = job.document.rasterize(job.key)
        except EngineFailure as exc:
            error = exc
        except Exception as exc:
            logger.exception("Unexpected rendering error on page %d", job.key.page)
            error = EngineFailure(job.key.page, str(exc))

        with self._lock:
            current = self._inflight.get(job.key) is job
            superseded = (
                self._latest_dispatch.get(job.key.page, 0) > job.generation
                and job.key not in self._wanted
            )
            if current:
                # A request must find either the cache entry or the in-flight job
                if error is None and not superseded:
                    self._cache.put(job.key, image, job.cache_generation)
                del self._inflight[job.key]

        if not current:
            logger.debug("Discarding result of cancelled job %s", job.key)
            return

        if error is not None:
            logger.warning("Rendering error on page %d: %s", job.key.page, error)
            job.handle._set_exception(error)
            self._post("render_failed", job.key, error)
            return

        job.handle._set_result(image)
        self._post("rendered", job.key)
