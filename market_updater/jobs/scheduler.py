# market_updater/jobs/scheduler.py
from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from market_updater.config.settings import Settings
from market_updater.jobs.pipeline import PipelineKind, TickResult, run_tick
from market_updater.services.market_storage import DocumentStore

logger = logging.getLogger("market_updater.scheduler")

Pipeline = Callable[[PipelineKind, Settings, DocumentStore], Awaitable[TickResult]]


# ----------------------------
# timestamp helpers (for info payload)
# ----------------------------
def _iso_z_from_epoch(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    dt = datetime.fromtimestamp(float(ts), tz=timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def _now_epoch() -> float:
    return time.time()


# ----------------------------
# jobs
# ----------------------------
@dataclass(frozen=True)
class PollJob:
    name: str
    interval_s: float
    kind: PipelineKind


def default_jobs(settings: Settings) -> List[PollJob]:
    jobs: List[PollJob] = []
    if settings.INDIVIDUAL_ENABLED:
        jobs.append(PollJob("individual", settings.INDIVIDUAL_INTERVAL_SECONDS, PipelineKind.INDIVIDUAL))
    if settings.BATCH_ENABLED:
        jobs.append(PollJob("batch", settings.BATCH_INTERVAL_SECONDS, PipelineKind.BATCH))
    return jobs


def next_tick_after(next_tick: float, now: float, interval_s: float) -> float:
    """
    Advance to the next slot on the job's own grid that is still in the future.
    Slots missed while a slow run was in flight are dropped, not queued.
    """
    next_tick += interval_s
    if next_tick <= now:
        missed = int((now - next_tick) // interval_s) + 1
        next_tick += missed * interval_s
    return next_tick


# ----------------------------
# scheduler state + handle
# ----------------------------
@dataclass
class SchedulerState:
    started: bool = False
    stop_event: Optional[asyncio.Event] = None
    tasks: Dict[str, asyncio.Task] = field(default_factory=dict)  # job name -> task
    meta: Dict[str, Any] = field(default_factory=dict)
    job_stats: Dict[str, Dict[str, Any]] = field(default_factory=dict)  # job name -> stats


@dataclass(frozen=True)
class SchedulerHandle:
    """
    Stored in app.state.scheduler; the only way to inspect or stop the poll jobs.
    """
    _state: SchedulerState

    @property
    def running(self) -> bool:
        return bool(self._state.started and self._state.stop_event and not self._state.stop_event.is_set())

    @property
    def jobs(self) -> int:
        return len(self._state.tasks)

    def stats(self, name: str) -> Dict[str, Any]:
        return dict(self._state.job_stats.get(name, {}))

    def info(self) -> Dict[str, Any]:
        meta = dict(self._state.meta) if self._state.meta else {}
        started_at = meta.get("started_at")
        started_at_f = float(started_at) if started_at is not None else None

        info: Dict[str, Any] = {
            "running": self.running,
            "jobs": self.jobs,
            "uptime_s": int(_now_epoch() - started_at_f) if started_at_f else None,
            "meta": {
                **meta,
                "started_at_iso": _iso_z_from_epoch(started_at_f),
            },
            "per_job": {},
        }

        for name, s in self._state.job_stats.items():
            info["per_job"][name] = {
                **s,
                "last_run_iso": _iso_z_from_epoch(s.get("last_run_ts")),
                "last_success_iso": _iso_z_from_epoch(s.get("last_success_ts")),
                "last_error_iso": _iso_z_from_epoch(s.get("last_error_ts")),
            }

        return info


# ----------------------------
# job loop
# ----------------------------
def _record_result(js: Dict[str, Any], result: TickResult, dt_ms: int) -> None:
    js["ticks"] = int(js.get("ticks", 0)) + 1
    js["last_ms"] = dt_ms
    js["last_fetched"] = result.fetched
    js["last_written"] = result.report.written if result.report else 0
    js["last_failed"] = result.report.failed if result.report else 0

    if result.ok:
        js["last_success_ts"] = _now_epoch()
        js["consecutive_failures"] = 0
        return

    js["last_error_ts"] = _now_epoch()
    if result.error is not None:
        js["last_error"] = f"{type(result.error).__name__}: {result.error}"[:300]
    else:
        js["last_error"] = f"{js['last_failed']} writes failed"
    js["consecutive_failures"] = int(js.get("consecutive_failures", 0)) + 1


async def _job_loop(
    job: PollJob,
    state: SchedulerState,
    stop_event: asyncio.Event,
    settings: Settings,
    store: DocumentStore,
    pipeline: Pipeline,
    run_on_start: bool,
) -> None:
    interval = float(job.interval_s)
    next_tick = time.monotonic() if run_on_start else time.monotonic() + interval

    while not stop_event.is_set():
        now = time.monotonic()
        if now < next_tick:
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=(next_tick - now))
            except asyncio.TimeoutError:
                pass
            continue

        js = state.job_stats[job.name]
        js["last_run_ts"] = _now_epoch()
        t0 = time.perf_counter()

        try:
            logger.info("tick | %s", job.name)
            result = await pipeline(job.kind, settings, store)

            dt_ms = int((time.perf_counter() - t0) * 1000)
            _record_result(js, result, dt_ms)
            logger.info(
                "tick done | %s | fetched=%d | written=%d | %dms",
                job.name,
                result.fetched,
                js["last_written"],
                dt_ms,
            )

        except asyncio.CancelledError:
            raise
        except Exception as e:
            dt_ms = int((time.perf_counter() - t0) * 1000)
            js["ticks"] = int(js.get("ticks", 0)) + 1
            js["last_ms"] = dt_ms
            js["last_error_ts"] = _now_epoch()
            js["last_error"] = (repr(e)[:300])
            js["consecutive_failures"] = int(js.get("consecutive_failures", 0)) + 1

            logger.exception("tick error | %s | %dms", job.name, dt_ms)

        now = time.monotonic()
        following = next_tick_after(next_tick, now, interval)
        skipped = int(round((following - next_tick) / interval)) - 1
        if skipped > 0:
            logger.warning("tick overran | %s | skipped=%d", job.name, skipped)
        next_tick = following


# ----------------------------
# public API
# ----------------------------
def start_scheduler(
    settings: Settings,
    store: DocumentStore,
    jobs: Optional[Sequence[PollJob]] = None,
    pipeline: Pipeline = run_tick,
) -> SchedulerHandle:
    """
    Register one task per job on the running event loop. Jobs share nothing
    but the store handle and the (immutable) settings.
    """
    jobs = list(default_jobs(settings) if jobs is None else jobs)

    names = [j.name for j in jobs]
    if len(set(names)) != len(names):
        raise ValueError(f"duplicate poll job names: {names}")

    state = SchedulerState()
    state.stop_event = asyncio.Event()
    state.started = True
    state.meta = {
        "pid": os.getpid(),
        "started_at": _now_epoch(),
        "jobs": {j.name: {"kind": j.kind.value, "interval_s": j.interval_s} for j in jobs},
    }

    if not jobs:
        logger.warning("no poll jobs enabled (INDIVIDUAL_ENABLED / BATCH_ENABLED)")

    for job in jobs:
        state.job_stats[job.name] = {
            "kind": job.kind.value,
            "schedule_s": job.interval_s,
            "ticks": 0,
            "last_run_ts": None,
            "last_success_ts": None,
            "last_error_ts": None,
            "last_error": None,
            "last_fetched": None,
            "last_written": None,
            "last_failed": None,
            "last_ms": None,
            "consecutive_failures": 0,
        }

        state.tasks[job.name] = asyncio.create_task(
            _job_loop(job, state, state.stop_event, settings, store, pipeline, settings.POLL_RUN_ON_START),
            name=f"poll:{job.name}",
        )

    logger.info("start market info updater | jobs=%s", len(state.tasks))
    return SchedulerHandle(state)


async def stop_scheduler(handle: Optional[SchedulerHandle], timeout_s: float = 6.0) -> None:
    if handle is None:
        return

    state = handle._state
    if not state.started:
        return

    if state.stop_event:
        state.stop_event.set()

    tasks = list(state.tasks.values())

    try:
        if tasks:
            await asyncio.wait_for(asyncio.gather(*tasks, return_exceptions=True), timeout=timeout_s)
    except asyncio.TimeoutError:
        for t in tasks:
            if not t.done():
                t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    finally:
        state.tasks.clear()
        state.started = False

    logger.info("market info updater stopped")


async def run_forever(
    settings: Settings,
    store: DocumentStore,
    jobs: Optional[Sequence[PollJob]] = None,
    pipeline: Pipeline = run_tick,
) -> None:
    """Start the jobs and block until cancelled."""
    handle = start_scheduler(settings, store, jobs, pipeline)
    try:
        await asyncio.Event().wait()
    finally:
        await stop_scheduler(handle)
