"""
WatchLoop for repeated analysis at a fixed interval.

The loop:
- Runs one analysis per iteration and renders it with a comparison
  against the previous iteration (or the --compare snapshot first)
- Pings before each iteration and reconnects once if the ping fails
- Logs failed iterations and keeps going
- Stops on SIGINT/SIGTERM, cancelling any in-flight iteration
- Closes the metric source on exit

Iteration state is an explicit immutable WatchState value threaded
through _iterate(); the baseline only advances on a complete report.
"""

import asyncio
import contextlib
import functools
import logging
import signal
from dataclasses import dataclass
from typing import Protocol

from redis_doctor.analyzer import AnalysisOutcome, Analyzer, build_outcome
from redis_doctor.comparison import Snapshot
from redis_doctor.protocols import MetricSourceProtocol
from redis_doctor.types import Report

logger = logging.getLogger(__name__)


class WatchRendererProtocol(Protocol):
    def render_watch_iteration(
        self, outcome: AnalysisOutcome, iteration: int, interval: float
    ) -> None:
        ...


@dataclass(frozen=True)
class WatchState:
    """
    State carried between watch iterations.

    Attributes:
        iteration: Number of iterations started so far
        baseline: Snapshot the next iteration compares against
    """

    iteration: int = 0
    baseline: Snapshot | None = None


class WatchLoop:
    """
    Re-run the analysis every interval until a shutdown signal.

    Example:
        loop = WatchLoop(
            source=adapter,
            analyzer=Analyzer(sample_size=1000),
            renderer=RichRenderer(console),
            interval_seconds=10.0,
        )
        await loop.run()  # Runs until SIGINT/SIGTERM
    """

    def __init__(
        self,
        source: MetricSourceProtocol,
        analyzer: Analyzer,
        renderer: WatchRendererProtocol,
        interval_seconds: float,
        baseline: Snapshot | None = None,
        install_signal_handlers: bool = True,
    ) -> None:
        """
        Initialize watch loop.

        Args:
            source: Connected metric source, closed when the loop exits
            analyzer: Analyzer run on each iteration
            renderer: Receives each completed outcome
            interval_seconds: Seconds between iterations
            baseline: Snapshot the first iteration compares against
            install_signal_handlers: Register SIGINT/SIGTERM handlers in run()
        """
        self.source = source
        self.analyzer = analyzer
        self.renderer = renderer
        self.interval = interval_seconds
        self.initial_baseline = baseline
        self.install_signal_handlers = install_signal_handlers
        self._shutdown = asyncio.Event()

    async def run(self) -> WatchState:
        """
        Run iterations until shutdown.

        Returns:
            The final WatchState
        """
        loop = asyncio.get_running_loop()
        signals = (signal.SIGINT, signal.SIGTERM) if self.install_signal_handlers else ()
        for sig in signals:
            loop.add_signal_handler(sig, functools.partial(self._handle_signal, sig))

        logger.info("Watch mode starting (interval: %ss)", self.interval)
        state = WatchState(baseline=self.initial_baseline)

        try:
            while not self._shutdown.is_set():
                state = await self._iterate(state)

                # Interruptible sleep
                try:
                    await asyncio.wait_for(self._shutdown.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            for sig in signals:
                loop.remove_signal_handler(sig)
            await self.source.close()

        logger.info("Watch mode stopped after %d iteration(s)", state.iteration)
        return state

    def stop(self) -> None:
        """Request shutdown; an in-flight iteration is cancelled."""
        self._shutdown.set()

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, stopping watch mode", sig.name)
        self._shutdown.set()

    async def _iterate(self, state: WatchState) -> WatchState:
        """
        Run one iteration, racing it against shutdown.

        Returns:
            Next state. The baseline is replaced only when the iteration
            produced a complete report.
        """
        iteration = state.iteration + 1
        analysis = asyncio.create_task(self._analyze())
        shutdown = asyncio.create_task(self._shutdown.wait())

        done, _ = await asyncio.wait(
            {analysis, shutdown}, return_when=asyncio.FIRST_COMPLETED
        )

        if analysis not in done:
            analysis.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await analysis
            logger.debug("Watch iteration %d cancelled by shutdown", iteration)
            return WatchState(iteration=iteration, baseline=state.baseline)

        shutdown.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await shutdown

        try:
            report = analysis.result()
        except Exception as e:
            logger.error("Watch iteration %d failed: %s", iteration, e)
            return WatchState(iteration=iteration, baseline=state.baseline)

        outcome = build_outcome(report, state.baseline)
        self.renderer.render_watch_iteration(outcome, iteration, self.interval)
        return WatchState(iteration=iteration, baseline=Snapshot.from_report(report))

    async def _analyze(self) -> Report:
        await self._ensure_connected()
        return await self.analyzer.run(self.source)

    async def _ensure_connected(self) -> None:
        """Ping, reconnecting once if the connection was lost."""
        try:
            await self.source.ping()
        except Exception as e:
            logger.warning("Connection check failed (%s), reconnecting", e)
            await self.source.reconnect()
