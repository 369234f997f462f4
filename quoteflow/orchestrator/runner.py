"""
Flow runner: drives one flow through a browser session step by step,
recording results, artifacts and progress.
"""
import json
import logging
import platform
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from playwright.async_api import Error as PlaywrightError

from quoteflow.artifacts.pipeline import ArtifactsPipeline
from quoteflow.executor.context import ContextStack, ExecutionContext, real_pause
from quoteflow.executor.registry import execute_step
from quoteflow.orchestrator.browser import BrowserSession, launch_browser
from quoteflow.orchestrator.explain import describe_step
from quoteflow.orchestrator.progress import Listener, ProgressSink
from quoteflow.resolvers.condition import skip_reason
from quoteflow.utils.errors import FlowError, RunError
from quoteflow.utils.paths import ResolveContext
from quoteflow.utils.schema import FieldCatalog, Flow, RunInfo, RunManifest, RunOptions, StepResult, utc_now

logger = logging.getLogger(__name__)

Launcher = Callable[[RunOptions, Optional[Path]], Awaitable[BrowserSession]]


def make_run_id(slug: str) -> str:
    return f"{slug}-{datetime.now().strftime('%Y%m%d-%H%M%S')}-{uuid.uuid4().hex[:5]}"


class FlowRunner:
    """
    Runs one flow once.

    Lifecycle: idle -> running -> success | failed. The run directory is
    known as soon as the runner is built, so callers can watch
    progress.ndjson while the run is in flight.
    """

    def __init__(self, flow: Flow, catalog: FieldCatalog,
                 lead: Optional[Dict[str, Any]] = None,
                 credentials: Optional[Dict[str, Any]] = None,
                 options: Optional[RunOptions] = None,
                 env: Optional[Mapping[str, str]] = None,
                 launcher: Launcher = launch_browser,
                 pause: Callable[[float], Awaitable[None]] = real_pause,
                 listeners: Optional[List[Listener]] = None):
        self.flow = flow
        self.catalog = catalog
        self.options = options or RunOptions()
        self.resolve_ctx = ResolveContext(lead=lead or {}, credentials=credentials or {})
        if env is not None:
            self.resolve_ctx.env = env
        self.launcher = launcher
        self.pause = pause

        self.run_id = make_run_id(flow.slug)
        self.run_dir = Path(self.options.out_root) / flow.slug / self.run_id
        self.progress = ProgressSink(self.run_dir / "progress.ndjson")
        for listener in listeners or []:
            self.progress.add_listener(listener)
        self.artifacts = ArtifactsPipeline(self.run_dir)

        self.status = "idle"
        self.results: List[StepResult] = []
        self.session: Optional[BrowserSession] = None
        self.manifest: Optional[RunManifest] = None
        self._info: Optional[RunInfo] = None
        self._stop_requested = False
        self._popup = None
        self._tracing = False
        self._trace_path: Optional[str] = None

    def request_stop(self) -> None:
        """Stop before the next step starts; the current step finishes."""
        logger.info("[runner] stop requested for %s", self.run_id)
        self._stop_requested = True

    async def run(self) -> RunManifest:
        if self.status != "idle":
            raise FlowError(f"Run {self.run_id} already started")
        self.status = "running"
        self.run_dir.mkdir(parents=True, exist_ok=True)
        self._info = RunInfo(id=self.run_id, slug=self.flow.slug, platform=self.flow.platform,
                             mode=self.options.mode, status="running")

        failure: Optional[RunError] = None
        finished = False
        try:
            try:
                await self._launch()
                self._info.chrome = self.session.chrome
                failure = await self._execute(self.session)
            except RunError as e:
                failure = e
            except Exception as e:
                logger.exception("[runner] run %s aborted", self.run_id)
                failure = RunError(f"Run aborted: {e}", str(self.run_dir))
                failure.__cause__ = e
            finished = True
        finally:
            self.status = "success" if finished and failure is None else "failed"
            await self._stop_tracing()
            self._write_manifest()
            if self.status == "failed" and self.session is not None:
                await self.session.close()

        if failure is not None:
            self.progress.emit("run", "error", message=failure.args[0])
            raise failure

        if self.options.keep_open:
            self.progress.emit("run", "success", message="Done, browser left open until closed")
            await self.session.wait_closed()
        else:
            await self.session.close()
            self.progress.emit("run", "success", message=f"Done, artifacts: {self.run_dir}")
        return self.manifest

    async def _launch(self) -> None:
        video_dir = self.run_dir / "video" if self.options.video else None
        try:
            self.session = await self.launcher(self.options, video_dir)
        except PlaywrightError as e:
            raise RunError(f"Browser launch failed: {e.message}", str(self.run_dir)) from e

        self.session.context.on("page", self._on_popup)
        if self.flow.trace != "off":
            try:
                await self.session.context.tracing.start(screenshots=True, snapshots=True, sources=True)
            except PlaywrightError as e:
                raise RunError(f"Tracing start failed: {e.message}", str(self.run_dir)) from e
            self._tracing = True

    def _on_popup(self, page) -> None:
        logger.info("[runner] popup opened, switching root page")
        self._popup = page

    async def _execute(self, session: BrowserSession) -> Optional[RunError]:
        """Run all steps; returns the error that stopped the run, if any."""
        ctx = ExecutionContext(
            stack=ContextStack(session.page),
            resolve=self.resolve_ctx,
            catalog=self.catalog,
            progress=self.progress,
            default_timeout_ms=self.options.default_timeout_ms,
            pause=self.pause,
        )
        total = len(self.flow.steps)
        self.progress.emit("run", "start", total_steps=total,
                           message=f"Run {self.flow.slug} ({self.options.mode})")

        for index, step in enumerate(self.flow.steps):
            if self._stop_requested:
                return RunError(f"Run stopped before step {index + 1}", str(self.run_dir), index, step.type)

            if self._popup is not None:
                ctx.stack.reset(self._popup)
                self._popup = None

            label = step.display_name
            reason = skip_reason(step, self.resolve_ctx.lead)
            if reason:
                logger.info("[runner] step %d SKIPPED (%s)", index + 1, reason)
                self.results.append(StepResult(index=index, type=step.type, label=step.label,
                                               ok=True, skipped=True, reason=reason))
                self.progress.emit(step.type, "skipped", step_index=index, total_steps=total,
                                   message=describe_step(step))
                continue

            self.progress.emit(step.type, "start", step_index=index, total_steps=total,
                               message=describe_step(step))
            started = time.monotonic()
            try:
                await execute_step(step, ctx)
                shot = await self.artifacts.on_step_ok(ctx.page, ctx.scope, index, label,
                                                       self.options.dom, self.options.a11y)
            except Exception as e:
                elapsed = int((time.monotonic() - started) * 1000)
                shot = await self.artifacts.on_step_error(ctx.page, ctx.scope, index,
                                                          self.options.dom, self.options.a11y)
                self.results.append(StepResult(
                    index=index, type=step.type, label=step.label, ok=False,
                    optional=step.optional or None, ms=elapsed, error=str(e),
                    error_type=type(e).__name__, screenshot=shot))
                self.progress.emit(step.type, "error", step_index=index, total_steps=total,
                                   message=str(e), screenshot_path=shot)
                if step.optional:
                    logger.warning("[runner] optional step %d (%s) failed, continuing: %s", index + 1, step.type, e)
                    continue
                return RunError(f"Step {index + 1} ({step.type}) failed: {e}",
                                str(self.run_dir), index, step.type)

            elapsed = int((time.monotonic() - started) * 1000)
            self.results.append(StepResult(index=index, type=step.type, label=step.label,
                                           ok=True, ms=elapsed, screenshot=shot))
            self.progress.emit(step.type, "success", step_index=index, total_steps=total,
                               screenshot_path=shot)
        return None

    async def _stop_tracing(self) -> None:
        if not self._tracing:
            return
        self._tracing = False
        keep = self.flow.trace == "on" or self.status == "failed"
        try:
            if keep:
                path = self.run_dir / "trace" / "trace.zip"
                path.parent.mkdir(parents=True, exist_ok=True)
                await self.session.context.tracing.stop(path=str(path))
                self._trace_path = "trace/trace.zip"
            else:
                await self.session.context.tracing.stop()
        except PlaywrightError as e:
            logger.debug("[runner] tracing stop failed: %s", e)

    def _write_manifest(self) -> None:
        if self.manifest is not None:
            return
        self._info.finished_at = utc_now()
        self._info.status = self.status
        artifacts = {
            "screenshotsDir": "screenshots",
            "domDir": "dom",
            "progress": "progress.ndjson",
        }
        if self._trace_path:
            artifacts["trace"] = self._trace_path
        if self.options.video:
            artifacts["video"] = "video"
        self.manifest = RunManifest(
            run=self._info,
            env={"os": platform.platform(), "python": platform.python_version()},
            options=self.options.to_json_dict(),
            steps=self.results,
            artifacts=artifacts,
        )
        path = self.run_dir / "index.json"
        path.write_text(json.dumps(self.manifest.to_json_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        logger.info("[runner] manifest written: %s (%s)", path, self.status)


async def run_flow(flow: Flow, catalog: FieldCatalog, lead: Optional[Dict[str, Any]] = None,
                   credentials: Optional[Dict[str, Any]] = None,
                   options: Optional[RunOptions] = None, **kwargs) -> RunManifest:
    runner = FlowRunner(flow, catalog, lead=lead, credentials=credentials, options=options, **kwargs)
    return await runner.run()
