"""
FastAPI service that starts flow runs in the background and streams
their progress over WebSocket.
"""
import asyncio
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel, Field, ValidationError

from quoteflow.cli import resolve_credentials
from quoteflow.orchestrator.browser import launch_browser
from quoteflow.orchestrator.runner import FlowRunner
from quoteflow.utils.errors import RunError
from quoteflow.utils.schema import FieldCatalog, Flow, ProgressEvent, RunOptions

logger = logging.getLogger(__name__)

load_dotenv()

# run_id -> {"runner", "task", "error", "watchers"}
runs: Dict[str, Dict[str, Any]] = {}

# finished runs kept for polling; older ones are dropped once nobody watches them
MAX_FINISHED_RUNS = int(os.environ.get("QUOTEFLOW_MAX_FINISHED_RUNS", "20"))


class RunRequest(BaseModel):
    flow: Dict[str, Any]
    fields: Dict[str, Any]
    lead: Dict[str, Any] = Field(default_factory=dict)
    username: Optional[str] = None
    password: Optional[str] = None
    options: RunOptions = Field(default_factory=RunOptions)


class RunResponse(BaseModel):
    run_id: str
    run_dir: str
    message: str


app = FastAPI(title="quoteflow runs API")
app.state.launcher = launch_browser

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _get_run(run_id: str) -> Dict[str, Any]:
    if run_id not in runs:
        raise HTTPException(status_code=404, detail="Run not found")
    return runs[run_id]


def _run_payload(entry: Dict[str, Any]) -> Dict[str, Any]:
    runner: FlowRunner = entry["runner"]
    return {
        "runId": runner.run_id,
        "slug": runner.flow.slug,
        "status": runner.status,
        "runDir": str(runner.run_dir),
        "error": entry.get("error"),
        "steps": [r.to_json_dict() for r in runner.results],
        "events": [e.to_json_dict() for e in runner.progress.events],
    }


async def execute_run(run_id: str) -> None:
    entry = runs[run_id]
    runner: FlowRunner = entry["runner"]
    try:
        await runner.run()
    except RunError as e:
        entry["error"] = str(e)
        logger.warning("Run %s failed: %s", run_id, e)
    finally:
        prune_finished_runs()


def prune_finished_runs() -> None:
    finished = [run_id for run_id, entry in runs.items()
                if entry["runner"].status not in ("idle", "running")]
    for run_id in finished[: max(0, len(finished) - MAX_FINISHED_RUNS)]:
        if runs[run_id].get("watchers", 0) == 0:
            logger.info("Dropping finished run %s", run_id)
            del runs[run_id]


@app.post("/api/runs", response_model=RunResponse)
async def start_run(request: RunRequest):
    """Validate inputs and start a run in the background."""
    try:
        flow = Flow.model_validate(request.flow)
        catalog = FieldCatalog.model_validate(request.fields)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    credentials = resolve_credentials(flow.platform, os.environ, request.username, request.password)
    runner = FlowRunner(flow, catalog, lead=request.lead, credentials=credentials,
                        options=request.options, launcher=app.state.launcher)
    runs[runner.run_id] = {"runner": runner, "error": None, "watchers": 0}
    runs[runner.run_id]["task"] = asyncio.create_task(execute_run(runner.run_id))

    return RunResponse(run_id=runner.run_id, run_dir=str(runner.run_dir),
                       message="Run started. Connect to the WebSocket for live progress.")


@app.get("/api/runs/{run_id}")
async def get_run(run_id: str):
    return JSONResponse(_run_payload(_get_run(run_id)))


@app.post("/api/runs/{run_id}/stop")
async def stop_run(run_id: str):
    runner: FlowRunner = _get_run(run_id)["runner"]
    runner.request_stop()
    return {"runId": run_id, "status": runner.status, "stopRequested": True}


@app.get("/api/runs/{run_id}/screenshots/{name}")
async def get_screenshot(run_id: str, name: str):
    runner: FlowRunner = _get_run(run_id)["runner"]
    if Path(name).name != name:
        raise HTTPException(status_code=400, detail="Invalid screenshot name")
    path = runner.run_dir / "screenshots" / name
    if not path.exists():
        raise HTTPException(status_code=404, detail="Screenshot not found")
    return FileResponse(path)


@app.websocket("/api/ws/{run_id}")
async def websocket_endpoint(websocket: WebSocket, run_id: str):
    """Send the events so far, then every new event until the run ends."""
    await websocket.accept()
    if run_id not in runs:
        await websocket.send_json({"type": "error", "data": {"message": "Run not found"}})
        await websocket.close()
        return

    entry = runs[run_id]
    runner: FlowRunner = entry["runner"]
    queue: asyncio.Queue = asyncio.Queue()

    def on_event(event: ProgressEvent):
        queue.put_nowait(event)

    runner.progress.add_listener(on_event)
    entry["watchers"] += 1
    try:
        await websocket.send_json({"type": "session_data", "data": _run_payload(entry)})
        while runner.status in ("idle", "running") or not queue.empty():
            try:
                event = await asyncio.wait_for(queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue
            await websocket.send_json({"type": "update", "data": event.to_json_dict()})
        await websocket.send_json({"type": "done", "data": _run_payload(entry)})
        await websocket.close()
    except WebSocketDisconnect:
        logger.info("WebSocket client for run %s disconnected", run_id)
    finally:
        runner.progress.remove_listener(on_event)
        entry["watchers"] -= 1
        prune_finished_runs()


def main():
    import uvicorn

    logging.basicConfig(level=os.environ.get("QUOTEFLOW_LOG_LEVEL", "INFO"))
    uvicorn.run(app, host=os.environ.get("QUOTEFLOW_HOST", "127.0.0.1"),
                port=int(os.environ.get("QUOTEFLOW_PORT", "8000")))


if __name__ == "__main__":
    main()
