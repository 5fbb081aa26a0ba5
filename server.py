"""FastAPI backend for Listing Guard.

Wraps the listing_review/ package as REST API endpoints.
"""

import json
import os
import threading
import traceback
from pathlib import Path
from queue import Empty, Queue
from typing import Optional, Union

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

# Ensure .env is loaded before importing listing_review
BASE_DIR = Path(__file__).parent
_env_path = BASE_DIR / ".env"
if _env_path.exists():
    for _line in _env_path.read_text().splitlines():
        _line = _line.strip()
        if _line and not _line.startswith("#") and "=" in _line:
            _k, _, _v = _line.partition("=")
            os.environ.setdefault(_k.strip(), _v.strip().strip("\"'"))

from listing_review.config import (
    ANTHROPIC_API_KEY,
    LLM_MODEL,
    LLM_FALLBACK_MODELS,
    AI_TIMEOUT_SECONDS,
    POLICY_MATCH_THRESHOLD,
    POLICY_FLAG_THRESHOLD,
)
from listing_review.analysis import ClaudeAugmenter
from listing_review.database import DatabaseStore, enqueue_sections, job_progress, list_jobs, run_worker
from listing_review.extractors import DataUnavailableError, FileStore, compose_listing_text
from listing_review.pipeline import ListingValidationError, run_analysis

app = FastAPI(title="Listing Guard API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("CORS_ORIGINS", "http://localhost:5173").split(","),
    allow_methods=["*"],
    allow_headers=["*"],
)


class ListingRequest(BaseModel):
    title: str = ""
    description: str = ""
    tags: Union[str, list[str]] = ""
    category: str = ""
    price: Union[str, float, None] = ""
    text: str = ""
    use_ai: bool = True

    def listing_text(self) -> str:
        if self.text.strip():
            return self.text
        return compose_listing_text(
            title=self.title,
            description=self.description,
            tags=self.tags,
            category=self.category,
            price=self.price,
        )


class RawSection(BaseModel):
    title: str
    content: str
    category: str = ""


class EnqueueRequest(BaseModel):
    sections: list[RawSection] = Field(default_factory=list)


class WorkerRequest(BaseModel):
    max_jobs: Optional[int] = Field(default=None, ge=1)


# ---------------------------------------------------------------------------
# Dependencies, overridable in tests
# ---------------------------------------------------------------------------
def get_store():
    return DatabaseStore(FileStore())


def get_augmenter():
    if not ANTHROPIC_API_KEY:
        return None
    return ClaudeAugmenter(models=LLM_FALLBACK_MODELS)


def _augmenter_for(req: ListingRequest, augmenter, store):
    if not req.use_ai or augmenter is None:
        return None
    if isinstance(augmenter, ClaudeAugmenter) and not augmenter.policy_sections:
        try:
            augmenter.policy_sections = tuple(store.fetch_policy_sections())
        except (OSError, ValueError) as e:
            print(f"  Policy sections unavailable for AI prompt: {e}")
    return augmenter


# ---------------------------------------------------------------------------
# GET /api/config: LLM availability and thresholds
# ---------------------------------------------------------------------------
@app.get("/api/config")
def api_config():
    return {
        "llm_available": bool(ANTHROPIC_API_KEY),
        "llm_model": LLM_MODEL,
        "llm_fallback_models": list(LLM_FALLBACK_MODELS),
        "ai_timeout_seconds": AI_TIMEOUT_SECONDS,
        "policy_match_threshold": POLICY_MATCH_THRESHOLD,
        "policy_flag_threshold": POLICY_FLAG_THRESHOLD,
    }


# ---------------------------------------------------------------------------
# POST /api/analyze: Analyze one listing
# ---------------------------------------------------------------------------
@app.post("/api/analyze")
def api_analyze(req: ListingRequest, store=Depends(get_store), augmenter=Depends(get_augmenter)):
    try:
        report, metadata = run_analysis(
            req.listing_text(), store, augmenter=_augmenter_for(req, augmenter, store),
        )
    except ListingValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DataUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return {"metadata": metadata, **report.to_payload()}


# ---------------------------------------------------------------------------
# POST /api/analyze/stream: Analysis with SSE progress stream
# ---------------------------------------------------------------------------
@app.post("/api/analyze/stream")
def api_analyze_stream(req: ListingRequest, store=Depends(get_store), augmenter=Depends(get_augmenter)):
    listing_text = req.listing_text()
    if not listing_text.strip():
        raise HTTPException(status_code=400, detail="Listing text is empty")

    q: Queue = Queue()
    cancel = threading.Event()

    def run_in_thread():
        try:
            def progress_callback(step, total, msg):
                q.put({"type": "progress", "step": step, "total": total, "message": msg})

            report, metadata = run_analysis(
                listing_text, store,
                augmenter=_augmenter_for(req, augmenter, store),
                cancel_event=cancel,
                progress_callback=progress_callback,
            )
            q.put({"type": "complete", "data": {"metadata": metadata, **report.to_payload()}})
        except Exception as e:
            q.put({"type": "error", "message": str(e), "traceback": traceback.format_exc()})

    thread = threading.Thread(target=run_in_thread, daemon=True)
    thread.start()

    def event_stream():
        try:
            while True:
                try:
                    event = q.get(timeout=15)
                except Empty:
                    # Keepalive while the AI call is in flight
                    yield ": keepalive\n\n"
                    if not thread.is_alive():
                        yield "data: {\"type\": \"error\", \"message\": \"Analysis thread died unexpectedly\"}\n\n"
                        break
                    continue
                yield f"data: {json.dumps(event)}\n\n"
                if event["type"] in ("complete", "error"):
                    break
        finally:
            # Client went away or stream finished; stop waiting on the AI call.
            cancel.set()

    return StreamingResponse(event_stream(), media_type="text/event-stream")


# ---------------------------------------------------------------------------
# GET /api/jobs: Policy section queue progress
# ---------------------------------------------------------------------------
@app.get("/api/jobs")
def api_jobs(status: Optional[str] = None):
    return {"progress": job_progress(), "jobs": list_jobs(status)}


# ---------------------------------------------------------------------------
# POST /api/jobs: Queue raw policy sections for summarization
# ---------------------------------------------------------------------------
@app.post("/api/jobs")
def api_enqueue_jobs(req: EnqueueRequest):
    if not req.sections:
        raise HTTPException(status_code=400, detail="Provide at least one section")
    added = enqueue_sections(s.model_dump() for s in req.sections)
    return {"queued": added, "progress": job_progress()}


# ---------------------------------------------------------------------------
# POST /api/jobs/run: Start the single background worker
# ---------------------------------------------------------------------------
_worker_lock = threading.Lock()


@app.post("/api/jobs/run")
def api_run_worker(req: WorkerRequest):
    if not ANTHROPIC_API_KEY:
        raise HTTPException(status_code=503, detail="ANTHROPIC_API_KEY is not configured")
    if not _worker_lock.acquire(blocking=False):
        raise HTTPException(status_code=409, detail="Worker already running")

    def _background_worker():
        try:
            stats = run_worker(max_jobs=req.max_jobs)
            print(f"  Section worker finished: {stats}")
        except Exception as e:
            print(f"  Section worker crashed: {e}")
        finally:
            _worker_lock.release()

    threading.Thread(target=_background_worker, daemon=True).start()
    return {"status": "started", "progress": job_progress()}
