"""
Autoresponder Server

FastAPI server receiving campaign and e-signature webhooks.

Endpoints:
- POST /webhooks/reachinbox: Lead replies (REPLY_RECEIVED)
- POST /webhooks/signwell: Agreement document events
- GET /health: Health check
- GET /stats: State and queue statistics
- GET /review: Pending manual reviews
- GET /review/{item_id}: One review item
- POST /review/{item_id}: Resolve (dismiss, take_over, release)
- DELETE /review/{item_id}: Remove a review item

Replies are processed inline so the HTTP status tells the provider whether
to redeliver: 200 for every final outcome, 502 when classification or the
reply send failed.
"""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..common.alerts import SlackAlerter
from ..common.config import LOGS_DIR, ResponderConfig, ensure_directories, load_config
from ..common.esign_client import SignWellClient
from ..common.reachinbox_client import ReachinboxClient
from ..engine.decision import DecisionEngine
from ..engine.state_store import ConversationStateStore
from .classifier import ReplyClassifier
from .handlers import InvalidEventError, ReachinboxHandler, SignWellHandler
from .pipeline import ReplyPipeline
from .review_queue import ReviewAction, ReviewQueue

logger = logging.getLogger("autoresponder.gateway.server")


# Global state
config: Optional[ResponderConfig] = None
store: Optional[ConversationStateStore] = None
pipeline: Optional[ReplyPipeline] = None
review_queue: Optional[ReviewQueue] = None
reachinbox_handler: Optional[ReachinboxHandler] = None
signwell_handler: Optional[SignWellHandler] = None
alerter: Optional[SlackAlerter] = None


def build_pipeline(cfg: ResponderConfig) -> ReplyPipeline:
    """Wire the pipeline and its collaborators from configuration"""
    queue_path = cfg.server.review_queue_path
    engine = DecisionEngine(
        confidence_threshold=cfg.engine.confidence_threshold,
        agreement_threshold=cfg.engine.agreement_threshold,
        depth_limit=cfg.engine.depth_limit,
        process_thread_id_collisions=cfg.engine.process_thread_id_collisions,
    )
    return ReplyPipeline(
        store=ConversationStateStore(),
        engine=engine,
        classifier=ReplyClassifier.from_config(cfg.llm),
        reachinbox=ReachinboxClient.from_config(cfg.reachinbox),
        esign=SignWellClient.from_config(cfg.esign),
        alerter=SlackAlerter.from_config(cfg.slack),
        review_queue=ReviewQueue(Path(queue_path) if queue_path else None),
        engine_config=cfg.engine,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize components on startup"""
    global config, store, pipeline, review_queue, reachinbox_handler, signwell_handler, alerter

    logger.info("Starting up...")
    ensure_directories()
    config = load_config()

    pipeline = build_pipeline(config)
    store = pipeline.store
    review_queue = pipeline.review_queue
    alerter = pipeline.alerter

    if not pipeline.classifier.is_available:
        logger.warning("Classifier unavailable (%s): every reply will fail classification", config.llm.provider)
    if not pipeline.reachinbox.is_configured:
        logger.warning("Reachinbox not configured: replies cannot be sent")
    if not pipeline.esign.is_configured:
        logger.warning("SignWell not configured: agreements cannot be sent")

    reachinbox_handler = ReachinboxHandler(webhook_secret=config.reachinbox.webhook_secret)
    signwell_handler = SignWellHandler(webhook_secret=config.esign.webhook_secret)

    logger.info("Review queue: %d pending", review_queue.get_stats()["pending"])
    logger.info(
        "Ready (threshold: %.2f, agreement threshold: %.2f)",
        config.engine.confidence_threshold, config.engine.agreement_threshold,
    )

    yield

    logger.info("Shutting down...")
    await pipeline.reachinbox.close()
    await pipeline.esign.close()
    await pipeline.alerter.close()


app = FastAPI(
    title="Autoresponder",
    description="Automated answers to cold-outreach replies",
    version="0.1.0",
    lifespan=lifespan,
)


# =============================================================================
# Request Models
# =============================================================================

class ReviewSubmission(BaseModel):
    """Review resolution request"""
    action: ReviewAction
    reviewer: Optional[str] = None


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "autoresponder",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "initialized": pipeline is not None,
        "classifier_available": pipeline.classifier.is_available if pipeline else False,
        "processed_messages": store.stats()["processed_messages"] if store else 0,
        "pending_reviews": review_queue.get_stats()["pending"] if review_queue else 0,
    }


@app.post("/webhooks/reachinbox")
async def reachinbox_webhook(
    request: Request,
    x_webhook_secret: Optional[str] = Header(None),
):
    """Handle a Reachinbox campaign event"""
    if not reachinbox_handler or not pipeline:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")

    body = await request.body()
    if not reachinbox_handler.verify_signature(body, x_webhook_secret or ""):
        raise HTTPException(status_code=401, detail="Invalid webhook secret")

    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Expected a JSON object")

    try:
        event = reachinbox_handler.parse_event(data)
    except InvalidEventError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if event is None:
        return JSONResponse({"ok": True, "ignored": data.get("event")})

    result = await pipeline.handle(event)
    return JSONResponse(result.to_dict(), status_code=result.http_status)


@app.post("/webhooks/signwell")
async def signwell_webhook(request: Request):
    """Handle a SignWell document event"""
    if not signwell_handler or not alerter:
        raise HTTPException(status_code=503, detail="Handler not initialized")

    body = await request.body()
    if not signwell_handler.verify_signature(body):
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Expected a JSON object")

    event = signwell_handler.parse_event(data)
    if event is None:
        return JSONResponse({"ok": True, "ignored": True})

    alert = signwell_handler.alert_for(event)
    if alert:
        message, metadata = alert
        await alerter.send_alert(message, metadata)

    return JSONResponse({
        "ok": True,
        "event": event.event_type,
        "document_id": event.document_id,
        "alerted": alert is not None,
    })


@app.get("/review")
async def get_reviews():
    """Get pending reviews"""
    if not review_queue:
        raise HTTPException(status_code=503, detail="Review queue not initialized")

    pending = review_queue.get_pending()
    return {
        "pending_count": len(pending),
        "items": [
            {
                "item_id": item.item_id,
                "thread_id": item.thread_id,
                "lead_email": item.lead_email,
                "template_id": item.template_id,
                "confidence": item.confidence,
                "reasons": item.reasons,
                "created_at": item.created_at,
            }
            for item in pending
        ],
    }


@app.get("/review/{item_id}")
async def get_review_item(item_id: str):
    """Get a specific review item"""
    if not review_queue:
        raise HTTPException(status_code=503, detail="Review queue not initialized")

    item = review_queue.get_item(item_id)
    if not item:
        raise HTTPException(status_code=404, detail="Item not found")

    return {
        "item_id": item.item_id,
        "thread_id": item.thread_id,
        "message_id": item.message_id,
        "lead_email": item.lead_email,
        "template_id": item.template_id,
        "confidence": item.confidence,
        "reasons": item.reasons,
        "status": item.status,
        "created_at": item.created_at,
        "formatted": review_queue.format_for_review(item),
    }


@app.post("/review/{item_id}")
async def submit_review(item_id: str, submission: ReviewSubmission):
    """Resolve a review item and apply the action to the thread"""
    if not review_queue or not store:
        raise HTTPException(status_code=503, detail="Review queue not initialized")

    try:
        item = review_queue.resolve(item_id, submission.action, reviewer=submission.reviewer)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")

    if submission.action == ReviewAction.TAKE_OVER:
        store.mark_manual_owner(item.thread_id, source="operator")
    elif submission.action == ReviewAction.RELEASE:
        store.reset_manual_owner(item.thread_id)

    return {
        "status": item.status,
        "item_id": item_id,
        "thread_id": item.thread_id,
        "manual_owner": store.is_manual_owner(item.thread_id),
    }


@app.delete("/review/{item_id}")
async def delete_review(item_id: str):
    """Delete a review item"""
    if not review_queue:
        raise HTTPException(status_code=503, detail="Review queue not initialized")

    if not review_queue.remove(item_id):
        raise HTTPException(status_code=404, detail="Item not found")

    return {"status": "deleted", "item_id": item_id}


@app.get("/stats")
async def get_stats():
    """Get autoresponder statistics"""
    stats = {
        "service": "autoresponder",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    if store:
        stats["state"] = store.stats()

    if review_queue:
        stats["review_queue"] = review_queue.get_stats()

    if pipeline:
        stats["engine"] = {
            "confidence_threshold": pipeline.engine.confidence_threshold,
            "agreement_threshold": pipeline.engine.agreement_threshold,
            "depth_limit": pipeline.engine.depth_limit,
            "classifier_available": pipeline.classifier.is_available,
        }

    return stats


# =============================================================================
# CLI Entry Point
# =============================================================================

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_FILE_NAME = "autoresponder.log"


def configure_logging(cfg: ResponderConfig) -> Path:
    """Log to stderr and to the log file under LOGS_DIR; returns the file path"""
    ensure_directories()
    log_file = LOGS_DIR / LOG_FILE_NAME
    logging.basicConfig(
        level=getattr(logging, cfg.server.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(), logging.FileHandler(log_file)],
    )
    return log_file


def run_server():
    """Run the autoresponder server"""
    import uvicorn

    cfg = load_config()
    log_file = configure_logging(cfg)

    logger.info("Starting server on port %d (log file: %s)", cfg.server.port, log_file)
    uvicorn.run(
        "responder.gateway.server:app",
        host=cfg.server.host,
        port=cfg.server.port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
