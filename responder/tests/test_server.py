"""
Tests for the webhook server endpoints

The lifespan is not run: module globals are patched with a real state
store and review queue plus a mocked pipeline and alerter.
"""

import hashlib
import hmac
import json
import logging

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, Mock, patch

from responder.engine.decision import DecisionEngine
from responder.engine.state_store import ConversationStateStore
from responder.gateway import server
from responder.gateway.handlers import ReachinboxHandler, SignWellHandler
from responder.gateway.pipeline import Outcome, PipelineResult
from responder.gateway.review_queue import ReviewQueue

SECRET = "shh"
SIGNWELL_SECRET = "sw-secret"

REPLY = {
    "event": "REPLY_RECEIVED",
    "message_id": "m2",
    "original_message_id": "t1",
    "email_account": "sales@agency.io",
    "lead_email": "lead@corp.com",
    "email_replied_body": "Yes, send it over",
}


def signed_signwell(event_type="document_completed", secret=SIGNWELL_SECRET):
    time = 1700000000
    digest = hmac.new(secret.encode(), f"{event_type}@{time}".encode(), hashlib.sha256).hexdigest()
    return {
        "event": {"type": event_type, "time": time, "hash": digest},
        "data": {"object": {
            "id": "doc-1",
            "name": "Contingency Agreement",
            "recipients": [{"email": "lead@corp.com", "name": "Jane Doe", "status": "completed"}],
        }},
    }


@pytest.fixture
def state():
    store = ConversationStateStore()
    queue = ReviewQueue()

    pipeline = Mock()
    pipeline.handle = AsyncMock(return_value=PipelineResult(Outcome.REPLIED, "m2", "t1", reply_sent=True))
    pipeline.classifier.is_available = True
    pipeline.engine = DecisionEngine()

    alerter = Mock()
    alerter.send_alert = AsyncMock(return_value=True)

    with patch.multiple(
        server,
        store=store,
        review_queue=queue,
        pipeline=pipeline,
        alerter=alerter,
        reachinbox_handler=ReachinboxHandler(webhook_secret=SECRET),
        signwell_handler=SignWellHandler(webhook_secret=SIGNWELL_SECRET),
    ):
        yield Mock(store=store, queue=queue, pipeline=pipeline, alerter=alerter)


@pytest.fixture
def client(state):
    return TestClient(server.app)


def post_reply(client, payload=REPLY, secret=SECRET):
    return client.post(
        "/webhooks/reachinbox",
        content=json.dumps(payload),
        headers={"X-Webhook-Secret": secret, "Content-Type": "application/json"},
    )


def add_review(queue, thread_id="t1"):
    return queue.add(
        thread_id=thread_id,
        message_id="m2",
        template_id="INTERESTED",
        confidence=0.4,
        reasons=["needs_human (manual)"],
        lead_email="lead@corp.com",
        body="Maybe",
    )


class TestHealth:
    def test_health(self, client, state):
        state.store.mark_processed("m1", "t1")
        add_review(state.queue)

        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["initialized"] is True
        assert data["classifier_available"] is True
        assert data["processed_messages"] == 1
        assert data["pending_reviews"] == 1

    def test_health_before_startup(self):
        with patch.multiple(server, pipeline=None, store=None, review_queue=None):
            data = TestClient(server.app).get("/health").json()

        assert data["initialized"] is False
        assert data["processed_messages"] == 0

    def test_stats(self, client):
        data = client.get("/stats").json()

        assert data["engine"]["confidence_threshold"] == 0.70
        assert data["engine"]["depth_limit"] == 2
        assert data["review_queue"]["pending"] == 0
        assert "processed_messages" in data["state"]


class TestReachinboxWebhook:
    def test_reply_is_processed(self, client, state):
        response = post_reply(client)

        assert response.status_code == 200
        assert response.json()["outcome"] == "replied"
        event = state.pipeline.handle.call_args.args[0]
        assert event.message_id == "m2"
        assert event.thread_id == "t1"

    def test_failed_outcome_returns_502(self, client, state):
        state.pipeline.handle.return_value = PipelineResult(Outcome.SEND_FAILED, "m2", "t1", detail="boom")

        response = post_reply(client)

        assert response.status_code == 502
        assert response.json()["outcome"] == "send_failed"

    def test_wrong_secret(self, client, state):
        response = post_reply(client, secret="nope")

        assert response.status_code == 401
        state.pipeline.handle.assert_not_called()

    def test_invalid_json(self, client):
        response = client.post(
            "/webhooks/reachinbox", content=b"{oops", headers={"X-Webhook-Secret": SECRET}
        )
        assert response.status_code == 400

    def test_non_object_body(self, client):
        response = client.post(
            "/webhooks/reachinbox", content=b"[1, 2]", headers={"X-Webhook-Secret": SECRET}
        )
        assert response.status_code == 400

    def test_missing_message_id(self, client):
        response = post_reply(client, {**REPLY, "message_id": ""})
        assert response.status_code == 400

    def test_other_events_are_ignored(self, client, state):
        response = post_reply(client, {**REPLY, "event": "EMAIL_OPENED"})

        assert response.status_code == 200
        assert response.json() == {"ok": True, "ignored": "EMAIL_OPENED"}
        state.pipeline.handle.assert_not_called()

    def test_not_initialized(self, client):
        with patch.object(server, "pipeline", None):
            assert post_reply(client).status_code == 503


class TestSignWellWebhook:
    def test_signed_event_alerts(self, client, state):
        response = client.post("/webhooks/signwell", content=json.dumps(signed_signwell()))

        assert response.status_code == 200
        assert response.json() == {
            "ok": True, "event": "document_completed", "document_id": "doc-1", "alerted": True,
        }
        message, meta = state.alerter.send_alert.call_args.args
        assert message == "Agreement signed: Contingency Agreement"
        assert meta["lead_email"] == "lead@corp.com"

    def test_quiet_event_does_not_alert(self, client, state):
        response = client.post("/webhooks/signwell", content=json.dumps(signed_signwell("document_viewed")))

        assert response.json()["alerted"] is False
        state.alerter.send_alert.assert_not_called()

    def test_bad_hash(self, client, state):
        response = client.post("/webhooks/signwell", content=json.dumps(signed_signwell(secret="other")))

        assert response.status_code == 401
        state.alerter.send_alert.assert_not_called()

    def test_invalid_json_without_secret(self, client):
        with patch.object(server, "signwell_handler", SignWellHandler()):
            response = client.post("/webhooks/signwell", content=b"{oops")

        assert response.status_code == 400


class TestReviewEndpoints:
    def test_list_and_get(self, client, state):
        item_id = add_review(state.queue)

        listing = client.get("/review").json()
        item = client.get(f"/review/{item_id}").json()

        assert listing["pending_count"] == 1
        assert listing["items"][0]["item_id"] == item_id
        assert item["thread_id"] == "t1"
        assert f"REVIEW ITEM: {item_id}" in item["formatted"]

    def test_get_missing(self, client):
        assert client.get("/review/missing").status_code == 404

    def test_take_over_marks_operator_owner(self, client, state):
        item_id = add_review(state.queue)

        response = client.post(f"/review/{item_id}", json={"action": "take_over", "reviewer": "ops"})

        assert response.status_code == 200
        assert response.json()["status"] == "taken_over"
        assert response.json()["manual_owner"] is True
        assert state.store.get_manual_owner_source("t1") == "operator"

    def test_release_clears_owner(self, client, state):
        state.store.mark_manual_owner("t1")
        item_id = add_review(state.queue)

        response = client.post(f"/review/{item_id}", json={"action": "release"})

        assert response.json()["status"] == "released"
        assert response.json()["manual_owner"] is False
        assert state.store.is_manual_owner("t1") is False

    def test_dismiss_leaves_owner(self, client, state):
        state.store.mark_manual_owner("t1")
        item_id = add_review(state.queue)

        response = client.post(f"/review/{item_id}", json={"action": "dismiss"})

        assert response.json()["manual_owner"] is True

    def test_resolve_twice_conflicts(self, client, state):
        item_id = add_review(state.queue)
        client.post(f"/review/{item_id}", json={"action": "dismiss"})

        assert client.post(f"/review/{item_id}", json={"action": "release"}).status_code == 409

    def test_resolve_missing(self, client):
        assert client.post("/review/missing", json={"action": "dismiss"}).status_code == 404

    def test_invalid_action(self, client, state):
        item_id = add_review(state.queue)
        assert client.post(f"/review/{item_id}", json={"action": "approve"}).status_code == 422

    def test_delete(self, client, state):
        item_id = add_review(state.queue)

        assert client.delete(f"/review/{item_id}").json() == {"status": "deleted", "item_id": item_id}
        assert client.delete(f"/review/{item_id}").status_code == 404


class TestLogging:
    def test_configure_logging_writes_under_logs_dir(self, tmp_path):
        cfg = server.ResponderConfig()
        cfg.server.log_level = "debug"

        with patch.object(server, "LOGS_DIR", tmp_path), \
             patch.object(server, "ensure_directories") as ensure, \
             patch("logging.basicConfig") as basic_config:
            log_file = server.configure_logging(cfg)

        ensure.assert_called_once()
        assert log_file == tmp_path / "autoresponder.log"
        kwargs = basic_config.call_args.kwargs
        assert kwargs["level"] == logging.DEBUG
        file_handler = kwargs["handlers"][1]
        assert file_handler.baseFilename == str(log_file)
        file_handler.close()
