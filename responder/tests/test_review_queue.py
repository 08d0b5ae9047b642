"""Tests for the review queue."""

import json

import pytest

from responder.gateway.review_queue import ReviewAction, ReviewQueue


def add_item(queue, thread_id="t1", **kwargs):
    params = {
        "thread_id": thread_id,
        "message_id": f"{thread_id}-m1",
        "template_id": "INTERESTED",
        "confidence": 0.42,
        "reasons": ["needs_human (manual)"],
        "lead_email": "lead@corp.com",
        "body": "Maybe? Call me.",
    }
    params.update(kwargs)
    return queue.add(**params)


class TestReviewQueue:
    """Tests for ReviewQueue"""

    @pytest.fixture
    def queue(self, tmp_path):
        return ReviewQueue(tmp_path / "review_queue.json")

    def test_add_and_get(self, queue):
        item_id = add_item(queue)

        item = queue.get_item(item_id)
        assert len(item_id) == 12
        assert item.status == "pending"
        assert item.reasons == ["needs_human (manual)"]
        assert item.body_excerpt == "Maybe? Call me."
        assert [i.item_id for i in queue.get_pending()] == [item_id]

    def test_body_excerpt_is_truncated(self, queue):
        item_id = add_item(queue, body="x" * 2000)
        assert len(queue.get_item(item_id).body_excerpt) == 500

    @pytest.mark.parametrize("action, status", [
        (ReviewAction.DISMISS, "dismissed"),
        (ReviewAction.TAKE_OVER, "taken_over"),
        ("release", "released"),
    ])
    def test_resolve(self, queue, action, status):
        item_id = add_item(queue)

        item = queue.resolve(item_id, action, reviewer="ops")

        assert item.status == status
        assert item.reviewer == "ops"
        assert item.resolved_at
        assert queue.get_pending() == []

    def test_resolve_twice_raises(self, queue):
        item_id = add_item(queue)
        queue.resolve(item_id, ReviewAction.DISMISS)

        with pytest.raises(ValueError, match="already resolved"):
            queue.resolve(item_id, ReviewAction.RELEASE)

    def test_resolve_unknown(self, queue):
        assert queue.resolve("missing", ReviewAction.DISMISS) is None

    def test_invalid_action(self, queue):
        item_id = add_item(queue)
        with pytest.raises(ValueError):
            queue.resolve(item_id, "approve")

    def test_remove(self, queue):
        item_id = add_item(queue)

        assert queue.remove(item_id) is True
        assert queue.remove(item_id) is False
        assert queue.get_item(item_id) is None

    def test_clear_resolved(self, queue):
        first = add_item(queue, "t1")
        add_item(queue, "t2")
        queue.resolve(first, ReviewAction.DISMISS)

        assert queue.clear_resolved() == 1
        assert [i.thread_id for i in queue.get_pending()] == ["t2"]

    def test_stats(self, queue):
        first = add_item(queue, "t1")
        add_item(queue, "t2")
        queue.resolve(first, ReviewAction.TAKE_OVER)

        stats = queue.get_stats()

        assert stats["total"] == 2
        assert stats["pending"] == 1
        assert stats["taken_over"] == 1

    def test_persistence(self, tmp_path):
        path = tmp_path / "review_queue.json"
        item_id = add_item(ReviewQueue(path))

        reloaded = ReviewQueue(path)

        assert reloaded.get_item(item_id).thread_id == "t1"
        assert json.loads(path.read_text())[0]["item_id"] == item_id

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "review_queue.json"
        path.write_text("{not json")

        assert ReviewQueue(path).get_pending() == []

    def test_memory_only(self, tmp_path):
        queue = ReviewQueue()
        add_item(queue)

        assert len(queue.get_pending()) == 1
        assert list(tmp_path.iterdir()) == []

    def test_format_for_review(self, queue):
        item = queue.get_item(add_item(queue))

        text = queue.format_for_review(item)

        assert f"REVIEW ITEM: {item.item_id}" in text
        assert "  - needs_human (manual)" in text
        assert "ACTIONS: dismiss | take_over | release" in text
