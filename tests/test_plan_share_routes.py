"""
Test: public lesson plan view and the principal comment thread.
"""
import pytest


@pytest.fixture
def published(fake_db, class_ids):
    plan = fake_db.table("lesson_plans").insert({"week_of": "2025-03-10", "status": "published",
                                                 "publish_token": "tok-pub"}).execute().data[0]
    fake_db.table("lesson_plans").insert({"week_of": "2025-03-17", "status": "draft",
                                          "publish_token": "tok-draft"}).execute()
    fake_db.table("activities").insert([
        {"class_id": class_ids["English-1"], "lesson_plan_id": plan["id"], "date": "2025-03-11", "title": "Tuesday"},
        {"class_id": class_ids["English-1"], "lesson_plan_id": plan["id"], "date": "2025-03-10", "title": "Monday"},
    ]).execute()
    return plan


class TestPublishedPlan:
    def test_view(self, client, published):
        body = client.get("/api/plans/tok-pub").get_json()
        assert body["plan"]["id"] == published["id"]
        assert [a["title"] for a in body["activities"]] == ["Monday", "Tuesday"]
        assert body["activities"][0]["class_name"] == "English-1"
        assert body["activities"][0]["standards"] == []
        assert body["school_name"] == "Stratford High School"
        assert body["comments"] == []

    def test_draft_and_unknown_tokens_are_hidden(self, client, published):
        assert client.get("/api/plans/tok-draft").status_code == 404
        assert client.get("/api/plans/nope").status_code == 404
        assert client.get("/api/plans/tok-draft/comments").status_code == 404


class TestComments:
    def test_thread(self, client, published):
        root = client.post("/api/plans/tok-pub/comments", json={"author_name": "Dr. Ames",
                                                                "content": "Nice week."})
        assert root.status_code == 201
        root = root.get_json()
        assert root["author_role"] == "principal"

        reply = client.post("/api/plans/tok-pub/comments", json={
            "author_name": "R. Shaw", "author_role": "teacher", "content": "Thanks!", "parent_id": root["id"],
        }).get_json()
        assert reply["parent_id"] == root["id"]

        comments = client.get("/api/plans/tok-pub/comments").get_json()
        assert [c["content"] for c in comments] == ["Nice week.", "Thanks!"]

    def test_reply_must_belong_to_plan(self, client, published, fake_db):
        other = fake_db.table("lesson_plan_comments").insert({"lesson_plan_id": 999, "author_name": "x",
                                                              "content": "y"}).execute().data[0]
        response = client.post("/api/plans/tok-pub/comments", json={"author_name": "a", "content": "b",
                                                                    "parent_id": other["id"]})
        assert response.status_code == 400

    def test_required_fields(self, client, published):
        assert client.post("/api/plans/tok-pub/comments", json={"author_name": " "}).status_code == 400
        response = client.post("/api/plans/tok-pub/comments", json={"author_name": "a", "content": ["b"]})
        assert response.status_code == 400

    def test_comment_on_draft(self, client, published):
        response = client.post("/api/plans/tok-draft/comments", json={"author_name": "a", "content": "b"})
        assert response.status_code == 404

    def test_edit_and_delete(self, client, published, fake_db):
        comment = client.post("/api/plans/tok-pub/comments", json={"author_name": "a", "content": "b"}).get_json()

        edited = client.patch("/api/plans/tok-pub/comments", json={"comment_id": comment["id"], "content": " c "})
        assert edited.get_json()["content"] == "c"
        missing = client.patch("/api/plans/tok-pub/comments", json={"comment_id": 99, "content": "c"})
        assert missing.status_code == 404

        assert client.delete("/api/plans/tok-pub/comments").status_code == 400
        client.delete(f"/api/plans/tok-pub/comments?comment_id={comment['id']}")
        assert fake_db.rows("lesson_plan_comments") == []
