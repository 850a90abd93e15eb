"""
Test: Lesson plan routes (brainstorm, parse, import, publish, export).
"""
import io

from docx import Document

from teachdash.services import ai_client, email_service

PARSED_WEEK = {
    "days": [
        {"date": "2025-03-10", "activities": [
            {"class_id": 1, "title": "Poetry intro", "activity_type": "Lesson", "material_status": "needs_material"},
            {"class_name": "French", "title": "Greetings", "activity_type": "game"},
            {"class_name": "Art", "title": "No such class"},
        ]},
        {"date": "2025-03-11", "activities": "not a list"},
    ]
}


def _plan(fake_db, **fields):
    row = {"week_of": "2025-03-10", "status": "draft", "brainstorm_history": []}
    row.update(fields)
    return fake_db.table("lesson_plans").insert(row).execute().data[0]


def _docx_bytes(*paragraphs):
    doc = Document()
    for text in paragraphs:
        doc.add_paragraph(text)
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


class TestCrud:
    def test_create_normalizes_to_monday(self, client):
        response = client.post("/api/lesson-plans", json={"week_of": "2025-03-13"})
        assert response.status_code == 201
        assert response.get_json()["week_of"] == "2025-03-10"

    def test_create_returns_existing(self, client, fake_db):
        plan = _plan(fake_db)
        response = client.post("/api/lesson-plans", json={"week_of": "2025-03-12"})
        assert response.status_code == 200
        assert response.get_json()["id"] == plan["id"]
        assert len(fake_db.rows("lesson_plans")) == 1

    def test_create_requires_week(self, client):
        assert client.post("/api/lesson-plans", json={"week_of": "next week"}).status_code == 400

    def test_list_compact(self, client, fake_db):
        _plan(fake_db, brainstorm_history=[{"role": "user", "content": "hi"}])
        listing = client.get("/api/lesson-plans?list=true&all=true").get_json()
        assert listing[0]["message_count"] == 1
        assert listing[0]["activity_count"] == 0

    def test_patch_writers_corner_must_be_object(self, client, fake_db):
        plan = _plan(fake_db)
        response = client.patch(f"/api/lesson-plans/{plan['id']}", json={"writers_corner": "nope"})
        assert response.status_code == 400

    def test_patch_announcements(self, client, fake_db):
        plan = _plan(fake_db)
        response = client.patch(f"/api/lesson-plans/{plan['id']}", json={"announcements": "Fire drill Tuesday"})
        assert response.status_code == 200
        assert fake_db.rows("lesson_plans")[0]["announcements"] == "Fire drill Tuesday"

    def test_get_missing(self, client):
        assert client.get("/api/lesson-plans/999").status_code == 404


class TestBrainstorm:
    def test_first_message_creates_plan(self, client, fake_db, provider):
        provider.queue("Monday: poetry stations. Tuesday: sonnet writing.")
        response = client.post("/api/lesson-plans/brainstorm",
                               json={"message": "Plan a poetry week", "week_of": "2025-03-12"})
        assert response.status_code == 201
        body = response.get_json()
        assert body["created"] is True
        assert [m["role"] for m in body["history"]] == ["user", "assistant"]

        [plan] = fake_db.rows("lesson_plans")
        assert plan["week_of"] == "2025-03-10"
        assert len(plan["brainstorm_history"]) == 2
        assert "Stratford High School" in provider.calls[0]["system"]

    def test_follow_up_appends_history(self, client, fake_db, provider):
        plan = _plan(fake_db, brainstorm_history=[
            {"role": "user", "content": "Plan a poetry week"},
            {"role": "assistant", "content": "Sure."},
        ])
        provider.queue("Added a quiz on Friday.")
        response = client.post("/api/lesson-plans/brainstorm",
                               json={"message": "Add a quiz", "lesson_plan_id": plan["id"]})
        assert response.status_code == 200
        assert len(fake_db.rows("lesson_plans")[0]["brainstorm_history"]) == 4
        assert len(provider.calls[0]["messages"]) == 3

    def test_ai_failure_creates_nothing(self, client, fake_db, provider):
        provider.queue(RuntimeError("model unavailable"))
        response = client.post("/api/lesson-plans/brainstorm",
                               json={"message": "Plan a poetry week", "week_of": "2025-03-12"})
        assert response.status_code == 500
        assert "Brainstorm failed" in response.get_json()["error"]
        assert fake_db.rows("lesson_plans") == []

    def test_missing_api_key_is_400(self, client, fake_db, monkeypatch):
        monkeypatch.setattr(ai_client, "GEMINI_API_KEY", "")
        fake_db.table("settings").update({"value": ""}).eq("key", "gemini_api_key").execute()
        response = client.post("/api/lesson-plans/brainstorm",
                               json={"message": "hi", "week_of": "2025-03-12"})
        assert response.status_code == 400
        assert "API key" in response.get_json()["error"]
        assert fake_db.rows("lesson_plans") == []

    def test_requires_message(self, client):
        assert client.post("/api/lesson-plans/brainstorm", json={"week_of": "2025-03-12"}).status_code == 400


class TestParse:
    def test_empty_history_is_rejected(self, client, fake_db, provider):
        plan = _plan(fake_db)
        response = client.post("/api/lesson-plans/parse", json={"lesson_plan_id": plan["id"]})
        assert response.status_code == 400
        assert "Chat with the AI first" in response.get_json()["error"]
        assert fake_db.rows("activities") == []
        assert provider.calls == []

    def test_parse_replaces_activities(self, client, fake_db, provider, class_ids):
        plan = _plan(fake_db, brainstorm_history=[{"role": "user", "content": "poetry"},
                                                  {"role": "assistant", "content": "ok"}])
        fake_db.table("activities").insert({"class_id": class_ids["English-1"], "lesson_plan_id": plan["id"],
                                            "title": "Old activity"}).execute()
        provider.queue(PARSED_WEEK)

        response = client.post("/api/lesson-plans/parse", json={"lesson_plan_id": plan["id"]})
        assert response.status_code == 200
        body = response.get_json()
        assert body["skipped"] == 1

        titles = sorted(a["title"] for a in fake_db.rows("activities"))
        assert titles == ["Greetings", "Poetry intro"]
        poetry = next(a for a in fake_db.rows("activities") if a["title"] == "Poetry intro")
        assert poetry["material_status"] == "pending"
        assert poetry["activity_type"] == "lesson"
        greetings = next(a for a in fake_db.rows("activities") if a["title"] == "Greetings")
        assert greetings["class_id"] == class_ids["French-1"]
        assert body["days"][1]["activities"] == []

    def test_parse_tags_new_activities(self, client, fake_db, provider):
        fake_db.table("standards").insert({"subject": "English", "grade_band": "9", "code": "9.3.R.4",
                                           "description": "Figurative language"}).execute()
        plan = _plan(fake_db, brainstorm_history=[{"role": "user", "content": "poetry"}])
        provider.queue({"days": [{"date": "2025-03-10", "activities": [{"class_id": 1, "title": "Poetry intro"}]}]},
                       {"codes": ["9.3.R.4"], "reasoning": "figurative language"})

        body = client.post("/api/lesson-plans/parse", json={"lesson_plan_id": plan["id"]}).get_json()
        assert body["tagging"][0]["codes"] == ["9.3.R.4"]
        assert [s["code"] for s in body["activities"][0]["standards"]] == ["9.3.R.4"]

    def test_parse_ignores_malformed_entries(self, client, fake_db, provider, class_ids):
        plan = _plan(fake_db, brainstorm_history=[{"role": "user", "content": "poetry"}])
        provider.queue({"days": [
            "Monday",
            {"date": "next week", "activities": [
                "Poetry intro",
                {"class_id": 1, "title": 42},
                {"class_id": 1, "title": " Haiku ", "activity_type": 3, "material_status": ["x"],
                 "description": {"a": 1}},
            ]},
        ]})
        response = client.post("/api/lesson-plans/parse", json={"lesson_plan_id": plan["id"]})
        assert response.status_code == 200
        assert response.get_json()["skipped"] == 1

        [row] = fake_db.rows("activities")
        assert row["title"] == "Haiku"
        assert row["date"] is None
        assert row["activity_type"] == "lesson"
        assert row["material_status"] == "not_needed"
        assert row["description"] is None

    def test_bad_structure_keeps_old_activities(self, client, fake_db, provider, class_ids):
        plan = _plan(fake_db, brainstorm_history=[{"role": "user", "content": "poetry"}])
        fake_db.table("activities").insert({"class_id": class_ids["English-1"], "lesson_plan_id": plan["id"],
                                            "title": "Old activity"}).execute()
        provider.queue({"weeks": []})
        response = client.post("/api/lesson-plans/parse", json={"lesson_plan_id": plan["id"]})
        assert response.status_code == 500
        assert [a["title"] for a in fake_db.rows("activities")] == ["Old activity"]


class TestImport:
    def test_non_docx_rejected_before_ai(self, client, fake_db, provider):
        response = client.post("/api/lesson-plans/import", data={
            "week_of": "2025-03-10",
            "file": (io.BytesIO(b"plain text"), "plan.txt", "text/plain"),
        }, content_type="multipart/form-data")
        assert response.status_code == 400
        assert provider.calls == []
        assert fake_db.rows("lesson_plans") == []

    def test_requires_week(self, client, provider):
        response = client.post("/api/lesson-plans/import", data={
            "file": (io.BytesIO(b"x"), "plan.docx"),
        }, content_type="multipart/form-data")
        assert response.status_code == 400

    def test_corrupt_docx(self, client, provider):
        response = client.post("/api/lesson-plans/import", data={
            "week_of": "2025-03-10",
            "file": (io.BytesIO(b"definitely not a zip"), "plan.docx"),
        }, content_type="multipart/form-data")
        assert response.status_code == 400
        assert provider.calls == []

    def test_import_creates_plan(self, client, fake_db, provider, class_ids):
        provider.queue({"days": [
            {"day_name": "Tuesday", "activities": [
                {"class_name": "English 1", "title": "Vocabulary quiz", "activity_type": "assessment"},
                {"class_name": "Study Hall", "title": "Silent reading"},
            ]},
        ]})
        data = _docx_bytes("Tuesday", "English 1: Vocabulary quiz over unit 4 words.", "Study Hall: Silent reading")
        response = client.post("/api/lesson-plans/import", data={
            "week_of": "2025-03-12",
            "file": (io.BytesIO(data), "week.docx"),
        }, content_type="multipart/form-data")

        assert response.status_code == 201
        body = response.get_json()
        assert body["activities_created"] == 1
        assert body["unmatched_classes"] == ["Study Hall"]

        [plan] = fake_db.rows("lesson_plans")
        assert plan["status"] == "imported"
        assert plan["week_of"] == "2025-03-10"
        [activity] = fake_db.rows("activities")
        assert activity["date"] == "2025-03-11"
        assert activity["class_id"] == class_ids["English-1"]

    def test_import_ignores_malformed_entries(self, client, fake_db, provider, class_ids):
        provider.queue({"days": [
            "Monday",
            {"day_name": 3, "date": "soon", "activities": [
                "Vocabulary quiz",
                {"class_name": ["English 1"], "title": "Odd class"},
                {"class_name": "French", "title": "Dialogue"},
            ]},
        ]})
        data = _docx_bytes("Monday", "French: Dialogue practice with a partner.")
        response = client.post("/api/lesson-plans/import", data={
            "week_of": "2025-03-10",
            "file": (io.BytesIO(data), "week.docx"),
        }, content_type="multipart/form-data")

        assert response.status_code == 201
        assert response.get_json()["activities_created"] == 1
        [activity] = fake_db.rows("activities")
        assert activity["title"] == "Dialogue"
        assert activity["date"] is None
        assert activity["class_id"] == class_ids["French-1"]


class TestPublish:
    def test_publish_reuses_token(self, client, fake_db):
        plan = _plan(fake_db)
        first = client.post("/api/lesson-plans/publish", json={"lesson_plan_id": plan["id"]}).get_json()
        second = client.post("/api/lesson-plans/publish", json={"lesson_plan_id": plan["id"]}).get_json()
        assert first["token"] == second["token"]
        assert first["url"].endswith(f"/plans/{first['token']}")
        assert fake_db.rows("lesson_plans")[0]["status"] == "published"
        assert first["email_sent"] is False

    def test_publish_emails_principal(self, client, fake_db, monkeypatch):
        sent = []
        monkeypatch.setattr(email_service, "RESEND_API_KEY", "re_test")
        monkeypatch.setattr(email_service.resend.Emails, "send", lambda params: sent.append(params) or {"id": "em_1"})
        fake_db.table("settings").insert({"key": "principal_email", "value": "principal@school.org"}).execute()
        plan = _plan(fake_db)

        body = client.post("/api/lesson-plans/publish", json={"lesson_plan_id": plan["id"]}).get_json()
        assert body["email_sent"] is True
        assert sent[0]["to"] == ["principal@school.org"]
        assert "Mar 10" in sent[0]["subject"]

    def test_publish_missing_plan(self, client):
        assert client.post("/api/lesson-plans/publish", json={"lesson_plan_id": 42}).status_code == 404


class TestSuggestAndExport:
    def test_suggest_requires_activities(self, client, fake_db):
        plan = _plan(fake_db)
        response = client.post("/api/lesson-plans/suggest-standards", json={"lesson_plan_id": plan["id"]})
        assert response.status_code == 400

    def test_suggest_without_gaps(self, client, fake_db, class_ids):
        plan = _plan(fake_db)
        fake_db.table("activities").insert({"class_id": class_ids["English-1"], "lesson_plan_id": plan["id"],
                                            "title": "Essay"}).execute()
        body = client.post("/api/lesson-plans/suggest-standards", json={"lesson_plan_id": plan["id"]}).get_json()
        assert body["suggestions"].startswith("Great news!")

    def test_suggest_with_gaps(self, client, fake_db, provider, class_ids):
        fake_db.table("standards").insert({"subject": "English", "grade_band": "9", "code": "9.6.R.1",
                                           "description": "Research questions"}).execute()
        plan = _plan(fake_db)
        fake_db.table("activities").insert({"class_id": class_ids["English-1"], "lesson_plan_id": plan["id"],
                                            "title": "Essay", "date": "2025-03-10"}).execute()
        provider.queue("1. Add a research mini-lesson on Wednesday.")
        body = client.post("/api/lesson-plans/suggest-standards", json={"lesson_plan_id": plan["id"]}).get_json()
        assert body["suggestions"] == "1. Add a research mini-lesson on Wednesday."
        assert "9.6.R.1 [NEVER COVERED]" in provider.calls[0]["messages"][0]["content"]

    def test_export_html_and_docx(self, client, fake_db, class_ids):
        plan = _plan(fake_db)
        fake_db.table("activities").insert({"class_id": class_ids["English-2"], "lesson_plan_id": plan["id"],
                                            "title": "Socratic seminar", "date": "2025-03-12"}).execute()
        html = client.get(f"/api/lesson-plans/export?lesson_plan_id={plan['id']}")
        assert html.status_code == 200
        assert b"Socratic seminar" in html.data

        docx = client.get(f"/api/lesson-plans/export?id={plan['id']}&format=docx")
        assert docx.status_code == 200
        assert docx.data[:2] == b"PK"

    def test_export_requires_id(self, client):
        assert client.get("/api/lesson-plans/export").status_code == 400
