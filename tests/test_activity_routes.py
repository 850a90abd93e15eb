"""
Test: activity grid edits, bumping, regeneration, standards tags and materials.
"""
import pytest


@pytest.fixture
def english_standards(fake_db):
    return fake_db.table("standards").insert([
        {"code": "9.3.R.1", "description": "Analyze theme", "strand": "Reading", "subject": "English", "grade_band": "9"},
        {"code": "9.3.W.2", "description": "Write arguments", "strand": "Writing", "subject": "English", "grade_band": "9"},
        {"code": "10.3.R.1", "description": "Analyze tone", "strand": "Reading", "subject": "English", "grade_band": "10"},
    ]).execute().data


@pytest.fixture
def activity(fake_db, class_ids):
    return fake_db.table("activities").insert({
        "class_id": class_ids["English-1"], "date": "2025-03-14", "title": "Socratic seminar",
        "description": "Chapters 1-3", "activity_type": "discussion",
    }).execute().data[0]


class TestCrud:
    def test_create(self, client, class_ids):
        response = client.post("/api/activities", json={"class_id": class_ids["French-1"], "date": "2025-03-12",
                                                        "title": " Vocab game ", "activity_type": "GAME"})
        assert response.status_code == 201
        created = response.get_json()
        assert created["title"] == "Vocab game"
        assert created["activity_type"] == "game"
        assert created["class_name"] == "French-1"

    def test_create_validation(self, client, class_ids):
        assert client.post("/api/activities", json={"title": "x"}).status_code == 400
        assert client.post("/api/activities", json={"class_id": class_ids["French-1"], "title": 7}).status_code == 400
        assert client.post("/api/activities", json={"class_id": 99, "title": "x"}).status_code == 400
        response = client.post("/api/activities", json={"class_id": class_ids["French-1"], "title": "x",
                                                        "material_status": "lost"})
        assert response.status_code == 400

    def test_list_filters(self, client, activity, fake_db, class_ids):
        fake_db.table("activities").insert({"class_id": class_ids["French-1"], "date": "2025-03-14",
                                            "title": "Dictée"}).execute()
        by_date = client.get("/api/activities?date=2025-03-14").get_json()
        assert len(by_date) == 2
        by_class = client.get(f"/api/activities?class_id={class_ids['French-1']}").get_json()
        assert [a["title"] for a in by_class] == ["Dictée"]
        assert by_class[0]["standards"] == []
        assert client.get("/api/activities?class_id=abc").status_code == 400

    def test_inline_edit(self, client, activity):
        body = client.patch(f"/api/activities/{activity['id']}", json={
            "is_done": 1, "material_status": "pending", "ignored": "x",
        }).get_json()
        assert body["is_done"] is True
        assert body["material_status"] == "pending"
        assert "ignored" not in body

    def test_edit_validation(self, client, activity):
        url = f"/api/activities/{activity['id']}"
        assert client.patch(url, json={"title": ""}).status_code == 400
        assert client.patch(url, json={"title": None}).status_code == 400
        assert client.patch(url, json={"title": 42}).status_code == 400
        assert client.patch(url, json={"title": ["Vocab game"]}).status_code == 400
        assert client.patch(url, json={"activity_type": "nap"}).status_code == 400
        assert client.patch(url, json={"date": "friday"}).status_code == 400
        assert client.patch(url, json={"class_id": 99}).status_code == 400
        assert client.patch(url, json={}).status_code == 400
        assert client.patch("/api/activities/99", json={"title": "x"}).status_code == 404

    def test_delete_removes_tags(self, client, activity, english_standards, fake_db):
        fake_db.table("activity_standards").insert({"activity_id": activity["id"],
                                                    "standard_id": english_standards[0]["id"]}).execute()
        assert client.delete(f"/api/activities/{activity['id']}").status_code == 200
        assert fake_db.rows("activities") == []
        assert fake_db.rows("activity_standards") == []


class TestBump:
    def test_friday_moves_to_monday(self, client, activity):
        body = client.post(f"/api/activities/{activity['id']}/bump").get_json()
        assert body["bumped_from"] == "2025-03-14"
        assert body["bumped_to"] == "2025-03-17"
        assert body["activity"]["date"] == "2025-03-17"
        assert body["activity"]["moved_to_date"] == "2025-03-17"

    def test_undated_cannot_bump(self, client, fake_db, class_ids):
        undated = fake_db.table("activities").insert({"class_id": class_ids["English-1"], "title": "x"}) \
            .execute().data[0]
        assert client.post(f"/api/activities/{undated['id']}/bump").status_code == 400

    def test_missing(self, client):
        assert client.post("/api/activities/99/bump").status_code == 404


class TestRegenerate:
    def test_replaces_and_retags(self, client, activity, english_standards, provider, fake_db):
        fake_db.table("activity_standards").insert({"activity_id": activity["id"],
                                                    "standard_id": english_standards[0]["id"]}).execute()
        provider.queue(
            {"title": "Argument workshop", "description": "Claims and evidence", "activity_type": "writing"},
            {"codes": ["9.3.W.2"], "reasoning": "Argument writing"},
        )
        body = client.post(f"/api/activities/{activity['id']}/regenerate").get_json()
        assert body["title"] == "Argument workshop"
        assert body["activity_type"] == "writing"
        assert [s["code"] for s in body["standards"]] == ["9.3.W.2"]
        assert "Socratic seminar" in provider.calls[0]["messages"][-1]["content"]

    def test_ai_failure(self, client, activity, provider):
        provider.queue("not json at all")
        assert client.post(f"/api/activities/{activity['id']}/regenerate").status_code == 500


class TestStandardsTags:
    def test_ai_tagging_keeps_known_codes(self, client, activity, english_standards, provider):
        provider.queue({"codes": ["9.3.R.1", "10.3.R.1"], "reasoning": "Theme discussion"})
        body = client.post(f"/api/activities/{activity['id']}/tag-standards").get_json()
        assert [s["code"] for s in body["tagged"]] == ["9.3.R.1"]
        assert body["reasoning"] == "Theme discussion"

    def test_ai_tagging_without_standards(self, client, activity, provider):
        response = client.post(f"/api/activities/{activity['id']}/tag-standards")
        assert response.status_code == 500
        assert "Seed standards first" in response.get_json()["error"]
        assert provider.calls == []

    def test_manual_tag_by_code_and_remove(self, client, activity, english_standards, fake_db):
        response = client.post(f"/api/activities/{activity['id']}/standards", json={"code": "9.3.W.2"})
        assert response.status_code == 201
        assert response.get_json()["tagged_by"] == "manual"

        again = client.post(f"/api/activities/{activity['id']}/standards",
                            json={"standard_id": english_standards[1]["id"]})
        assert again.status_code == 201
        assert len(fake_db.rows("activity_standards")) == 1

        client.delete(f"/api/activities/{activity['id']}/standards/{english_standards[1]['id']}")
        assert fake_db.rows("activity_standards") == []

    def test_manual_tag_errors(self, client, activity):
        url = f"/api/activities/{activity['id']}/standards"
        assert client.post(url, json={}).status_code == 400
        assert client.post(url, json={"code": "nope"}).status_code == 404


class TestMaterials:
    def test_generate_and_download(self, client, activity, provider, fake_db):
        provider.queue({"title": "Seminar Questions", "instructions": "Answer in full sentences.",
                        "questions": ["What is the theme?", "Who changes most?"]})
        response = client.post("/api/materials/generate", json={"activity_id": activity["id"],
                                                                "material_type": "discussion_questions"})
        assert response.status_code == 200
        assert response.get_json()["material"]["title"] == "Seminar Questions"

        stored = fake_db.rows("activities")[0]
        assert stored["material_status"] == "ready"

        download = client.get(f"/api/activities/{activity['id']}/material.docx")
        assert download.status_code == 200
        assert download.data[:2] == b"PK"

    def test_unknown_type(self, client, activity):
        response = client.post("/api/materials/generate", json={"activity_id": activity["id"],
                                                                "material_type": "interpretive_dance"})
        assert response.status_code == 400

    def test_download_without_material(self, client, activity):
        assert client.get(f"/api/activities/{activity['id']}/material.docx").status_code == 404
