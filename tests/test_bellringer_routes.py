"""
Test: Bellringer routes (generation, slots, batch, library).
"""
import io

from teachdash.services import ai_client

FULL_RESPONSE = {
    "prompts": [
        {"journal_type": "creative", "journal_prompt": "Two strangers are stuck in an elevator."},
        {"journal_type": "quote", "journal_prompt": "'Hope is the thing with feathers.' What is hope to you?"},
        {"journal_type": "would_you_rather", "journal_prompt": "Would you rather fly or be invisible?"},
        {"journal_type": "reflective", "journal_prompt": "What made you proud this week?"},
    ],
    "act_skill": "Apostrophes",
    "act_question": "The <b>dogs</b> bowl was empty.",
    "act_choices": "A. dogs\nB. dog's\nC. dogs'\nD. No change",
    "act_answer": "B",
    "act_rule": "Use an apostrophe to show possession.",
}

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _bellringer(fake_db, date, **fields):
    return fake_db.table("bellringers").insert({"date": date, **fields}).execute().data[0]


class TestGenerate:
    def test_generate_fills_slots_and_act(self, client, fake_db, provider):
        provider.queue(FULL_RESPONSE)
        response = client.post("/api/bellringers/generate", json={"date": "2025-03-12", "notes": "poetry month"})
        assert response.status_code == 200
        body = response.get_json()
        assert [p["slot"] for p in body["prompts"]] == [0, 1, 2, 3]
        assert body["bellringer"]["journal_type"] == "creative"
        assert body["bellringer"]["act_choice_b"] == "B. dog's"
        assert body["bellringer"]["act_correct_answer"] == "B"

    def test_regenerate_overwrites_slots(self, client, fake_db, provider):
        provider.queue(FULL_RESPONSE, FULL_RESPONSE)
        client.post("/api/bellringers/generate", json={"date": "2025-03-12"})
        client.post("/api/bellringers/generate", json={"date": "2025-03-12"})
        assert len(fake_db.rows("bellringers")) == 1
        assert len(fake_db.rows("bellringer_prompts")) == 4

    def test_prompts_only_keeps_act_question(self, client, fake_db, provider):
        _bellringer(fake_db, "2025-03-12", act_question="Keep me", act_skill="Commas")
        provider.queue(FULL_RESPONSE)
        body = client.post("/api/bellringers/generate",
                           json={"date": "2025-03-12", "promptsOnly": True}).get_json()
        assert body["bellringer"]["act_question"] == "Keep me"
        assert body["bellringer"]["journal_type"] == "creative"

    def test_generation_error(self, client, fake_db, provider):
        provider.queue("I'd rather not.")
        response = client.post("/api/bellringers/generate", json={"date": "2025-03-12"})
        assert response.status_code == 500
        assert fake_db.rows("bellringers") == []

    def test_generate_prompt_validates_slot(self, client):
        response = client.post("/api/bellringers/generate-prompt", json={"date": "2025-03-12", "slot": 4})
        assert response.status_code == 400

    def test_generate_prompt_into_slot(self, client, fake_db, provider):
        provider.queue({"journal_type": "debate", "journal_prompt": "Should phones be banned in class?"})
        body = client.post("/api/bellringers/generate-prompt",
                           json={"date": "2025-03-12", "slot": 2, "prompt_type": "debate"}).get_json()
        assert body["prompt"]["slot"] == 2
        assert body["prompt"]["journal_subprompt"] == "WRITE A PARAGRAPH IN YOUR JOURNAL!"

    def test_generate_act(self, client, fake_db, provider):
        provider.queue({"act_skill": "Semicolons", "act_question": "q", "act_choices": "A. a\nB. b\nC. c\nD. d",
                        "act_answer": "A"})
        body = client.post("/api/bellringers/generate-act", json={"date": "2025-03-12"}).get_json()
        assert body["bellringer"]["act_skill"] == "Semicolons"
        assert body["bellringer"]["act_choice_a"] == "A. a"

    def test_generation_requires_iso_date(self, client, fake_db, provider):
        for path, extra in (("/api/bellringers/generate", {}),
                            ("/api/bellringers/generate-act", {}),
                            ("/api/bellringers/generate-prompt", {"slot": 0})):
            for date in ("tomorrow", "3/12/2025", 20250312, ["2025-03-12"]):
                response = client.post(path, json={"date": date, **extra})
                assert response.status_code == 400
        assert provider.calls == []
        assert fake_db.rows("bellringers") == []


class TestImages:
    def _post(self, client, **form):
        data = {"date": "2025-03-12", "slot": "1",
                "image": (io.BytesIO(PNG_BYTES), "sunset.png", "image/png")}
        data.update(form)
        return client.post("/api/bellringers/generate-image-prompt", data=data, content_type="multipart/form-data")

    def test_image_upload_with_prompt(self, client, fake_db, provider):
        provider.queue({"journal_prompt": "Write what happens next."})
        body = self._post(client).get_json()
        assert body["path"].startswith("https://storage.test/")
        assert body["prompt"]["image_path"] == body["path"]
        assert body["prompt"]["journal_type"] == "image"
        assert list(fake_db.storage.files)[0].startswith("bellringers/bellringer_2025-03-12_slot1_")

    def test_image_kept_when_ai_fails(self, client, fake_db, provider):
        provider.queue(*[RuntimeError("vision model down")] * 3)
        response = self._post(client)
        assert response.status_code == 200
        body = response.get_json()
        assert body["generated"] is None
        assert body["prompt"]["image_path"] == body["path"]

    def test_image_only(self, client, fake_db, provider):
        body = self._post(client, generate_prompt="false").get_json()
        assert body["generated"] is None
        assert provider.calls == []

    def test_unsupported_type(self, client, provider):
        response = client.post("/api/bellringers/generate-image-prompt", data={
            "date": "2025-03-12", "slot": "0",
            "image": (io.BytesIO(b"%PDF"), "doc.pdf", "application/pdf"),
        }, content_type="multipart/form-data")
        assert response.status_code == 400

    def test_remove_image(self, client, fake_db):
        bellringer = _bellringer(fake_db, "2025-03-12")
        fake_db.table("bellringer_prompts").insert({"bellringer_id": bellringer["id"], "slot": 1,
                                                    "image_path": "https://x/y.png"}).execute()
        response = client.post("/api/bellringers/remove-image", json={"date": "2025-03-12", "slot": 1})
        assert response.status_code == 200
        assert fake_db.rows("bellringer_prompts")[0]["image_path"] is None

    def test_missing_ai_key_stores_nothing(self, client, fake_db, monkeypatch):
        monkeypatch.setattr(ai_client, "GEMINI_API_KEY", "")
        fake_db.table("settings").delete().eq("key", "gemini_api_key").execute()
        response = self._post(client)
        assert response.status_code == 400
        assert "API key" in response.get_json()["error"]
        assert fake_db.storage.files == {}
        assert fake_db.rows("bellringers") == []

    def test_image_requires_iso_date(self, client, fake_db, provider):
        assert self._post(client, date="next monday").status_code == 400
        assert fake_db.storage.files == {}


class TestBatch:
    def test_weekend_start_rolls_forward_and_skips_existing(self, client, fake_db, provider):
        _bellringer(fake_db, "2025-03-18")
        provider.queue(FULL_RESPONSE, FULL_RESPONSE, "not json", FULL_RESPONSE)

        body = client.post("/api/bellringers/generate-batch", json={"week_of": "2025-03-15"}).get_json()
        assert body["week_of"] == "2025-03-17"
        assert body["summary"] == {"generated": 3, "skipped": 1, "failed": 1}
        assert [r["date"] for r in body["results"]] == [
            "2025-03-17", "2025-03-18", "2025-03-19", "2025-03-20", "2025-03-21",
        ]
        assert body["results"][3]["success"] is False
        assert len(fake_db.rows("bellringer_prompts")) == 12

    def test_invalid_week(self, client):
        assert client.post("/api/bellringers/generate-batch", json={"week_of": "soon"}).status_code == 400


class TestEditing:
    def test_save_mirrors_slot_zero(self, client, fake_db):
        body = client.post("/api/bellringers/save", json={
            "date": "2025-03-12",
            "act_rule": "Edited rule",
            "prompts": [
                {"slot": 1, "journal_type": "list", "journal_prompt": "List five things."},
                {"slot": 0, "journal_type": "poetry", "journal_prompt": "Write a haiku."},
            ],
        }).get_json()
        assert body["bellringer"]["journal_type"] == "poetry"
        assert body["bellringer"]["act_rule"] == "Edited rule"
        assert len(body["prompts"]) == 2

    def test_save_rejects_bad_slot(self, client, fake_db):
        response = client.post("/api/bellringers/save", json={"date": "2025-03-12", "prompts": [{"slot": 7}]})
        assert response.status_code == 400
        assert fake_db.rows("bellringers") == []

    def test_approve(self, client, fake_db):
        _bellringer(fake_db, "2025-03-12")
        body = client.post("/api/bellringers/approve", json={"date": "2025-03-12"}).get_json()
        assert body["bellringer"]["is_approved"] is True
        assert body["bellringer"]["status"] == "approved"

    def test_approve_missing(self, client):
        assert client.post("/api/bellringers/approve", json={"date": "2025-03-12"}).status_code == 404

    def test_reuse_copies_slots_as_draft(self, client, fake_db):
        source = _bellringer(fake_db, "2025-03-03", journal_type="quote", act_question="q",
                             status="approved", is_approved=True)
        fake_db.table("bellringer_prompts").insert([
            {"bellringer_id": source["id"], "slot": 0, "journal_prompt": "A"},
            {"bellringer_id": source["id"], "slot": 3, "journal_prompt": "D"},
        ]).execute()

        body = client.post("/api/bellringers/reuse",
                           json={"source_id": source["id"], "target_date": "2025-03-12"}).get_json()
        assert body["bellringer"]["date"] == "2025-03-12"
        assert body["bellringer"]["status"] == "draft"
        assert body["bellringer"]["is_approved"] is False
        assert body["bellringer"]["act_question"] == "q"
        assert [p["journal_prompt"] for p in body["prompts"]] == ["A", "D"]

    def test_send_to_slot(self, client, fake_db):
        source = _bellringer(fake_db, "2025-03-03")
        prompt = fake_db.table("bellringer_prompts").insert(
            {"bellringer_id": source["id"], "slot": 0, "journal_prompt": "Favorite"}).execute().data[0]
        body = client.post("/api/bellringers/send-to-slot",
                           json={"prompt_id": prompt["id"], "target_date": "2025-03-12", "slot": 2}).get_json()
        assert body["prompt"]["slot"] == 2
        assert body["prompt"]["journal_prompt"] == "Favorite"

    def test_save_rejects_non_object_prompt(self, client, fake_db):
        for prompts in (["Write a haiku."], [None], [{"slot": 0}, 3]):
            response = client.post("/api/bellringers/save", json={"date": "2025-03-12", "prompts": prompts})
            assert response.status_code == 400
        assert fake_db.rows("bellringers") == []

    def test_editing_requires_iso_date(self, client, fake_db):
        source = _bellringer(fake_db, "2025-03-03")
        prompt = fake_db.table("bellringer_prompts").insert(
            {"bellringer_id": source["id"], "slot": 0, "journal_prompt": "Favorite"}).execute().data[0]
        assert client.post("/api/bellringers/save", json={"date": "Wednesday"}).status_code == 400
        assert client.post("/api/bellringers/approve", json={"date": {"day": 12}}).status_code == 400
        assert client.post("/api/bellringers/remove-image", json={"date": "03-12", "slot": 1}).status_code == 400
        response = client.post("/api/bellringers/send-to-slot",
                               json={"prompt_id": prompt["id"], "target_date": "soon", "slot": 2})
        assert response.status_code == 400
        assert len(fake_db.rows("bellringers")) == 1


class TestLibrary:
    def test_library_lists_prompts_with_dates(self, client, fake_db):
        bellringer = _bellringer(fake_db, "2025-03-12", status="approved", is_approved=True)
        fake_db.table("bellringer_prompts").insert({"bellringer_id": bellringer["id"], "slot": 0,
                                                    "journal_prompt": "Hello"}).execute()
        [item] = client.get("/api/bellringers/library").get_json()["prompts"]
        assert item["date"] == "2025-03-12"
        assert item["is_approved"] is True

    def test_edit_and_delete(self, client, fake_db):
        bellringer = _bellringer(fake_db, "2025-03-12")
        prompt = fake_db.table("bellringer_prompts").insert(
            {"bellringer_id": bellringer["id"], "slot": 0, "journal_prompt": "Old"}).execute().data[0]

        body = client.patch(f"/api/bellringers/library/{prompt['id']}", json={"journal_prompt": "New"}).get_json()
        assert body["prompt"]["journal_prompt"] == "New"

        client.delete(f"/api/bellringers/library/{prompt['id']}")
        assert fake_db.rows("bellringer_prompts") == []

    def test_get_for_date_without_bellringer(self, client):
        assert client.get("/api/bellringers/2025-03-12").get_json() == {"bellringer": None, "prompts": []}
