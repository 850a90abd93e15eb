"""
Test: publish notification emails (Resend is monkeypatched, no network).
"""
from teachdash.services import email_service
from teachdash.services.email_service import PlanEmailer, format_week_of


def test_format_week_of():
    assert format_week_of("2026-02-23") == "Feb 23"
    assert format_week_of("") == ""


def test_not_configured(monkeypatch):
    monkeypatch.setattr(email_service, "RESEND_API_KEY", "")
    result = PlanEmailer({}).send_email("p@school.org", "Hi", "<p>x</p>")
    assert result["success"] is False
    assert "No Resend API key" in result["message"]


def test_sends_with_settings_key(monkeypatch):
    sent = []
    monkeypatch.setattr(email_service, "RESEND_API_KEY", "")
    monkeypatch.setattr(email_service.resend.Emails, "send", lambda params: sent.append(params) or {"id": "em_1"})

    emailer = PlanEmailer({"resend_api_key": "re_key", "teacher_email": "t@school.org"})
    result = emailer.send_plan_published("p@school.org", "https://app/plan/tok", "2025-03-10", "R. Shaw")

    assert result == {"success": True, "message": "Email sent to p@school.org", "id": "em_1"}
    assert sent[0]["subject"] == "Lesson Plan Published - Week of Mar 10"
    assert sent[0]["reply_to"] == "t@school.org"
    assert "https://app/plan/tok" in sent[0]["html"]


def test_send_failure_is_reported(monkeypatch):
    def boom(params):
        raise RuntimeError("bad domain")

    monkeypatch.setattr(email_service, "RESEND_API_KEY", "re_key")
    monkeypatch.setattr(email_service.resend.Emails, "send", boom)
    result = PlanEmailer().send_email("p@school.org", "Hi", "<p>x</p>")
    assert result["success"] is False
    assert "bad domain" in result["message"]


def test_missing_id_is_a_failure(monkeypatch):
    monkeypatch.setattr(email_service, "RESEND_API_KEY", "re_key")
    monkeypatch.setattr(email_service.resend.Emails, "send", lambda params: {})
    assert PlanEmailer().send_email("p@school.org", "Hi", "x")["success"] is False
