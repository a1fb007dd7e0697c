import csv
import io

import pytest

import main
from conftest import GOOD_TEXT, make_reply
from errors import UpstreamRateLimited
from models import AnalysisResult, Resume, UsageLog, User


def upload(name="jane.txt", text=GOOD_TEXT, content_type="text/plain"):
    return (name, text.encode("utf-8"), content_type)


@pytest.fixture
def alice(make_user):
    return make_user("alice")


def test_signup_and_login(client):
    response = client.post(
        "/signup",
        json={"username": "bob", "email": "Bob@Example.com", "password": "hunter22"},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "bob@example.com"
    assert body["subscription_plan"] == "free"
    assert body["monthly_analysis_limit"] == 5

    duplicate = client.post(
        "/signup", json={"username": "bob", "email": "other@example.com", "password": "hunter22"}
    )
    assert duplicate.status_code == 400

    token = client.post("/login", data={"username": "bob", "password": "hunter22"})
    assert token.status_code == 200
    headers = {"Authorization": f"Bearer {token.json()['access_token']}"}
    assert client.get("/me", headers=headers).json()["username"] == "bob"

    assert client.post("/login", data={"username": "bob", "password": "nope"}).status_code == 401


def test_routes_require_a_token(client):
    missing = client.get("/analyses")
    assert missing.status_code == 401
    assert missing.json() == {"error": "Please sign in to analyze resumes"}
    assert missing.headers["www-authenticate"] == "Bearer"
    assert client.post("/analyze", files={"file": upload()}).status_code == 401

    forged = client.get("/analyses", headers={"Authorization": "Bearer not-a-jwt"})
    assert forged.status_code == 401
    assert forged.json() == {"error": "Could not validate credentials"}


def test_signup_grants_admin_to_configured_emails(client, monkeypatch):
    monkeypatch.setattr(main, "ADMIN_EMAILS", {"boss@example.com"})
    for username, email in (("boss", "Boss@Example.com"), ("pleb", "pleb@example.com")):
        client.post("/signup", json={"username": username, "email": email, "password": "hunter22"})

    def stats_status(username):
        token = client.post("/login", data={"username": username, "password": "hunter22"})
        headers = {"Authorization": f"Bearer {token.json()['access_token']}"}
        return client.get("/admin/stats", headers=headers).status_code

    assert stats_status("boss") == 200
    assert stats_status("pleb") == 403


def test_single_analysis(client, alice, auth_headers, chat_client):
    chat_client.replies = [make_reply(score=72)]
    response = client.post("/analyze", files={"file": upload()}, headers=auth_headers(alice))

    assert response.status_code == 200
    body = response.json()
    assert body["credibility_score"] == 72
    assert body["risk_level"] == "medium"
    assert body["file_name"] == "jane.txt"
    assert len(chat_client.calls) == 1

    quota = client.get("/me/quota", headers=auth_headers(alice)).json()
    assert quota == {"plan": "free", "used": 1, "limit": 5, "remaining": 4}


def test_infinite_score_falls_back_instead_of_failing(client, alice, auth_headers, chat_client):
    chat_client.replies = ['{"credibility_score": Infinity, "summary": "broken"}']
    response = client.post("/analyze", files={"file": upload()}, headers=auth_headers(alice))

    assert response.status_code == 200
    assert response.json()["credibility_score"] == 50
    assert response.json()["risk_level"] == "medium"


def test_short_resume_is_rejected(client, alice, auth_headers, chat_client):
    response = client.post(
        "/analyze", files={"file": upload(text="tiny")}, headers=auth_headers(alice)
    )
    assert response.status_code == 422
    assert response.json() == {"error": "Could not extract enough text from this file"}
    assert chat_client.calls == []


def test_unsupported_type_is_rejected(client, alice, auth_headers):
    response = client.post(
        "/analyze",
        files={"file": ("cv.png", b"\x89PNG", "image/png")},
        headers=auth_headers(alice),
    )
    assert response.status_code == 400


def test_upstream_rate_limit_maps_to_429(client, alice, auth_headers, chat_client, db_session):
    chat_client.replies = [UpstreamRateLimited()]
    response = client.post("/analyze", files={"file": upload()}, headers=auth_headers(alice))

    assert response.status_code == 429
    assert response.json() == {"error": "Rate limit exceeded. Please try again later."}
    assert db_session.query(Resume).count() == 0


def test_single_analysis_respects_quota(client, make_user, auth_headers, chat_client):
    capped = make_user("capped", monthly_analysis_count=5)
    response = client.post("/analyze", files={"file": upload()}, headers=auth_headers(capped))
    assert response.status_code == 403
    assert chat_client.calls == []


def test_batch_reports_each_file(client, alice, auth_headers, chat_client, sleeps, sender):
    chat_client.replies = [make_reply(score=90), make_reply(score=20)]
    files = [
        ("files", upload("a.txt")),
        ("files", upload("b.txt", GOOD_TEXT + " more")),
        ("files", upload("c.txt", "short")),
        ("files", ("d.png", b"png", "image/png")),
    ]
    response = client.post("/analyze/batch", files=files, headers=auth_headers(alice))

    assert response.status_code == 200
    body = response.json()
    assert [f["status"] for f in body["files"]] == ["complete", "complete", "error"]
    assert body["files"][0]["result"]["risk_level"] == "low"
    assert body["files"][1]["result"]["risk_level"] == "high"
    assert body["files"][2]["error"] == "Could not extract enough text from this file"
    assert body["counts"] == {
        "total": 3,
        "pending": 0,
        "analyzing": 0,
        "complete": 2,
        "error": 1,
        "progress_percent": 100.0,
    }
    assert body["skipped"][0]["file_name"] == "d.png"
    assert sleeps == [1.0, 1.0]
    assert len(sender.sent) == 1


def test_batch_over_quota_does_nothing(client, make_user, auth_headers, chat_client, db_session):
    user = make_user("nearly", monthly_analysis_count=4)
    files = [("files", upload("a.txt")), ("files", upload("b.txt", GOOD_TEXT + "!"))]
    response = client.post("/analyze/batch", files=files, headers=auth_headers(user))

    assert response.status_code == 403
    assert response.json() == {"error": "You have 1 analyses remaining but selected 2 files."}
    assert chat_client.calls == []
    assert db_session.query(Resume).count() == 0


def analyze(client, headers, chat_client, name, score):
    chat_client.replies = [make_reply(score=score, summary=f"Summary for {name}")]
    response = client.post("/analyze", files={"file": upload(name)}, headers=headers)
    assert response.status_code == 200
    return response.json()


def test_history_filter_compare_and_export(client, alice, auth_headers, chat_client, db_session):
    headers = auth_headers(alice)
    first = analyze(client, headers, chat_client, "first.txt", 85)
    second = analyze(client, headers, chat_client, "second.txt", 30)

    history = client.get("/analyses", headers=headers).json()
    assert [a["file_name"] for a in history] == ["second.txt", "first.txt"]

    high = client.get("/analyses", params={"risk_level": "high"}, headers=headers).json()
    assert [a["id"] for a in high] == [second["id"]]

    found = client.get("/analyses", params={"search": "FIRST"}, headers=headers).json()
    assert [a["id"] for a in found] == [first["id"]]

    comparison = client.get(
        "/analyses/compare", params={"a": first["id"], "b": second["id"]}, headers=headers
    ).json()
    assert comparison["higher"] == "A"
    assert comparison["score_difference"] == 55

    export = client.get("/analyses/export", headers=headers)
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert "resume-analyses-" in export.headers["content-disposition"]
    rows = list(csv.reader(io.StringIO(export.text)))
    assert rows[0][0] == "File Name"
    assert {r[0] for r in rows[1:]} == {"first.txt", "second.txt"}

    actions = {log.action for log in db_session.query(UsageLog).all()}
    assert {"resume_analysis", "compare_resumes", "export_csv"} <= actions


def test_other_users_cannot_see_analyses(client, alice, make_user, auth_headers, chat_client):
    mine = analyze(client, auth_headers(alice), chat_client, "mine.txt", 85)
    mallory = make_user("mallory")

    assert client.get(f"/analyses/{mine['id']}", headers=auth_headers(mallory)).status_code == 404
    assert client.get("/analyses", headers=auth_headers(mallory)).json() == []
    assert (
        client.delete(f"/resumes/{mine['resume_id']}", headers=auth_headers(mallory)).status_code
        == 404
    )


def test_deleting_resume_removes_its_analysis(client, alice, auth_headers, chat_client, db_session):
    result = analyze(client, auth_headers(alice), chat_client, "gone.txt", 85)
    response = client.delete(f"/resumes/{result['resume_id']}", headers=auth_headers(alice))

    assert response.status_code == 204
    db_session.expire_all()
    assert db_session.get(AnalysisResult, result["id"]) is None


def test_usage_tracking(client, alice, auth_headers, db_session):
    headers = auth_headers(alice)
    ok = client.post("/usage", json={"action": "page_view", "metadata": {"page": "dashboard"}}, headers=headers)
    assert ok.status_code == 204
    assert client.post("/usage", json={"action": "hack"}, headers=headers).status_code == 400

    log = db_session.query(UsageLog).one()
    assert log.details == {"page": "dashboard"}


def test_profile_update(client, alice, auth_headers):
    response = client.patch(
        "/me", json={"full_name": "  Alice Liddell ", "high_risk_alerts": False}, headers=auth_headers(alice)
    )
    assert response.status_code == 200
    assert response.json()["full_name"] == "Alice Liddell"
    assert response.json()["high_risk_alerts"] is False

    too_long = client.patch("/me", json={"full_name": "x" * 101}, headers=auth_headers(alice))
    assert too_long.status_code == 422


def test_delete_account_removes_everything(client, alice, auth_headers, chat_client, db_session):
    headers = auth_headers(alice)
    analyze(client, headers, chat_client, "a.txt", 85)
    client.post("/workspaces", json={"name": "Hiring"}, headers=headers)

    assert client.delete("/me", headers=headers).status_code == 204

    db_session.expire_all()
    assert db_session.query(User).filter(User.username == "alice").first() is None
    assert db_session.query(Resume).count() == 0
    assert db_session.query(AnalysisResult).count() == 0
    assert db_session.query(UsageLog).count() == 0
    assert client.get("/me", headers=headers).status_code == 401
