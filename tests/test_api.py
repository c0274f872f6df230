"""Superficie HTTP: auth, flujo del mentee, revisión del mentor y endpoints del dashboard."""


def _start_and_submit(client, headers, quest_id=1):
    response = client.post(f"/quests/{quest_id}/start", headers=headers)
    assert response.status_code == 200
    response = client.post(f"/quests/{quest_id}/submit", headers=headers, json={
        "evidence_links": ["https://example.com/proof.png"],
        "reflection": "Password manager set up",
    })
    assert response.status_code == 200
    return response.json()["id"]


class TestAuth:

    def test_health(self, client):
        assert client.get("/").json()["status"] == "ok"

    def test_invalid_access_token(self, client):
        assert client.post("/auth/token", json={"token": "nope"}).status_code == 401

    def test_roles(self, client, mentee_headers, mentor_headers):
        assert client.get("/submissions", headers=mentor_headers).status_code == 200
        assert client.get("/submissions", headers=mentee_headers).status_code == 403

    def test_bearer_required(self, client):
        assert client.get("/stats").status_code in (401, 403)
        assert client.get("/stats", headers={"Authorization": "Bearer garbage"}).status_code == 401


class TestQuestFlow:

    def test_catalog_lists_progress(self, client, mentee_headers):
        quests = client.get("/quests", headers=mentee_headers).json()
        assert len(quests) == 5
        assert quests[0]["status"] == "available"
        assert quests[4]["is_unlocked"] is False

    def test_quest_detail_has_safety_reminder(self, client, mentee_headers):
        data = client.get("/quests/1", headers=mentee_headers).json()
        assert data["category"] == "Security"
        assert data["safety_reminder"]
        assert client.get("/quests/4", headers=mentee_headers).json()["safety_reminder"] is None

    def test_invalid_evidence_url_is_rejected(self, client, mentee_headers):
        client.post("/quests/1/start", headers=mentee_headers)
        response = client.post("/quests/1/submit", headers=mentee_headers,
                               json={"evidence_links": ["not a url"]})
        assert response.status_code == 422

    def test_state_conflict_maps_to_409(self, client, mentee_headers):
        client.post("/quests/1/start", headers=mentee_headers)
        response = client.post("/quests/1/start", headers=mentee_headers)
        assert response.status_code == 409
        assert response.json()["type"] == "AlreadyStarted"
        assert response.json()["retryable"] is False

    def test_locked_quest(self, client, mentee_headers):
        response = client.post("/quests/5/start", headers=mentee_headers)
        assert response.status_code == 409
        assert response.json()["type"] == "QuestLocked"

    def test_approve_flow(self, client, mentee_headers, mentor_headers):
        progress_id = _start_and_submit(client, mentee_headers)

        pending = client.get("/submissions", headers=mentor_headers).json()
        assert [p["id"] for p in pending] == [progress_id]

        response = client.post(f"/submissions/{progress_id}", headers=mentor_headers,
                               json={"action": "approve", "feedback": "Nice"})
        assert response.status_code == 200
        result = response.json()
        assert result["xpAwarded"] == 125
        assert result["baseXp"] == 100
        assert result["bonusBreakdown"] == [
            {"type": "first_daily", "name": "First Quest of the Day", "amount": 25}
        ]
        assert result["newStreak"] == 1
        assert result["achievementsPending"] is False
        assert any(a["type"] == "achievement" for a in result["achievementsUnlocked"])

        again = client.post(f"/submissions/{progress_id}", headers=mentor_headers,
                            json={"action": "approve", "feedback": ""})
        assert again.status_code == 409

        stats = client.get("/stats", headers=mentee_headers).json()
        assert stats["totalXp"] == result["newTotalXp"]
        assert stats["quests"]["completed"] == 1
        assert stats["streak"]["status"] == "active"
        assert stats["reward"]["current"] == 1

    def test_reject_flow(self, client, mentee_headers, mentor_headers):
        progress_id = _start_and_submit(client, mentee_headers)
        response = client.post(f"/submissions/{progress_id}", headers=mentor_headers,
                               json={"action": "reject", "feedback": "Blur the email"})
        assert response.json()["status"] == "rejected"

        quest = client.get("/quests/1", headers=mentee_headers).json()
        assert quest["status"] == "in_progress"
        assert quest["progress"]["mentor_feedback"] == "Blur the email"

    def test_mentee_cannot_review(self, client, mentee_headers):
        progress_id = _start_and_submit(client, mentee_headers)
        response = client.post(f"/submissions/{progress_id}", headers=mentee_headers,
                               json={"action": "approve"})
        assert response.status_code == 403


class TestMentorCatalog:

    def test_create_and_edit(self, client, mentor_headers):
        response = client.post("/quests", headers=mentor_headers, json={
            "title": "Spot the Phish", "category": "Security", "xp_reward": 120,
        })
        assert response.status_code == 200
        quest_id = response.json()["id"]

        updated = client.put(f"/quests/{quest_id}", headers=mentor_headers, json={"xp_reward": 5000})
        assert updated.json()["xp_reward"] == 1000

        locked = client.post(f"/quests/{quest_id}/toggle-lock", headers=mentor_headers)
        assert locked.json()["is_locked"] is True

        assert client.delete(f"/quests/{quest_id}", headers=mentor_headers).status_code == 200
        assert client.get(f"/quests/{quest_id}", headers=mentor_headers).status_code == 404

    def test_create_validates_xp_range(self, client, mentor_headers):
        response = client.post("/quests", headers=mentor_headers, json={"title": "X", "xp_reward": 5})
        assert response.status_code == 422

    def test_pin_lucky_quest(self, client, mentor_headers, mentee_headers):
        response = client.post("/quests/lucky", headers=mentor_headers, json={"quest_id": 2})
        assert response.json()["is_lucky_quest"] is True

        bonus = client.get("/bonus", headers=mentee_headers).json()
        assert bonus["luckyQuest"]["id"] == 2
        assert bonus["firstDailyAvailable"] is True
        assert bonus["isWeekend"] is False


class TestDashboard:

    def test_secret_achievements_hidden_until_earned(self, client, mentee_headers):
        stats = client.get("/stats", headers=mentee_headers).json()
        codes = {a["code"] for a in stats["achievements"]}
        assert "first_quest" in codes
        assert "night_owl" not in codes
        assert stats["rank"]["rank"] == "ROOKIE"
        assert stats["suggestedQuest"]["id"] == 1

    def test_activity_and_timeline(self, client, mentee_headers, mentor_headers):
        progress_id = _start_and_submit(client, mentee_headers)
        client.post(f"/submissions/{progress_id}", headers=mentor_headers,
                    json={"action": "approve", "feedback": ""})

        feed = client.get("/activity", headers=mentee_headers).json()
        assert "quest_approved" in [e["action"] for e in feed]
        assert len(feed) <= 20

        timeline = client.get("/timeline", headers=mentee_headers).json()
        assert len(timeline["weeks"]) == 8
        assert timeline["weeks"][-1]["completed"] == 1
        assert timeline["weeks"][-1]["xp"] == 125
        assert timeline["totals"]["questsCompleted"] == 1
        assert any(m["action"] == "achievement_unlocked" for m in timeline["milestones"])

    def test_reactions(self, client, mentee_headers, mentor_headers):
        progress_id = _start_and_submit(client, mentee_headers)
        client.post(f"/submissions/{progress_id}", headers=mentor_headers,
                    json={"action": "approve", "feedback": ""})

        ok = client.post("/reactions", headers=mentor_headers,
                         json={"quest_progress_id": progress_id, "reaction": "💎"})
        assert ok.status_code == 200
        bad = client.post("/reactions", headers=mentor_headers,
                          json={"quest_progress_id": progress_id, "reaction": "😀"})
        assert bad.status_code == 400

        listed = client.get(f"/reactions?quest_progress_id={progress_id}", headers=mentee_headers).json()
        assert [r["reaction"] for r in listed["reactions"]] == ["💎"]

    def test_reset_needs_confirmation(self, client, mentor_headers, mentee_headers):
        progress_id = _start_and_submit(client, mentee_headers)
        client.post(f"/submissions/{progress_id}", headers=mentor_headers,
                    json={"action": "approve", "feedback": ""})

        assert client.post("/admin/reset", headers=mentor_headers).status_code == 400
        response = client.post("/admin/reset?confirm=true", headers=mentor_headers)
        assert response.json()["totalXp"] == 0
        assert client.get("/stats", headers=mentee_headers).json()["quests"]["completed"] == 0
