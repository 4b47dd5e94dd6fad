"""
API tests for the QuizTime backend.
Covers game sessions, legacy question batches, answer checks,
completions, leaderboard and stats endpoints.
"""

import pytest

from quiztime.errors import StorageUnavailableError
from quiztime.models import User


def complete_payload(**overrides):
    payload = {
        "questionsAnswered": 10,
        "correctAnswers": 8,
        "totalQuestions": 16,
        "finalPrize": 50000,
        "completionTime": 240,
        "gameCompleted": False,
    }
    payload.update(overrides)
    return payload


class TestGameQuestions:

    def test_requires_token(self, client):
        response = client.post("/api/game/questions", json={"username": "alice"})
        assert response.status_code == 401

    def test_full_game(self, client, make_user, seed_questions):
        seed_questions()
        _, headers = make_user("alice")
        response = client.post("/api/game/questions", json={"username": "alice"}, headers=headers)
        assert response.status_code == 200

        data = response.get_json()
        assert data["success"] is True
        assert data["totalQuestions"] == 16
        assert len(data["questions"]) == 16
        first, fourth, tenth = data["questions"][0], data["questions"][3], data["questions"][9]
        assert (first["level"], first["timeLimit"], first["prizeValue"]) == ("easy", 10, 1000)
        assert (fourth["level"], fourth["timeLimit"]) == ("medium", 20)
        assert (tenth["level"], tenth["timeLimit"]) == ("hard", 30)
        assert data["gameStructure"]["hard"]["questions"] == "10-16"
        for q in data["questions"]:
            assert q["options"][q["answerIndex"]].endswith("-c")

    def test_served_ids_are_recorded(self, app, client, make_user, seed_questions):
        seed_questions()
        _, headers = make_user("alice")
        data = client.post("/api/game/questions", json={}, headers=headers).get_json()
        with app.app_context():
            user = User.query.filter_by(username="alice").one()
            assert set(user.answered_question_ids) == {q["id"] for q in data["questions"]}

    def test_uses_json_catalogue_when_database_is_empty(self, client, make_user):
        _, headers = make_user("alice")
        data = client.post("/api/game/questions", json={}, headers=headers).get_json()
        assert len(data["questions"]) == 16

    def test_empty_catalogue_is_still_a_success(self, client, make_user, data_dir):
        for path in data_dir.iterdir():
            path.unlink()
        _, headers = make_user("alice")
        response = client.post("/api/game/questions", json={}, headers=headers)
        assert response.status_code == 200
        assert response.get_json()["success"] is True
        assert response.get_json()["questions"] == []

    def test_cannot_start_game_for_someone_else(self, client, make_user):
        _, headers = make_user("alice")
        response = client.post("/api/game/questions", json={"username": "mallory"}, headers=headers)
        assert response.status_code == 403

    def test_non_object_body_is_rejected(self, client, make_user):
        _, headers = make_user("alice")
        response = client.post("/api/game/questions", json=["alice"], headers=headers)
        assert response.status_code == 400


class TestLegacyQuestions:

    def test_batches_do_not_repeat(self, client, seed_questions):
        seed_questions()
        first = client.post("/api/questions", json={"username": "ivy", "level": "medium", "count": 4})
        second = client.post("/api/questions", json={"username": "ivy", "level": "medium", "count": 4})
        assert first.status_code == second.status_code == 200
        first_ids = {q["id"] for q in first.get_json()}
        second_ids = {q["id"] for q in second.get_json()}
        assert len(first_ids) == 4
        assert len(second_ids) == 2
        assert not first_ids & second_ids

    def test_invalid_level(self, client):
        response = client.post("/api/questions", json={"username": "ivy", "level": "expert", "count": 2})
        assert response.status_code == 400
        assert response.get_json()["error"] == "Invalid level"

    def test_missing_body(self, client):
        response = client.post("/api/questions", data="nope", content_type="text/plain")
        assert response.status_code == 400

    @pytest.mark.parametrize("username", [{"a": 1}, ["ivy"], 7, "  "])
    def test_username_must_be_a_string(self, client, username):
        response = client.post("/api/questions", json={"username": username, "level": "easy", "count": 1})
        assert response.status_code == 400

    @pytest.mark.parametrize("count", [2.7, True, "two", None])
    def test_count_must_be_a_whole_number(self, client, count):
        response = client.post("/api/questions", json={"username": "ivy", "level": "easy", "count": count})
        assert response.status_code == 400

    def test_count_as_digit_string(self, client, seed_questions):
        seed_questions()
        response = client.post("/api/questions", json={"username": "ivy", "level": "easy", "count": "3"})
        assert len(response.get_json()) == 3


class TestCheckAnswer:

    def test_correct_answer(self, client):
        response = client.post("/api/check-answer",
                               json={"level": "easy", "questionId": "e1", "answer": "e1-c"})
        assert response.get_json() == {"correct": True, "correctAnswer": None}

    def test_wrong_answer_reveals_correct_one(self, client, seed_questions):
        seed_questions()
        response = client.post("/api/check-answer",
                               json={"level": "hard", "questionId": "h2", "answer": "h2-a"})
        assert response.get_json() == {"correct": False, "correctAnswer": "h2-c"}

    def test_answer_by_index(self, client):
        response = client.post("/api/check-answer",
                               json={"level": "easy", "questionId": "e1", "answer": 2})
        assert response.get_json()["correct"] is True

    def test_unknown_question_is_not_found(self, client, seed_questions):
        seed_questions()
        response = client.post("/api/check-answer",
                               json={"level": "easy", "questionId": "zzz", "answer": "anything"})
        assert response.status_code == 404
        assert response.get_json() == {"error": "Question not found"}

    def test_question_from_another_level_is_not_found(self, client, seed_questions):
        seed_questions()
        response = client.post("/api/check-answer",
                               json={"level": "easy", "questionId": "h1", "answer": "h1-c"})
        assert response.status_code == 404

    def test_invalid_level(self, client):
        response = client.post("/api/check-answer",
                               json={"level": "trivial", "questionId": "e1", "answer": "x"})
        assert response.status_code == 400


class TestGameComplete:

    def test_records_stats_and_rank(self, client, make_user):
        _, headers = make_user("alice")
        response = client.post("/api/game/complete", json=complete_payload(), headers=headers)
        assert response.status_code == 200
        data = response.get_json()
        assert data["success"] is True
        assert data["leaderboardPosition"] == 1
        assert data["stats"]["gamesPlayed"] == 1
        assert data["stats"]["accuracy"] == 80

    def test_zero_prize_has_no_position(self, client, make_user):
        _, headers = make_user("alice")
        response = client.post("/api/game/complete",
                               json=complete_payload(finalPrize=0, questionsAnswered=1, correctAnswers=0),
                               headers=headers)
        assert response.status_code == 200
        assert "leaderboardPosition" not in response.get_json()

    def test_validation_happens_before_any_write(self, client, make_user):
        _, headers = make_user("alice")
        response = client.post("/api/game/complete",
                               json=complete_payload(correctAnswers=11),
                               headers=headers)
        assert response.status_code == 400
        stats = client.get("/api/stats/alice").get_json()
        assert stats["message"] == "No stats found"

    def test_missing_field(self, client, make_user):
        _, headers = make_user("alice")
        payload = complete_payload()
        del payload["finalPrize"]
        response = client.post("/api/game/complete", json=payload, headers=headers)
        assert response.status_code == 400
        assert "finalPrize" in response.get_json()["error"]

    def test_storage_failure_is_retryable(self, client, make_user, monkeypatch):
        def unavailable(*args, **kwargs):
            raise StorageUnavailableError("Could not record game completion")

        monkeypatch.setattr("quiztime.routes.game.complete_game", unavailable)
        _, headers = make_user("alice")
        response = client.post("/api/game/complete", json=complete_payload(), headers=headers)
        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"
        assert response.get_json()["retryable"] is True


class TestLeaderboardAndStats:

    def test_leaderboard_is_ordered_by_prize(self, client, make_user):
        for name, prize in (("alice", 3000), ("bob", 200000), ("cara", 50000)):
            _, headers = make_user(name)
            client.post("/api/game/complete", json=complete_payload(finalPrize=prize), headers=headers)

        board = client.get("/api/leaderboard").get_json()["leaderboard"]
        assert [e["playerName"] for e in board] == ["bob", "cara", "alice"]
        assert board[0]["prizeWon"] == 200000

    def test_lower_replay_keeps_best_entry(self, client, make_user):
        _, headers = make_user("alice")
        client.post("/api/game/complete", json=complete_payload(finalPrize=100000), headers=headers)
        response = client.post("/api/game/complete", json=complete_payload(finalPrize=5000), headers=headers)
        assert response.get_json()["leaderboardPosition"] == 1
        board = client.get("/api/leaderboard").get_json()["leaderboard"]
        assert [e["prizeWon"] for e in board] == [100000]

    def test_stats_accumulate(self, client, make_user):
        _, headers = make_user("bob")
        client.post("/api/game/complete",
                    json=complete_payload(questionsAnswered=10, correctAnswers=8), headers=headers)
        client.post("/api/game/complete",
                    json=complete_payload(questionsAnswered=10, correctAnswers=5, gameCompleted=True),
                    headers=headers)
        stats = client.get("/api/stats/bob").get_json()["stats"]
        assert stats["questionsAnswered"] == 20
        assert stats["correctAnswers"] == 13
        assert stats["accuracy"] == 65
        assert stats["gamesCompleted"] == 1

    def test_unknown_user_gets_zeroed_stats(self, client):
        data = client.get("/api/stats/nobody").get_json()
        assert data["message"] == "No stats found"
        assert data["stats"]["gamesPlayed"] == 0


class TestMiscRoutes:

    def test_lifelines(self, client):
        assert "50-50" in client.get("/api/lifelines").get_json()["lifelines"]

    def test_health(self, client):
        assert client.get("/api/health").get_json()["status"] == "ok"

    def test_reset_questions(self, client, make_user, seed_questions):
        seed_questions()
        _, headers = make_user("alice")
        client.post("/api/game/questions", json={}, headers=headers)
        response = client.post("/api/reset-questions", headers=headers)
        assert response.get_json() == {"success": True}


class TestAuth:

    def test_signup_login_and_verify(self, client):
        response = client.post("/signup", json={
            "username": "newbie", "email": "newbie@example.com", "password": "pw12345"})
        assert response.status_code == 201

        response = client.post("/login", json={"username": "newbie", "password": "pw12345"})
        assert response.status_code == 200
        token = response.get_json()["access_token"]

        response = client.get("/verify_token", headers={"Authorization": f"Bearer {token}"})
        assert response.get_json()["username"] == "newbie"

    def test_duplicate_signup(self, client, make_user):
        make_user("alice")
        response = client.post("/signup", json={
            "username": "alice", "email": "other@example.com", "password": "pw"})
        assert response.status_code == 409

    def test_lazily_created_user_can_sign_up(self, client):
        client.post("/api/questions", json={"username": "lurker", "level": "easy", "count": 1})
        response = client.post("/signup", json={
            "username": "lurker", "email": "lurker@example.com", "password": "pw12345"})
        assert response.status_code == 201

    def test_bad_password(self, client, make_user):
        make_user("alice")
        response = client.post("/login", json={"username": "alice", "password": "wrong"})
        assert response.status_code == 401


class TestUnreadableJsonStore:

    def test_corrupt_leaderboard_file_is_retryable(self, client, data_dir):
        (data_dir / "leaderboard.json").write_text("{not json")
        response = client.get("/api/leaderboard")
        assert response.status_code == 503
        assert response.headers["Retry-After"] == "1"
        assert response.get_json()["retryable"] is True

    def test_undecodable_catalogue_is_retryable(self, app, client, data_dir):
        (data_dir / "easy.json").write_bytes(b"\xff\xfe garbage")
        response = client.post("/api/questions", json={"username": "ivy", "level": "easy", "count": 2})
        assert response.status_code == 503
        assert response.get_json()["retryable"] is True
        with app.app_context():
            assert User.query.filter_by(username="ivy").first() is None

    def test_check_answer_with_corrupt_catalogue(self, client, data_dir):
        (data_dir / "easy.json").write_text("[{")
        response = client.post("/api/check-answer",
                               json={"level": "easy", "questionId": "e1", "answer": "e1-c"})
        assert response.status_code == 503

    def test_seeded_database_does_not_need_the_files(self, client, data_dir, seed_questions):
        seed_questions()
        (data_dir / "easy.json").write_text("[{")
        response = client.post("/api/questions", json={"username": "ivy", "level": "easy", "count": 2})
        assert response.status_code == 200
        assert len(response.get_json()) == 2


class TestProfile:

    def test_profile_without_stats(self, client, make_user):
        user_id, headers = make_user("alice")
        data = client.get("/profile", headers=headers).get_json()
        assert data["user"]["id"] == user_id
        assert data["user"]["username"] == "alice"
        assert data["user"]["email"] == "alice@example.com"
        assert data["stats"] is None

    def test_profile_includes_stats(self, client, make_user):
        _, headers = make_user("alice")
        client.post("/api/game/complete", json=complete_payload(), headers=headers)
        stats = client.get("/profile", headers=headers).get_json()["stats"]
        assert stats["gamesPlayed"] == 1
        assert stats["totalPrize"] == 50000

    def test_unknown_user(self, app, client):
        from flask_jwt_extended import create_access_token
        with app.app_context():
            token = create_access_token(identity="ghost", additional_claims={"username": "ghost"})
        response = client.get("/profile", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 404

    def test_rename_carries_stats_and_leaderboard(self, client, make_user):
        _, headers = make_user("alice")
        client.post("/api/game/complete", json=complete_payload(), headers=headers)

        response = client.patch("/profile", json={"username": "alicia"}, headers=headers)
        assert response.status_code == 200
        data = response.get_json()
        assert data["user"]["username"] == "alicia"

        assert client.get("/api/stats/alicia").get_json()["stats"]["gamesPlayed"] == 1
        assert client.get("/api/stats/alice").get_json()["message"] == "No stats found"
        board = client.get("/api/leaderboard").get_json()["leaderboard"]
        assert [e["playerName"] for e in board] == ["alicia"]

        fresh = {"Authorization": f"Bearer {data['access_token']}"}
        assert client.get("/verify_token", headers=fresh).get_json()["username"] == "alicia"

    def test_rename_to_taken_username(self, client, make_user):
        make_user("bob")
        _, headers = make_user("alice")
        response = client.patch("/profile", json={"username": "bob"}, headers=headers)
        assert response.status_code == 409
        assert client.get("/profile", headers=headers).get_json()["user"]["username"] == "alice"

    def test_rename_to_same_name_is_a_no_op(self, client, make_user):
        _, headers = make_user("alice")
        response = client.patch("/profile", json={"username": "alice"}, headers=headers)
        assert response.status_code == 200

    @pytest.mark.parametrize("body", [{"username": ""}, {"username": 5}, ["alicia"]])
    def test_rename_validation(self, client, make_user, body):
        _, headers = make_user("alice")
        response = client.patch("/profile", json=body, headers=headers)
        assert response.status_code == 400


class TestScore:

    def test_save_and_read_score(self, client):
        response = client.post("/api/score", json={"username": "zed", "score": 1200})
        assert response.get_json() == {"success": True}
        assert client.get("/api/score/zed").get_json() == {"score": 1200}

        client.post("/api/score", json={"username": "zed", "score": 300})
        assert client.get("/api/score/zed").get_json() == {"score": 300}

    def test_unknown_user_scores_zero(self, client):
        assert client.get("/api/score/nobody").get_json() == {"score": 0}

    def test_registered_user_keeps_account(self, client, make_user):
        user_id, headers = make_user("alice")
        client.post("/api/score", json={"username": "alice", "score": 10})
        assert client.get("/profile", headers=headers).get_json()["user"]["id"] == user_id

    @pytest.mark.parametrize("body", [
        {"username": "zed", "score": -1},
        {"username": "zed", "score": True},
        {"username": "zed", "score": "10"},
        {"score": 10},
    ])
    def test_validation(self, client, body):
        assert client.post("/api/score", json=body).status_code == 400
