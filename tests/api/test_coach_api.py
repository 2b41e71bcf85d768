from conftest import FAKE_CHAT_ANSWER, FakeScenario


def test_coach_chat_creates_session_with_context(client, auth_headers, current_user_id, seed_metrics, override_llm) -> None:
    seed_metrics(current_user_id)
    fake = override_llm(FakeScenario.OK)

    response = client.post("/coach/chat", headers=auth_headers, json={"message": "How can I sleep better?"})
    assert response.status_code == 200
    body = response.json()
    assert body["answer"] == FAKE_CHAT_ANSWER
    assert body["context_enhanced"] is True
    assert body["safety_flags"] == []
    assert body["error_flag"] is None

    system_prompt = fake.chat_calls[0][0]["content"]
    assert "## USER CONTEXT:" in system_prompt
    assert "**Profile**: Sara" in system_prompt
    assert "- sleep_hours: 7.5 (avg: 6.75, 2 readings)" in system_prompt

    sessions = client.get("/coach/sessions", headers=auth_headers).json()["items"]
    assert sessions[0]["session_id"] == body["session_id"]
    assert sessions[0]["title"] == "How can I sleep better?"
    assert sessions[0]["message_count"] == 1


def test_follow_up_turn_replays_session_history(client, auth_headers, override_llm) -> None:
    fake = override_llm(FakeScenario.OK)
    first = client.post("/coach/chat", headers=auth_headers, json={"message": "Tips for recovery?"}).json()
    second = client.post(
        "/coach/chat",
        headers=auth_headers,
        json={"message": "And on rest days?", "session_id": first["session_id"]},
    ).json()
    assert second["session_id"] == first["session_id"]

    messages = fake.chat_calls[1]
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[1]["content"] == "Tips for recovery?"

    transcript = client.get(f"/coach/sessions/{first['session_id']}/messages", headers=auth_headers).json()
    assert [turn["message"] for turn in transcript["turns"]] == ["Tips for recovery?", "And on rest days?"]


def test_unknown_session_is_404(client, auth_headers, override_llm) -> None:
    override_llm(FakeScenario.OK)
    response = client.post("/coach/chat", headers=auth_headers, json={"message": "hi", "session_id": 999999})
    assert response.status_code == 404


def test_blank_messages_rejected_before_model(client, auth_headers, override_llm) -> None:
    fake = override_llm(FakeScenario.OK)
    assert client.post("/coach/chat", headers=auth_headers, json={"message": "   "}).status_code == 422
    assert client.post("/coach/voice", headers=auth_headers, json={"transcript": "\n\t "}).status_code == 422
    assert fake.chat_calls == []
    assert client.get("/coach/sessions", headers=auth_headers).json()["items"] == []


def test_urgent_message_skips_model(client, auth_headers, override_llm) -> None:
    fake = override_llm(FakeScenario.OK)
    body = client.post(
        "/coach/chat", headers=auth_headers, json={"message": "I have chest pain after my run"}
    ).json()
    assert body["safety_flags"] == ["urgent_symptom_language"]
    assert "emergency services" in body["answer"]
    assert body["context_enhanced"] is False
    assert fake.chat_calls == []


def test_supplement_question_gets_caution(client, auth_headers, override_llm) -> None:
    override_llm(FakeScenario.OK)
    body = client.post(
        "/coach/chat", headers=auth_headers, json={"message": "Should I add creatine to my stack?"}
    ).json()
    assert body["safety_flags"] == ["supplement_caution"]
    assert body["answer"].startswith(FAKE_CHAT_ANSWER + "\n\n")
    assert "clinician" in body["answer"]


def test_model_failures_map_to_error_flags(client, auth_headers, override_llm) -> None:
    expected = {
        FakeScenario.CONFIG_MISSING: "llm_config_missing",
        FakeScenario.AUTH_ERROR: "llm_auth_error",
        FakeScenario.RATE_LIMITED: "llm_rate_limited",
        FakeScenario.TIMEOUT: "llm_unavailable",
    }
    for scenario, flag in expected.items():
        override_llm(scenario)
        body = client.post("/coach/chat", headers=auth_headers, json={"message": "Plan my week"}).json()
        assert body["error_flag"] == flag
        assert body["answer"].startswith("I apologize")
        assert body["context_enhanced"] is False

    # Failed turns are still saved.
    history = client.get("/coach/history?limit=2", headers=auth_headers).json()["items"]
    assert len(history) == 2
    assert history[0]["id"] > history[1]["id"]


def test_delete_session(client, auth_headers, override_llm) -> None:
    override_llm(FakeScenario.OK)
    session_id = client.post("/coach/chat", headers=auth_headers, json={"message": "hello"}).json()["session_id"]
    assert client.delete(f"/coach/sessions/{session_id}", headers=auth_headers).status_code == 204
    assert client.get(f"/coach/sessions/{session_id}/messages", headers=auth_headers).status_code == 404
    assert client.get("/coach/history", headers=auth_headers).json()["items"] == []


def test_suggested_questions_rotate(client) -> None:
    first = client.get("/coach/suggested-questions").json()
    assert first["index"] == 0
    assert len(first["questions"]) == 4
    assert first["welcome_message"].startswith("Hi there!")
    wrapped = client.get("/coach/suggested-questions?index=5").json()
    assert wrapped["index"] == 0
    assert wrapped["questions"] == first["questions"]


def test_voice_turn_returns_audio(client, auth_headers, override_llm, override_speech) -> None:
    override_llm(FakeScenario.OK)
    speech = override_speech()
    body = client.post(
        "/coach/voice", headers=auth_headers, json={"transcript": "  How do I sleep better? ", "speak": True}
    ).json()
    assert body["transcript"] == "How do I sleep better?"
    assert body["audio_base64"] == "SUQzLWZha2UtbXAz"
    assert speech.calls[0]["text"] == FAKE_CHAT_ANSWER


def test_voice_turn_survives_speech_failure(client, auth_headers, override_llm, override_speech) -> None:
    from biowell.services.speech import SpeechRequestError

    override_llm(FakeScenario.OK)
    override_speech(error=SpeechRequestError("ElevenLabs rate limit exceeded. Please try again later.", 429))
    body = client.post("/coach/voice", headers=auth_headers, json={"transcript": "Hi", "speak": True}).json()
    assert body["answer"] == FAKE_CHAT_ANSWER
    assert body["audio_base64"] is None
    assert "rate limit" in body["speech_error"]
