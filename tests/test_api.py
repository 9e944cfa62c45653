# tests/test_api.py
import base64

from unittest.mock import Mock

from google.api_core import exceptions as google_exceptions


def upload_text(client, name="faq.txt", body=b"We open at 9am and close at 5pm."):
    return client.post("/memories", files=[("files", (name, body, "text/plain"))])


class TestHealthEndpoint:
    """Test the /health endpoint."""

    def test_health_check_empty(self, client):
        """Health check should report ready once the stores have loaded."""
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert data["ready"] is True
        assert data["database_backend"] == "memory"
        assert data["total_memories"] == 0
        assert data["total_keys"] == 0

    def test_health_counts(self, client, add_key, mock_llm):
        """Health check should reflect stored keys and memories."""
        add_key()
        upload_text(client)

        data = client.get("/health").json()
        assert data["total_keys"] == 1
        assert data["total_memories"] == 1


class TestKeysEndpoint:
    """Test the /keys endpoints."""

    def test_add_key_returns_masked_preview(self, client):
        response = client.post("/keys", json={"label": "Account 1", "key": "AIzaSyABCDEFGH1234"})

        assert response.status_code == 200
        data = response.json()
        assert data["label"] == "Account 1"
        assert data["preview"] == "AIza...1234"
        assert "key" not in data

    def test_list_never_exposes_secret(self, client, add_key):
        add_key(key="AIzaSy-very-secret-9999")

        response = client.get("/keys")
        assert response.status_code == 200
        assert "AIzaSy-very-secret-9999" not in response.text
        assert response.json()["total_keys"] == 1

    def test_blank_key_rejected(self, client):
        response = client.post("/keys", json={"label": "A", "key": "   "})
        assert response.status_code == 422

    def test_missing_label_rejected(self, client):
        response = client.post("/keys", json={"key": "AIzaSy-1"})
        assert response.status_code == 422

    def test_delete_key(self, client, add_key):
        key_id = add_key()["id"]

        response = client.delete(f"/keys/{key_id}")
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert client.get("/keys").json()["total_keys"] == 0

    def test_delete_unknown_key(self, client):
        response = client.delete("/keys/nope")
        assert response.status_code == 404


class TestSettingsEndpoint:
    """Test the /settings endpoints."""

    def test_defaults(self, client):
        data = client.get("/settings").json()

        assert data == {
            "role": "Customer Support Specialist",
            "tone": "Professional yet friendly",
            "language": "Indonesian (Formal/Casual mix)",
        }

    def test_partial_update(self, client):
        response = client.patch("/settings", json={"tone": "Playful"})

        assert response.status_code == 200
        data = response.json()
        assert data["tone"] == "Playful"
        assert data["role"] == "Customer Support Specialist"

        assert client.get("/settings").json()["tone"] == "Playful"


class TestMemoriesEndpoint:
    """Test uploading, listing and deleting memories."""

    def test_upload_text_file(self, client, add_key, mock_llm):
        add_key()
        mock_llm.return_value = "Opening hours are 9 to 5."

        response = upload_text(client)

        assert response.status_code == 200
        data = response.json()
        assert data["stored"] == 1
        assert data["failed"] == 0

        memory = data["results"][0]["memory"]
        assert memory["type"] == "text"
        assert memory["name"] == "faq.txt"
        assert memory["summary"] == "Opening hours are 9 to 5."

        # The analyzer received the decoded text
        parts = mock_llm.call_args.args[1]
        assert "We open at 9am" in parts[0]

    def test_upload_image(self, client, add_key, mock_llm, png_bytes):
        add_key()

        response = client.post("/memories", files=[("files", ("menu.png", png_bytes, "image/png"))])

        assert response.status_code == 200
        memory_id = response.json()["results"][0]["memory"]["id"]

        stored = client.get(f"/memories/{memory_id}").json()
        assert stored["type"] == "image"
        assert base64.b64decode(stored["content"]) == png_bytes

    def test_upload_text_note(self, client, add_key, mock_llm):
        add_key()

        response = client.post("/memories", data={"text": "Refunds within 30 days.", "name": "Refund policy"})

        assert response.status_code == 200
        assert response.json()["results"][0]["memory"]["name"] == "Refund policy"

    def test_list_newest_first_without_content(self, client, add_key, mock_llm):
        add_key()
        upload_text(client, name="first.txt")
        upload_text(client, name="second.txt")

        data = client.get("/memories").json()

        assert data["total_memories"] == 2
        assert "content" not in data["memories"][0]
        timestamps = [m["timestamp"] for m in data["memories"]]
        assert timestamps == sorted(timestamps, reverse=True)

    def test_upload_nothing(self, client):
        response = client.post("/memories", data={})
        assert response.status_code == 400

    def test_unsupported_file(self, client, add_key, mock_llm):
        add_key()

        response = client.post("/memories", files=[("files", ("a.zip", b"PK\x03\x04", "application/zip"))])

        assert response.status_code == 400
        mock_llm.assert_not_called()

    def test_file_too_large(self, client, add_key, mock_llm):
        add_key()
        body = b"x" * (11 * 1024 * 1024)

        response = client.post("/memories", files=[("files", ("huge.txt", body, "text/plain"))])

        assert response.status_code == 413

    def test_no_keys_configured(self, client, mock_llm):
        response = upload_text(client)

        assert response.status_code == 503
        assert "Settings" in response.json()["detail"]
        mock_llm.assert_not_called()

    def test_env_key_used_when_no_keys(self, client, mock_llm, monkeypatch):
        from nexus_agent import config
        monkeypatch.setattr(config, "GEMINI_API_KEY", "env-key")

        response = upload_text(client)

        assert response.status_code == 200
        assert mock_llm.call_args.args[0] == "env-key"

    def test_batch_reports_each_file(self, client, add_key, mock_llm):
        """A bad file in a batch should not stop the others."""
        add_key()

        response = client.post(
            "/memories",
            files=[
                ("files", ("good.txt", b"Shipping takes 3 days.", "text/plain")),
                ("files", ("bad.zip", b"PK", "application/zip")),
                ("files", ("also_good.txt", b"Returns are free.", "text/plain")),
            ],
        )

        assert response.status_code == 200
        data = response.json()
        assert data["stored"] == 2
        assert data["failed"] == 1

        failed = [r for r in data["results"] if not r["success"]]
        assert failed[0]["name"] == "bad.zip"
        assert "Unsupported" in failed[0]["error"]

    def test_rate_limited_keys_rotate(self, client, add_key, mock_llm):
        add_key(label="A", key="AIzaSy-key-A-0000")
        add_key(label="B", key="AIzaSy-key-B-0000")
        mock_llm.side_effect = [google_exceptions.TooManyRequests("quota"), "Summary"]

        response = upload_text(client)

        assert response.status_code == 200
        assert mock_llm.call_count == 2

    def test_all_keys_exhausted(self, client, add_key, mock_llm):
        add_key()
        mock_llm.side_effect = google_exceptions.TooManyRequests("quota")

        response = upload_text(client)

        assert response.status_code == 429
        assert client.get("/memories").json()["total_memories"] == 0

    def test_get_unknown_memory(self, client):
        assert client.get("/memories/missing").status_code == 404

    def test_delete_memory(self, client, add_key, mock_llm):
        add_key()
        memory_id = upload_text(client).json()["results"][0]["memory"]["id"]

        response = client.delete(f"/memories/{memory_id}")

        assert response.status_code == 200
        assert client.get("/memories").json()["total_memories"] == 0

    def test_delete_unknown_memory(self, client):
        response = client.delete("/memories/missing")
        assert response.status_code == 404


class TestChatEndpoint:
    """Test the /chat endpoint."""

    def test_reply_grounded_in_memories(self, client, add_key, mock_llm):
        add_key()
        mock_llm.return_value = "Summary of hours"
        upload_text(client)

        mock_llm.return_value = "We open at 9am! ☕"
        response = client.post("/chat", json={"message": "When do you open?"})

        assert response.status_code == 200
        data = response.json()
        assert data["reply"] == "We open at 9am! ☕"
        assert data["memories_used"] == 1
        assert data["keys_available"] == 1

        system_prompt = mock_llm.call_args.args[1][0]
        assert "[Memory: faq.txt]\nSummary of hours" in system_prompt
        assert "Role: Customer Support Specialist" in system_prompt

    def test_reply_with_image(self, client, add_key, mock_llm, png_bytes):
        add_key()
        encoded = base64.b64encode(png_bytes).decode()

        response = client.post("/chat", json={"message": "Is this available?", "image_base64": encoded})

        assert response.status_code == 200
        parts = mock_llm.call_args.args[1]
        assert parts[1]["data"] == png_bytes

    def test_image_only_message(self, client, add_key, mock_llm, png_bytes):
        add_key()
        encoded = base64.b64encode(png_bytes).decode()

        response = client.post("/chat", json={"message": "", "image_base64": encoded})

        assert response.status_code == 200
        assert mock_llm.call_args.args[1][1]["data"] == png_bytes

    def test_empty_image_string_is_no_image(self, client, add_key, mock_llm, monkeypatch):
        from nexus_agent.api import routes

        add_key()
        track = Mock()
        monkeypatch.setattr(routes.posthog_client, "track_reply_drafted", track)

        response = client.post("/chat", json={"message": "hi", "image_base64": ""})

        assert response.status_code == 200
        assert len(mock_llm.call_args.args[1]) == 2
        assert track.call_args.kwargs["has_image"] is False

    def test_empty_message_rejected(self, client, add_key, mock_llm):
        add_key()

        response = client.post("/chat", json={"message": "   "})

        assert response.status_code == 422
        mock_llm.assert_not_called()

    def test_invalid_image(self, client, add_key, mock_llm):
        add_key()

        response = client.post("/chat", json={"message": "hi", "image_base64": "%%%"})

        assert response.status_code == 400

    def test_no_keys(self, client, mock_llm):
        response = client.post("/chat", json={"message": "Hello"})
        assert response.status_code == 503

    def test_all_keys_exhausted(self, client, add_key, mock_llm):
        add_key(label="A", key="AIzaSy-key-A-0000")
        add_key(label="B", key="AIzaSy-key-B-0000")
        mock_llm.side_effect = google_exceptions.PermissionDenied("revoked")

        response = client.post("/chat", json={"message": "Hello"})

        assert response.status_code == 429
        assert mock_llm.call_count == 2


class TestMetricsEndpoint:

    def test_rotation_metrics_exposed(self, client, add_key, mock_llm):
        add_key(label="A", key="AIzaSy-key-A-0000")
        add_key(label="B", key="AIzaSy-key-B-0000")
        mock_llm.side_effect = [google_exceptions.TooManyRequests("quota"), "reply"]

        client.post("/chat", json={"message": "Hello"})

        data = client.get("/metrics").json()
        assert data["key_rotation"]["rate_limited"] == 1
        assert data["key_rotation"]["succeeded"] == 1
        assert data["total_requests"] >= 1
