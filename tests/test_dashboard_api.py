from __future__ import annotations

import json
from typing import Optional

from fastapi.testclient import TestClient

import settings
from core.models import ChatInfo
from core.runtime import RuntimeContext
from dashboard.api import RESTART_MESSAGE, SAVED_MESSAGE, build_app


class FakeClient:
    def __init__(self, chats: Optional[list[ChatInfo]] = None, fail: bool = False) -> None:
        self.chats = chats or []
        self.fail = fail

    async def get_chats(self) -> list[ChatInfo]:
        if self.fail:
            raise ConnectionError("bridge down")
        return self.chats

    async def send_message(self, chat_id: str, text: str) -> None:
        return None


def _setup(tmp_path, client: Optional[FakeClient] = None, **whatsapp):
    path = tmp_path / "config.json"
    config = settings.save_config({"whatsapp": whatsapp}, str(path))
    runtime = RuntimeContext(config)
    app = build_app(runtime, client or FakeClient(), config_path=str(path))
    return runtime, TestClient(app), path


def test_status_reports_summary_and_warnings(tmp_path) -> None:
    runtime, http, path = _setup(
        tmp_path,
        target={"id": "g2", "name": ""},
        sources=[{"name": f"Group {i}"} for i in range(6)],
    )
    runtime.record_error("disconnected: LOGOUT")

    body = http.get("/api/status").json()

    assert body["ready"] is False
    assert body["lastError"] == "disconnected: LOGOUT"
    assert body["target"] == "g2"
    assert body["sources"] == "Group 0, Group 1, Group 2, Group 3, Group 4 (+1)"
    assert body["warnings"] == ["No keywords configured."]
    assert body["configPath"] == str(path)


def test_qr_endpoint_without_and_with_code(tmp_path) -> None:
    runtime, http, _ = _setup(tmp_path)

    body = http.get("/api/qr").json()
    assert body["hasQr"] is False
    assert body["dataUrl"] is None

    runtime.update_qr("2@abc", "data:image/png;base64,AAAA")
    body = http.get("/api/qr").json()
    assert body["hasQr"] is True
    assert body["dataUrl"] == "data:image/png;base64,AAAA"
    assert body["at"] == runtime.qr.at


def test_get_config_returns_current_shape(tmp_path) -> None:
    _, http, _ = _setup(tmp_path, keywords=["fire"])

    body = http.get("/api/config").json()

    assert body["web"] == {"bind": "127.0.0.1", "port": 3000}
    assert body["whatsapp"]["keywords"] == ["fire"]
    assert body["whatsapp"]["mode"] == "copy"


def test_post_config_applies_and_persists(tmp_path) -> None:
    runtime, http, path = _setup(tmp_path)
    payload = runtime.config.to_dict()
    payload["whatsapp"]["keywords"] = ["flood"]
    payload["whatsapp"]["sources"] = [{"id": "g1", "name": "Alerts"}]
    payload["whatsapp"]["target"] = {"id": "", "name": "Control"}

    response = http.post("/api/config", json=payload)

    assert response.status_code == 200
    body = response.json()
    assert body == {"ok": True, "needsRestart": False, "warnings": [], "message": SAVED_MESSAGE}
    assert runtime.filters.keywords == ("flood",)
    assert runtime.target_cache.cached_id is None
    assert json.loads(path.read_text(encoding="utf-8"))["whatsapp"]["keywords"] == ["flood"]


def test_post_config_flags_restart_for_browser_changes(tmp_path) -> None:
    runtime, http, _ = _setup(tmp_path)
    payload = runtime.config.to_dict()
    payload["whatsapp"]["headless"] = True

    body = http.post("/api/config", json=payload).json()

    assert body["needsRestart"] is True
    assert body["message"] == RESTART_MESSAGE


def test_post_invalid_config_is_rejected_and_not_saved(tmp_path) -> None:
    runtime, http, path = _setup(tmp_path, keywords=["fire"])
    before = path.read_text(encoding="utf-8")
    payload = runtime.config.to_dict()
    payload["web"]["port"] = 70000
    payload["whatsapp"]["mode"] = "mirror"

    response = http.post("/api/config", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid config"
    assert body["details"] == ["web.port must be 1..65535", 'whatsapp.mode must be "copy" or "forward"']
    assert path.read_text(encoding="utf-8") == before
    assert runtime.config.web.port == 3000


def test_post_non_object_body_is_rejected(tmp_path) -> None:
    _, http, _ = _setup(tmp_path)

    response = http.post("/api/config", content=b"[1, 2]", headers={"Content-Type": "application/json"})

    assert response.status_code == 400


def test_groups_requires_ready_client(tmp_path) -> None:
    _, http, _ = _setup(tmp_path)

    response = http.get("/api/groups")

    assert response.status_code == 409


def test_groups_lists_sorted_groups_only(tmp_path) -> None:
    chats = [
        ChatInfo(id="g2", name="beta", is_group=True),
        ChatInfo(id="u1@c.us", name="Alice", is_group=False),
        ChatInfo(id="g1", name="Alpha", is_group=True),
        ChatInfo(id="g3", name="", is_group=True),
    ]
    runtime, http, _ = _setup(tmp_path, client=FakeClient(chats))
    runtime.set_ready(True)

    body = http.get("/api/groups").json()

    assert body == {"groups": [{"id": "g1", "name": "Alpha"}, {"id": "g2", "name": "beta"}]}


def test_groups_reports_client_errors(tmp_path) -> None:
    runtime, http, _ = _setup(tmp_path, client=FakeClient(fail=True))
    runtime.set_ready(True)

    response = http.get("/api/groups")

    assert response.status_code == 500
    assert "bridge down" in response.json()["error"]


def test_index_page_is_served(tmp_path) -> None:
    _, http, _ = _setup(tmp_path)

    response = http.get("/")

    assert response.status_code == 200
    assert "wa-relay" in response.text
