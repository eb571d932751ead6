import json

import respx
from httpx import Response

import chat_cli


def _sse(*events) -> str:
    return "".join(f"data: {json.dumps(e)}\n\n" for e in events)


def test_send_folds_data_events_into_artifact(capsys):
    body = _sse(
        {"type": "text", "content": "Drafting "},
        {"type": "data", "delta": {"type": "id", "content": "d1"}},
        {"type": "data", "delta": {"type": "title", "content": "Memo"}},
        {"type": "data", "delta": {"type": "kind", "content": "text"}},
        {"type": "data", "delta": {"type": "text-delta", "content": "Line A. "}},
        {"type": "data", "delta": {"type": "text-delta", "content": "Line B."}},
        {"type": "data", "delta": {"type": "finish", "content": ""}},
        {"type": "text", "content": "done."},
        {"type": "end"},
    )
    with respx.mock(assert_all_called=True) as respx_mock:
        route = respx_mock.post("http://api.test/chat").mock(
            return_value=Response(200, text=body, headers={"content-type": "text/event-stream"})
        )
        code = chat_cli.main(["--base-url", "http://api.test", "--token", "tok", "send", "hello", "--chat-id", "c1"])
    assert code == 0
    sent = json.loads(route.calls.last.request.content)
    assert sent["id"] == "c1"
    assert sent["selectedChatModel"] == "chat-model-small"
    assert route.calls.last.request.headers["Authorization"] == "Bearer tok"
    out = capsys.readouterr().out
    assert "Drafting done." in out
    assert "--- text: Memo (idle) ---" in out
    assert "Line A. Line B." in out


def test_send_reports_http_errors(capsys):
    with respx.mock(assert_all_called=True) as respx_mock:
        respx_mock.post("http://api.test/chat").mock(return_value=Response(401, json={"detail": "Unauthorized"}))
        code = chat_cli.main(["--base-url", "http://api.test", "send", "hello"])
    assert code == 1
    assert "HTTP 401" in capsys.readouterr().out


def test_delete_prints_confirmation(capsys):
    with respx.mock(assert_all_called=True) as respx_mock:
        respx_mock.delete("http://api.test/chat").mock(return_value=Response(200, json={"message": "Chat deleted"}))
        code = chat_cli.main(["--base-url", "http://api.test", "--token", "tok", "delete", "c1"])
    assert code == 0
    assert "Chat deleted" in capsys.readouterr().out
