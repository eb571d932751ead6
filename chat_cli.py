import argparse
import json
import os
import sys
import uuid
from typing import Any, Dict, Iterator, List, Optional

import httpx

from analyst_chat.artifact import ArtifactReducer


DEFAULT_API_BASE = "http://127.0.0.1:8000"
DEFAULT_MODEL = "chat-model-small"


def _join_url(base: str, path: str) -> str:
    return base.rstrip("/") + path


def _headers(token: Optional[str]) -> Dict[str, str]:
    if not token:
        return {}
    return {"Authorization": f"Bearer {token}"}


def iter_events(lines: Iterator[str]) -> Iterator[Dict[str, Any]]:
    for line in lines:
        if not line.startswith("data:"):
            continue
        chunk = line[len("data:"):].strip()
        if not chunk:
            continue
        try:
            yield json.loads(chunk)
        except json.JSONDecodeError:
            continue


def _print_artifact(reducer: ArtifactReducer) -> None:
    doc = reducer.document
    if doc is None:
        return
    print()
    print(f"--- {doc.kind}: {doc.title or doc.id} ({doc.status}) ---")
    if doc.kind == "image":
        print(f"[image, {len(doc.content)} base64 chars]")
    else:
        print(doc.content)
    for suggestion in doc.suggestions:
        print(f"* {suggestion.original_text} -> {suggestion.suggested_text} ({suggestion.description})")


def run_send(args: argparse.Namespace) -> int:
    base = args.base_url or DEFAULT_API_BASE
    chat_id = args.chat_id or str(uuid.uuid4())
    payload = {
        "id": chat_id,
        "messages": [{"id": str(uuid.uuid4()), "role": "user", "content": args.message}],
        "selectedChatModel": args.model,
    }
    reducer = ArtifactReducer()
    deltas: List[Dict[str, Any]] = []
    with httpx.Client(timeout=httpx.Timeout(10.0, read=None)) as client:
        with client.stream(
            "POST", _join_url(base, "/chat"), json=payload, headers=_headers(args.token)
        ) as resp:
            if resp.status_code >= 400:
                resp.read()
                print(f"Request failed: HTTP {resp.status_code} {resp.text}")
                return 1
            for event in iter_events(resp.iter_lines()):
                etype = event.get("type")
                if etype in ("text", "reasoning"):
                    if etype == "reasoning" and not args.show_reasoning:
                        continue
                    print(event.get("content", ""), end="", flush=True)
                elif etype == "data":
                    deltas.append(event["delta"])
                    reducer.consume(deltas)
                elif etype == "tool-call" and args.verbose:
                    print(f"\n[tool] {event.get('toolName')} {json.dumps(event.get('args'))}")
                elif etype == "error":
                    print(f"\n{event.get('content')}")
                elif etype == "end":
                    break
    print()
    print(f"chat: {chat_id}")
    _print_artifact(reducer)
    return 0


def run_delete(args: argparse.Namespace) -> int:
    base = args.base_url or DEFAULT_API_BASE
    with httpx.Client() as client:
        resp = client.delete(
            _join_url(base, "/chat"), params={"id": args.chat_id}, headers=_headers(args.token), timeout=10
        )
        if resp.status_code >= 400:
            print(f"Failed to delete chat: HTTP {resp.status_code}")
            return 1
        print(resp.json().get("message", "Chat deleted"))
    return 0


def run_history(args: argparse.Namespace) -> int:
    base = args.base_url or DEFAULT_API_BASE
    with httpx.Client() as client:
        resp = client.get(_join_url(base, "/history"), headers=_headers(args.token), timeout=10)
        if resp.status_code >= 400:
            print(f"Failed to fetch history: HTTP {resp.status_code}")
            return 1
        for chat in resp.json().get("chats") or []:
            print(f"{chat['id']}  {chat['createdAt']}  {chat['title']}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Analyst Chat CLI")
    parser.add_argument("--base-url", default=DEFAULT_API_BASE, help="API base URL")
    parser.add_argument(
        "--token", default=os.getenv("ANALYST_CHAT_TOKEN"), help="Bearer token (defaults to $ANALYST_CHAT_TOKEN)"
    )
    subparsers = parser.add_subparsers(dest="command")

    send = subparsers.add_parser("send", help="Send one message and stream the reply")
    send.add_argument("message", help="Message text")
    send.add_argument("--chat-id", help="Continue an existing chat")
    send.add_argument("--model", default=DEFAULT_MODEL, help="Chat model selector")
    send.add_argument("--show-reasoning", action="store_true", help="Print reasoning output")
    send.add_argument("--verbose", action="store_true", help="Print tool calls")

    delete = subparsers.add_parser("delete", help="Delete a chat")
    delete.add_argument("chat_id", help="Chat id")

    subparsers.add_parser("history", help="List your chats")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "send":
        return run_send(args)
    if args.command == "delete":
        return run_delete(args)
    if args.command == "history":
        return run_history(args)
    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
