import json
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx


ALLOWED_ROLES = {"system", "user", "assistant", "tool"}
PASSTHROUGH_FIELDS = ("tool_calls", "tool_call_id", "name")


@dataclass
class ModelEvent:
    """One normalized item of a streamed model response."""

    type: str  # text | reasoning | tool_call | finish
    content: str = ""
    tool_call_id: Optional[str] = None
    tool_name: Optional[str] = None
    arguments: str = ""
    finish_reason: Optional[str] = None
    usage: Dict[str, Any] = field(default_factory=dict)


class LLMClient:
    """Client for an OpenAI-compatible chat completions endpoint."""

    def __init__(self, base_url: str, api_key: Optional[str] = None, max_output_tokens: Optional[int] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.max_output_tokens = max_output_tokens
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(60.0, read=120.0),
            limits=httpx.Limits(max_connections=32, max_keepalive_connections=16),
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _sanitize_messages(self, messages: Any) -> List[Dict[str, Any]]:
        if not isinstance(messages, list):
            return []
        sanitized: List[Dict[str, Any]] = []
        for msg in messages:
            if not isinstance(msg, dict):
                continue
            role = msg.get("role")
            if role not in ALLOWED_ROLES:
                continue
            content = msg.get("content")
            extras = {k: msg[k] for k in PASSTHROUGH_FIELDS if msg.get(k)}
            # An assistant turn that only requested tools carries no text.
            if role == "assistant" and extras.get("tool_calls") and not content:
                sanitized.append({"role": role, "content": None, **extras})
                continue
            if content is None:
                continue
            cleaned_content: Any
            if isinstance(content, str):
                if not content.strip():
                    continue
                cleaned_content = content
            elif isinstance(content, list):
                cleaned_items = [
                    item
                    for item in content
                    if isinstance(item, dict)
                    and item.get("type")
                    and (item.get("text") or item.get("image_url"))
                ]
                if not cleaned_items:
                    continue
                cleaned_content = cleaned_items
            else:
                cleaned_content = json.dumps(content, ensure_ascii=True)
            sanitized.append({"role": role, "content": cleaned_content, **extras})
        return sanitized

    def _cap_tokens(self, max_tokens: int) -> int:
        if self.max_output_tokens:
            return min(max_tokens, self.max_output_tokens)
        return max_tokens

    def _build_payload(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        temperature: float,
        max_tokens: int,
        stream: bool,
        tools: Optional[List[Dict[str, Any]]] = None,
        response_format: Optional[dict] = None,
    ) -> Dict[str, Any]:
        cleaned = self._sanitize_messages(messages)
        if not cleaned:
            raise ValueError("messages must include at least one non-empty entry")
        if not model:
            raise ValueError("model is required")
        payload: Dict[str, Any] = {
            "model": model,
            "messages": cleaned,
            "temperature": temperature,
            "max_tokens": self._cap_tokens(max_tokens),
            "stream": stream,
        }
        if tools:
            payload["tools"] = tools
        if response_format:
            payload["response_format"] = response_format
        return payload

    def _extract_error_detail(self, response: httpx.Response) -> str:
        try:
            data = response.json()
            if isinstance(data, dict):
                return json.dumps(data, ensure_ascii=True)
        except Exception:
            pass
        try:
            return response.text
        except Exception:
            return ""

    async def chat_completion(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        temperature: float = 0.2,
        max_tokens: int = 512,
        response_format: Optional[dict] = None,
    ) -> Dict[str, Any]:
        payload = self._build_payload(
            model, messages, temperature, max_tokens, stream=False, response_format=response_format
        )
        resp = await self.client.post(f"{self.base_url}/chat/completions", json=payload, headers=self._headers())
        resp.raise_for_status()
        data = resp.json()
        try:
            choices = data.get("choices") or []
            if choices:
                message = choices[0].get("message") or {}
                if not message.get("content"):
                    fallback = message.get("reasoning") or message.get("reasoning_content")
                    if fallback:
                        message["content"] = fallback
                        choices[0]["message"] = message
        except Exception:
            pass
        return data

    async def stream_chat(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        temperature: float = 0.2,
        max_tokens: int = 4096,
    ) -> AsyncGenerator[ModelEvent, None]:
        payload = self._build_payload(model, messages, temperature, max_tokens, stream=True, tools=tools)
        pending_calls: Dict[int, Dict[str, str]] = {}
        finish_reason: Optional[str] = None
        usage: Dict[str, Any] = {}
        async with self.client.stream(
            "POST", f"{self.base_url}/chat/completions", json=payload, headers=self._headers()
        ) as response:
            if response.is_error:
                await response.aread()
                raise httpx.HTTPStatusError(
                    f"Model request failed: {self._extract_error_detail(response)}",
                    request=response.request,
                    response=response,
                )
            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                chunk = line[len("data:"):].strip()
                if chunk == "[DONE]":
                    break
                try:
                    data = json.loads(chunk)
                except json.JSONDecodeError:
                    continue
                if isinstance(data.get("usage"), dict):
                    usage = data["usage"]
                choices = data.get("choices") or []
                if not choices:
                    continue
                choice = choices[0]
                delta = choice.get("delta") or {}
                reasoning = delta.get("reasoning") or delta.get("reasoning_content")
                if reasoning:
                    yield ModelEvent(type="reasoning", content=reasoning)
                if delta.get("content"):
                    yield ModelEvent(type="text", content=delta["content"])
                for call in delta.get("tool_calls") or []:
                    idx = int(call.get("index", 0))
                    slot = pending_calls.setdefault(idx, {"id": "", "name": "", "arguments": ""})
                    if call.get("id"):
                        slot["id"] = call["id"]
                    function = call.get("function") or {}
                    if function.get("name"):
                        slot["name"] = function["name"]
                    if function.get("arguments"):
                        slot["arguments"] += function["arguments"]
                if choice.get("finish_reason"):
                    finish_reason = choice["finish_reason"]
        for idx in sorted(pending_calls):
            slot = pending_calls[idx]
            yield ModelEvent(
                type="tool_call",
                tool_call_id=slot["id"] or f"call_{idx}",
                tool_name=slot["name"],
                arguments=slot["arguments"] or "{}",
            )
        yield ModelEvent(type="finish", finish_reason=finish_reason or "stop", usage=usage)

    async def stream_text(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        temperature: float = 0.2,
        max_tokens: int = 4096,
    ) -> AsyncGenerator[str, None]:
        async for event in self.stream_chat(model, messages, temperature=temperature, max_tokens=max_tokens):
            if event.type == "text" and event.content:
                yield event.content

    async def generate_image(self, model: str, prompt: str, size: str = "1024x1024") -> str:
        payload = {"model": model, "prompt": prompt, "n": 1, "size": size, "response_format": "b64_json"}
        resp = await self.client.post(f"{self.base_url}/images/generations", json=payload, headers=self._headers())
        resp.raise_for_status()
        data = resp.json().get("data") or []
        if not data or not data[0].get("b64_json"):
            raise ValueError("image response did not include b64_json")
        return data[0]["b64_json"]

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()
