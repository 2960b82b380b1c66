"""
Shared fixtures and utilities for integration tests.

The gateway runs under uvicorn in a background thread and talks real HTTP to
a fake upstream that also runs under uvicorn.
"""

import json
import socket
import threading
import time
from typing import Any, Dict, List

import httpx
import pytest
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from claude_gateway.config import GatewayConfig


class IntegrationTestServer:
    """Runs an ASGI app on a free local port in a daemon thread."""

    def __init__(self, app, host: str = "127.0.0.1", health_path: str = "/"):
        self.app = app
        self.host = host
        self.health_path = health_path
        self.port = None
        self.server = None
        self.server_thread = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def start(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.bind((self.host, 0))
        self.port = sock.getsockname()[1]
        sock.close()

        config = uvicorn.Config(self.app, host=self.host, port=self.port, log_level="warning")
        self.server = uvicorn.Server(config)
        self.server_thread = threading.Thread(target=self.server.run, daemon=True)
        self.server_thread.start()

        max_wait = 15
        for _ in range(max_wait * 10):
            try:
                response = httpx.get(f"{self.url}{self.health_path}", timeout=2.0)
                if response.status_code == 200:
                    return
            except httpx.HTTPError:
                pass
            time.sleep(0.1)
        raise TimeoutError(f"Server failed to start within {max_wait} seconds on port {self.port}")

    def stop(self):
        if self.server:
            self.server.should_exit = True
        if self.server_thread:
            self.server_thread.join(timeout=5)


def sse(payloads: List[Dict[str, Any]]) -> StreamingResponse:
    async def body():
        for payload in payloads:
            yield f"data: {json.dumps(payload)}\n\n"
        yield "data: [DONE]\n\n"
    return StreamingResponse(body(), media_type="text/event-stream")


def chat_completion(message: Dict[str, Any], finish_reason: str) -> Dict[str, Any]:
    return {
        "id": "chatcmpl-fake",
        "object": "chat.completion",
        "created": 0,
        "model": "fake",
        "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


def build_upstream_app(received: List[Dict[str, Any]]) -> FastAPI:
    """Fake upstream serving the three wire dialects the gateway speaks."""
    upstream = FastAPI()

    @upstream.get("/health")
    async def health():
        return {"status": "ok"}

    @upstream.post("/v1/chat/completions")
    async def chat_completions(request: Request):
        body = await request.json()
        received.append({"path": "chat", "body": body, "headers": dict(request.headers),
                         "query": dict(request.query_params)})
        if body.get("tools"):
            return chat_completion({
                "role": "assistant",
                "content": None,
                "tool_calls": [{"id": "call_weather", "type": "function",
                                "function": {"name": "get_weather", "arguments": "{\"city\": \"Paris\"}"}}],
            }, "tool_calls")
        if body.get("stream"):
            return sse([
                {"choices": [{"index": 0, "delta": {"role": "assistant"}, "finish_reason": None}]},
                {"choices": [{"index": 0, "delta": {"content": "Hello "}, "finish_reason": None}]},
                {"choices": [{"index": 0, "delta": {"content": "world"}, "finish_reason": None}]},
                {"choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}],
                 "usage": {"prompt_tokens": 10, "completion_tokens": 2, "total_tokens": 12}},
            ])
        return chat_completion({"role": "assistant", "content": "Hello from upstream"}, "stop")

    @upstream.post("/v1/responses")
    async def responses(request: Request):
        body = await request.json()
        received.append({"path": "responses", "body": body, "headers": dict(request.headers),
                         "query": dict(request.query_params)})
        return {
            "id": "resp_fake",
            "status": "completed",
            "output": [
                {"type": "reasoning", "id": "rs_1", "summary": []},
                {"type": "message", "role": "assistant",
                 "content": [{"type": "output_text", "text": "Reasoned answer"}]},
            ],
            "usage": {"input_tokens": 20, "output_tokens": 4},
        }

    @upstream.post("/v1/v2/crawl")
    async def crawl(request: Request):
        body = await request.json()
        received.append({"path": "crawl", "body": body, "headers": dict(request.headers),
                         "query": dict(request.query_params)})
        if any(message["role"] == "tool" for message in body["messages"]):
            return chat_completion({"role": "assistant", "content": "It is sunny."}, "stop")
        return chat_completion({
            "role": "assistant",
            "content": None,
            "tool_calls": [{
                "id": "call_gemini",
                "type": "function",
                "function": {"name": "get_weather", "arguments": "{\"city\": \"Rome\"}"},
                "extra_content": {"google": {"thought_signature": "sig-gemini"}},
            }],
        }, "tool_calls")

    @upstream.post("/v1/fail/chat/completions")
    async def fail(request: Request):
        return JSONResponse(status_code=429, content={"error": {"message": "Too many requests"}})

    return upstream


@pytest.fixture(scope="module")
def upstream_requests():
    return []


@pytest.fixture(scope="module")
def upstream_server(upstream_requests):
    server = IntegrationTestServer(build_upstream_app(upstream_requests), health_path="/health")
    server.start()
    yield server
    server.stop()


@pytest.fixture(scope="module")
def gateway_server(upstream_server):
    """The real gateway app, configured to route every provider to the fake upstream."""
    import claude_gateway.main as main_module

    base_url = f"{upstream_server.url}/v1"
    config = GatewayConfig.model_validate({
        "providers": {
            "upstream": {
                "type": "openai",
                "baseUrl": base_url,
                "apiKey": "sk-upstream",
                "models": {"gpt-4o": {"name": "gpt-4o"}},
            },
            "hub": {
                "type": "modelhub",
                "baseUrl": base_url,
                "apiKey": "hub-key",
                "options": {"apiKeyParam": "ak", "mode": "responses"},
                "models": {"o3": {"name": "o3-2025", "options": {"supportsTemperature": False}}},
            },
            "gem": {
                "type": "gemini-mode",
                "baseUrl": base_url,
                "apiKey": "hub-key",
                "options": {"apiKeyParam": "ak"},
                "models": {"gemini": {"name": "gemini-2.5-pro"}},
            },
            "broken": {
                "type": "openai",
                "baseUrl": f"{upstream_server.url}/v1/fail",
                "apiKey": "sk-broken",
                "models": {"m": {"name": "m"}},
            },
        },
        "modelMapping": {
            "sonnet": "upstream/gpt-4o",
            "opus": "hub/o3",
            "haiku": "gem/gemini",
        },
    }).validate_providers()

    patcher = pytest.MonkeyPatch()
    patcher.setattr(main_module, "get_gateway_config", lambda settings=None: config)
    server = IntegrationTestServer(main_module.app)
    server.start()
    yield server
    server.stop()
    patcher.undo()
