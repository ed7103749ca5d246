"""Test doubles and helpers shared by the API tests."""

from typing import Any, Dict, List

from fastapi.testclient import TestClient

from lifeplanner_api.errors import AIGatewayError
from lifeplanner_api.services.ai_gateway import AIGateway

TEST_SECRET = "test-secret-0123456789abcdef0123456789"


class ScriptedAIGateway(AIGateway):
    """
    A gateway with predefined replies, consumed in order.

    A reply starting with "raise:" makes the call fail with the rest of the text as
    the upstream message.
    """

    def __init__(self, responses: List[str] = None):
        super().__init__("http://ai.test", "test-model")
        self.responses = list(responses or [])
        self.requests: List[Dict[str, Any]] = []

    def script(self, *responses: str) -> None:
        self.responses.extend(responses)

    def forward(self, body: Dict[str, Any]) -> Dict[str, Any]:
        self.requests.append(body)
        text = self.responses.pop(0) if self.responses else "Mock response"
        if text.startswith("raise:"):
            raise AIGatewayError("Error al conectar con IA", details=text.split(":", 1)[1])
        return {
            "id": "chatcmpl-test",
            "object": "chat.completion",
            "choices": [{"index": 0, "message": {"role": "assistant", "content": text}}],
        }


def register_and_login(client: TestClient, email: str, password: str = "MiPassSegura123") -> Dict[str, str]:
    """Create an account and return the Authorization header for it"""
    response = client.post("/auth/register", json={"email": email, "password": password})
    assert response.status_code == 201, response.text
    response = client.post("/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}
