"""
Client for the OpenAI-compatible chat-completions service that writes plan content.
"""
import logging
from typing import Any, Dict, List, Optional

import requests

from lifeplanner_api.errors import AIGatewayError, AIResponseFormatError

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS_PATH = "/v1/chat/completions"


class AIGateway:
    """Relays request bodies to ``<base_url>/v1/chat/completions``.

    ``forward`` is a verbatim proxy: the body goes out untouched and the JSON answer
    comes back untouched. ``complete`` is the convenience used by the plan services.
    """

    def __init__(self, base_url: str, model: str, timeout: Optional[float] = None):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    @property
    def url(self) -> str:
        return f"{self.base_url}{CHAT_COMPLETIONS_PATH}"

    def forward(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """POST the body to the model service and return its JSON response."""
        logger.debug(f"AIGateway.forward. url {self.url!r}. model {body.get('model')!r}.")
        try:
            response = requests.post(self.url, json=body, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"AIGateway.forward, failed. url {self.url!r}: {e}")
            raise AIGatewayError("Error al conectar con IA", details=str(e)) from e
        except ValueError as e:
            # Body was not JSON
            logger.error(f"AIGateway.forward, invalid JSON from {self.url!r}: {e}")
            raise AIGatewayError("Error al conectar con IA", details=str(e)) from e

    def complete(self, messages: List[Dict[str, str]], json_mode: bool = False) -> str:
        """Send a chat and return the text of the first choice."""
        body: Dict[str, Any] = {"model": self.model, "messages": messages}
        if json_mode:
            body["response_format"] = {"type": "json_object"}
        data = self.forward(body)
        return extract_message_content(data)


def extract_message_content(data: Any) -> str:
    """Read ``choices[0].message.content`` from a chat-completions response."""
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise AIResponseFormatError("Respuesta IA sin contenido", details=str(data)[:200]) from exc
    if not isinstance(content, str):
        raise AIResponseFormatError("Respuesta IA sin contenido", details=str(data)[:200])
    return content
