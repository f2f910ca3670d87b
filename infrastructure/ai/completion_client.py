# infrastructure/ai/completion_client.py
# Cliente de chat completions (Groq, API compatible OpenAI) con respuesta JSON
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List
import requests

from domain.errors import ApiStatusError, EmptyResult, NetworkError, ParseError, RateLimited

logger = logging.getLogger(__name__)

GROQ_URL = "https://api.groq.com/openai/v1/chat/completions"
DEFAULT_MODEL = "llama-3.3-70b-versatile"
TEMPERATURE = 0.3
MAX_TOKENS = 1024
MAX_RETRIES = 2
RETRY_DELAY_SECONDS = 10.0


@dataclass
class CompletionRequest:
    system_prompt: str
    user_prompt: str
    model: str = DEFAULT_MODEL
    temperature: float = TEMPERATURE
    max_tokens: int = MAX_TOKENS
    json_mode: bool = True
    messages: List[Dict[str, str]] = field(init=False)

    def __post_init__(self) -> None:
        self.messages = [
            {"role": "system", "content": self.system_prompt},
            {"role": "user", "content": self.user_prompt},
        ]

    def to_json(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self.model,
            "messages": self.messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if self.json_mode:
            body["response_format"] = {"type": "json_object"}
        return body


def first_choice_content(data: Any) -> str:
    if not isinstance(data, dict) or not isinstance(data.get("choices"), list):
        raise ParseError("Parse error: missing 'choices'")
    choices = data["choices"]
    if not choices:
        raise EmptyResult("Empty response from Groq")
    try:
        content = choices[0]["message"]["content"]
    except (KeyError, TypeError) as e:
        raise ParseError(f"Parse error: {e!r}") from e
    if not isinstance(content, str):
        raise ParseError("Parse error: message content is not text")
    return content


class CompletionClient:
    """
    429 -> espera 10 s y reintenta, como mucho 2 veces (3 intentos).
    La espera es asyncio.sleep: solo suspende la tarea que llama.
    """

    def __init__(
        self,
        api_key: str,
        *,
        url: str = GROQ_URL,
        model: str = DEFAULT_MODEL,
        timeout: float = 60,
        session: requests.Session | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.api_key = api_key
        self.url = url
        self.model = model
        self.timeout = timeout
        # sin sesión inyectada cada intento usa requests.post (conexión propia por llamada)
        self.session = session
        self._sleep = sleep

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def _post(self, body: Dict[str, Any]) -> requests.Response:
        try:
            http = self.session or requests
            return http.post(self.url, headers=self._headers(), json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise NetworkError(f"Network error: {e}") from e

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        request = CompletionRequest(system_prompt=system_prompt, user_prompt=user_prompt, model=self.model)
        body = request.to_json()

        attempts = 0
        while True:
            r = await asyncio.to_thread(self._post, body)
            if r.status_code == 429:
                if attempts < MAX_RETRIES:
                    attempts += 1
                    logger.warning("Groq 429; reintento %d/%d en %.0f s", attempts, MAX_RETRIES, RETRY_DELAY_SECONDS)
                    await self._sleep(RETRY_DELAY_SECONDS)
                    continue
                raise RateLimited(429, r.text or "", service="Groq API")
            if not 200 <= r.status_code < 300:
                raise ApiStatusError(r.status_code, r.text or "", service="Groq API")
            try:
                data = r.json()
            except ValueError as e:
                raise ParseError(f"Parse error: {e}") from e
            return first_choice_content(data)
