"""
Language-model clients.

The engine only needs ``generate(system, user, temperature)``. Retry and
rate policy belong to the client: ``AnthropicClient`` guards the API with a
circuit breaker and otherwise lets failures propagate untouched.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional
import os
import time

import anthropic

from .errors import CircuitOpenError, ConfigError
from .logging_config import get_logger

logger = get_logger("llm")

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


class LLMClient(ABC):
    """Minimal interface every model backend implements."""

    name: str = "llm"

    @abstractmethod
    async def generate(
        self,
        system: str,
        user: str,
        temperature: Optional[float] = None
    ) -> str:
        """Return the model's text reply. May raise."""


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Suspends model calls after repeated consecutive failures.

    CLOSED opens after ``failure_threshold`` failures in a row. Once
    ``cooldown_seconds`` have passed, one trial call is let through
    (HALF_OPEN): success closes the circuit, failure reopens it.
    """

    def __init__(self, failure_threshold: int = 3, cooldown_seconds: float = 60.0, clock=time.monotonic):
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[float] = None

    def can_attempt(self) -> bool:
        if self.state == CircuitState.OPEN and self._clock() - self.opened_at >= self.cooldown_seconds:
            logger.info("[CircuitBreaker] Cooldown expired, allowing a trial call")
            self.state = CircuitState.HALF_OPEN
        return self.state != CircuitState.OPEN

    def record_success(self):
        if self.state == CircuitState.HALF_OPEN:
            logger.info("[CircuitBreaker] Trial call succeeded, closing circuit")
        self.state = CircuitState.CLOSED
        self.failure_count = 0

    def record_failure(self):
        self.failure_count += 1
        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            logger.error(f"[CircuitBreaker] Opening circuit after {self.failure_count} consecutive failures")
            self.state = CircuitState.OPEN
            self.opened_at = self._clock()
        else:
            logger.warning(f"[CircuitBreaker] Failure {self.failure_count}/{self.failure_threshold}")


class AnthropicClient(LLMClient):
    """
    Claude backend using the official Anthropic SDK.

    Example:
        ```python
        llm = AnthropicClient()
        text = await llm.generate("You are terse.", "Say hi")
        ```
    """

    name = "anthropic"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        default_temperature: float = 0.7,
        circuit_breaker: Optional[CircuitBreaker] = None,
        client: Optional[Any] = None
    ):
        """
        Initialize Anthropic client.

        Args:
            api_key: API key (falls back to ANTHROPIC_API_KEY)
            model: Claude model id
            max_tokens: Reply token cap
            default_temperature: Used when a call passes no temperature
            circuit_breaker: Optional breaker (a default one is created)
            client: Pre-built ``anthropic.AsyncAnthropic`` (tests)

        Raises:
            ConfigError: If no API key is available
        """
        self.model = model
        self.max_tokens = max_tokens
        self.default_temperature = default_temperature
        self.circuit_breaker = circuit_breaker or CircuitBreaker()

        if client is None:
            api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
            if not api_key:
                raise ConfigError(
                    "ANTHROPIC_API_KEY environment variable not set",
                    suggestions=[
                        "Set API key: export ANTHROPIC_API_KEY='sk-ant-...'",
                        "Or pass --api-key on the command line",
                    ]
                )
            client = anthropic.AsyncAnthropic(api_key=api_key)

        self.client = client
        self._call_count = 0

    async def generate(
        self,
        system: str,
        user: str,
        temperature: Optional[float] = None
    ) -> str:
        if not self.circuit_breaker.can_attempt():
            raise CircuitOpenError(
                f"Model calls suspended after {self.circuit_breaker.failure_count} "
                f"consecutive failures (cooldown {self.circuit_breaker.cooldown_seconds:.0f}s)"
            )

        self._call_count += 1
        call_id = self._call_count
        start = time.time()
        logger.debug(
            f"[Anthropic] Call #{call_id} model={self.model} "
            f"system={len(system)} chars user={len(user)} chars"
        )

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.default_temperature if temperature is None else temperature,
                system=system,
                messages=[{"role": "user", "content": user}]
            )
        except Exception:
            self.circuit_breaker.record_failure()
            logger.error(f"[Anthropic] Call #{call_id} failed after {time.time() - start:.2f}s")
            raise

        self.circuit_breaker.record_success()

        response_text = ""
        for block in response.content:
            if block.type == "text":
                response_text += block.text

        logger.debug(
            f"[Anthropic] Call #{call_id} complete in {time.time() - start:.2f}s "
            f"({len(response_text)} chars)"
        )
        return response_text
