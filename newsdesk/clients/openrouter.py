"""OpenRouter API client for structured (JSON) generation."""

import asyncio
import json
import logging
import random
import time
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

import aiohttp
from pydantic import BaseModel, ValidationError

from newsdesk.core.errors import CompletionError, ParseFailure, ValidationFailure
from newsdesk.core.json_recovery import recover
from newsdesk.core.retry import RetryPolicy, run_with_policy

logger = logging.getLogger(__name__)

REPAIR_INSTRUCTION = (
    "Your previous response could not be used: {error}\n"
    "Reply again with only a corrected JSON object that matches the requested "
    "structure. Do not add explanations, markdown fences or any text outside "
    "the JSON."
)


@dataclass
class RepairState:
    """What went wrong on the previous attempt, fed back into the next one."""

    last_output: Optional[str] = None
    last_error: Optional[str] = None

    def record(self, output: str, error: str) -> None:
        self.last_output = output
        self.last_error = error


def build_repair_messages(
    messages: List[Dict[str, str]], state: RepairState
) -> List[Dict[str, str]]:
    """Append the previous bad output and a correction request, if any.

    The base ``messages`` list is never modified.
    """
    if state.last_output is None or state.last_error is None:
        return list(messages)
    return list(messages) + [
        {"role": "assistant", "content": state.last_output},
        {"role": "user", "content": REPAIR_INSTRUCTION.format(error=state.last_error)},
    ]


class OpenRouterClient:
    """Client for the OpenRouter chat completions API."""

    def __init__(
        self,
        api_key: str,
        model: str = None,
        settings=None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize OpenRouter client.

        Args:
            api_key: OpenRouter API key
            model: Model to use (defaults to the configured model)
            settings: Settings instance for configuration values
            rng: Random source for retry jitter
            sleep: Coroutine used for rate-limit and retry delays
        """
        self.api_key = api_key
        self.base_url = "https://openrouter.ai/api/v1"
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "X-Title": "Newsdesk",
        }
        self.model = model or (
            settings.openrouter_model if settings else "google/gemini-2.5-pro"
        )
        self.timeout = settings.openrouter_timeout if settings else 60.0
        self.policy = settings.retry_policy() if settings else RetryPolicy()

        # Rate limiting state
        self.min_request_interval = 1.0
        self.max_backoff_multiplier = 8.0
        self.last_request_time = 0.0
        self.consecutive_failures = 0
        self.backoff_multiplier = 1.0

        self.rng = rng or random.Random()
        self.sleep = sleep

    async def _rate_limit_delay(self):
        """Space requests out, more so after consecutive rate-limit responses."""
        current_time = time.time()
        time_since_last = current_time - self.last_request_time
        effective_interval = self.min_request_interval * self.backoff_multiplier

        if time_since_last < effective_interval:
            delay = effective_interval - time_since_last
            logger.debug(
                f"Rate limiting: waiting {delay:.1f}s before next OpenRouter request"
            )
            await self.sleep(delay)

        self.last_request_time = time.time()

    async def complete(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 2000,
        temperature: float = 0.7,
        json_mode: bool = True,
    ) -> str:
        """Send one chat completion request and return the message text.

        Raises:
            CompletionError: On non-200 responses or an empty completion
            aiohttp.ClientError: On network failures
        """
        if not self.api_key:
            raise CompletionError("OpenRouter API key not configured")

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": False,
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        await self._rate_limit_delay()

        async with aiohttp.ClientSession() as session:
            async with session.post(
                f"{self.base_url}/chat/completions",
                headers=self.headers,
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                if response.status == 429:
                    self.consecutive_failures += 1
                    self.backoff_multiplier = min(
                        self.max_backoff_multiplier, 2.0**self.consecutive_failures
                    )
                    logger.warning(
                        f"Rate limit hit, backing off to {self.backoff_multiplier:.1f}x delay"
                    )
                    raise CompletionError("OpenRouter rate limit hit", status=429)
                if response.status != 200:
                    error_text = await response.text()
                    raise CompletionError(
                        f"OpenRouter API error: {response.status} - {error_text[:200]}",
                        status=response.status,
                    )
                data = await response.json()

        self.consecutive_failures = 0
        self.backoff_multiplier = 1.0

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise CompletionError(f"Invalid response format from OpenRouter API: {e}")
        if not content or not content.strip():
            raise CompletionError("Empty response from OpenRouter API")
        return content.strip()

    async def generate_structured(
        self,
        system_prompt: str,
        user_prompt: str,
        validate: Optional[Callable[[Any], bool]] = None,
        schema: Optional[Type[BaseModel]] = None,
        policy: Optional[RetryPolicy] = None,
        max_tokens: int = 2000,
    ) -> Any:
        """Generate a JSON value, feeding each failure back into the next try.

        Every attempt recovers JSON from the completion and checks it against
        ``schema`` and ``validate``. When an attempt fails, the next request
        carries the bad output as an assistant turn plus a user turn naming
        the exact problem.

        Args:
            system_prompt: System turn
            user_prompt: User turn describing the wanted JSON
            validate: Optional predicate over the decoded value
            schema: Optional pydantic model the value must satisfy
            policy: Retry policy, defaults to the client's policy
            max_tokens: Completion size limit

        Returns:
            The decoded value, or a ``schema`` instance when one is given

        Raises:
            The final attempt's error once the policy is exhausted
        """
        base_messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        state = RepairState()

        async def attempt() -> Any:
            messages = build_repair_messages(base_messages, state)
            raw = await self.complete(messages, max_tokens=max_tokens)

            outcome = recover(raw)
            if not outcome.success:
                state.record(raw, outcome.failure_reason)
                raise ParseFailure(outcome.failure_reason, raw)

            value = outcome.value
            if schema is not None:
                try:
                    value = schema.model_validate(value)
                except ValidationError as e:
                    problem = f"it does not match the schema: {e}"
                    state.record(raw, problem)
                    raise ValidationFailure(problem, value=outcome.value) from e

            if validate is not None and not validate(value):
                problem = "it is missing required fields or has fields of the wrong type"
                state.record(raw, problem)
                raise ValidationFailure(problem, value=value)

            return value

        def on_retry(error: BaseException, attempt_number: int) -> None:
            logger.warning(
                f"Structured generation attempt {attempt_number} failed: {error}"
            )

        active_policy = policy or self.policy
        if active_policy.on_retry is None:
            active_policy = replace(active_policy, on_retry=on_retry)

        return await run_with_policy(
            attempt, active_policy, rng=self.rng, sleep=self.sleep
        )


def dump_value(value: Any) -> str:
    """Serialize a generated value (plain JSON or pydantic model) for output."""
    if isinstance(value, BaseModel):
        return value.model_dump_json(indent=2)
    return json.dumps(value, indent=2, ensure_ascii=False)
