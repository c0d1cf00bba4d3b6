"""StatementAgent: LLM-based normalization of document analysis output into statement JSON.

This module defines the Groq-backed agent used by the processing pipeline. The agent prompts the
model for the strict bank statement JSON shape, enforces a hard timeout on every call and retries
retryable failures (timeouts, connection errors, malformed or wrongly shaped output) with
exponential backoff. Authentication and quota failures are surfaced immediately.

Malformed output is never patched up: the only clean-up applied is stripping markdown fences and
text around the outermost braces, and that is logged so a caller can tell the model misbehaved.
"""

import asyncio
import json
import re
from typing import Any

import groq
from groq import AsyncGroq
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from statement_api.agents.base import BaseAgent
from statement_api.agents.prompts import (
    RAW_USER_PROMPT_TEMPLATE,
    SYSTEM_PROMPT,
    USER_PROMPT_LOG_LABEL,
    USER_PROMPT_TEMPLATE,
)
from statement_api.agents.registry import AgentRegistry
from statement_api.core.errors import (
    AuthFailedError,
    MalformedOutputError,
    NormalizationError,
    NormalizationTimeoutError,
    QuotaExceededError,
    SchemaInvalidError,
    TransientNormalizationError,
)
from statement_api.core.settings import Settings
from statement_api.core.utils import get_logger, truncate

logger = get_logger("statement-api.agent")

MAX_BACKOFF_SECONDS = 10
FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


def build_user_prompt(analysis: dict[str, Any], file_name: str) -> str:
    """Render the user prompt from the condensed analysis, or the raw payload when there is none."""
    if "lines" not in analysis:
        return RAW_USER_PROMPT_TEMPLATE.format(file_name=file_name, payload=json.dumps(analysis, default=str))
    lines = "\n".join(f"[p{line.get('page', 1)}] {line.get('text', '')}" for line in analysis.get("lines", []))
    forms = "\n".join(f"{pair.get('key', '')}: {pair.get('value', '')}" for pair in analysis.get("forms", []))
    tables = "\n\n".join(
        "\n".join(" | ".join(row) for row in table) for table in analysis.get("tables", [])
    )
    return USER_PROMPT_TEMPLATE.format(
        file_name=file_name,
        lines=lines or "(none)",
        forms=forms or "(none)",
        tables=tables or "(none)",
    )


def parse_statement_json(raw_output: str) -> tuple[dict[str, Any], bool]:
    """Parse model output into a dict; the flag reports whether surrounding text had to be cut away."""
    text = raw_output.strip()
    if not text:
        msg = "Empty response from model"
        raise MalformedOutputError(msg)

    trimmed = False
    fence = FENCE_RE.search(text)
    if fence:
        text = fence.group(1).strip()
        trimmed = True
    first, last = text.find("{"), text.rfind("}")
    if first == -1 or last <= first:
        msg = "Model output contains no JSON object"
        raise MalformedOutputError(msg, details={"length": len(raw_output)})
    if first > 0 or last < len(text) - 1:
        text = text[first : last + 1]
        trimmed = True

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        msg = f"Invalid JSON response from model: {exc}"
        raise MalformedOutputError(msg, details={"position": exc.pos}) from exc
    if not isinstance(data, dict):
        msg = "Model output must be a JSON object"
        raise SchemaInvalidError(msg)
    return data, trimmed


def check_statement_shape(data: dict[str, Any], file_name: str) -> dict[str, Any]:
    """Require an ``accounts`` array; a missing ``fileName`` becomes the uploaded file's name."""
    accounts = data.get("accounts")
    if not isinstance(accounts, list):
        msg = "Schema validation failed: 'accounts' must be an array"
        raise SchemaInvalidError(msg)
    for index, account in enumerate(accounts):
        if not isinstance(account, dict) or not isinstance(account.get("transactions"), list):
            msg = f"Schema validation failed: account {index} must be an object with a 'transactions' array"
            raise SchemaInvalidError(msg)
    if not data.get("fileName"):
        data["fileName"] = file_name
    return data


def map_groq_error(exc: Exception) -> NormalizationError:
    """Translate a Groq SDK exception into a normalization error with the right retry class."""
    if isinstance(exc, groq.APITimeoutError):
        return NormalizationTimeoutError(f"Groq API timeout: {exc}")
    if isinstance(exc, groq.AuthenticationError | groq.PermissionDeniedError):
        return AuthFailedError(f"Groq authentication failed: {exc}")
    if isinstance(exc, groq.RateLimitError):
        return QuotaExceededError(f"Groq quota or rate limit exceeded: {exc}")
    if isinstance(exc, groq.APIConnectionError | groq.InternalServerError):
        return TransientNormalizationError(f"Groq API unavailable: {exc}")
    if isinstance(exc, groq.BadRequestError) and "json_validate_failed" in str(exc):
        return MalformedOutputError(f"Model produced invalid JSON: {exc}")
    return NormalizationError(f"Groq API call failed: {exc}")


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, NormalizationError) and exc.retryable


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    sleep = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(f"Normalization attempt {retry_state.attempt_number} failed ({exc}); retrying in {sleep:.1f}s")


class GroqStatementAgent(BaseAgent):
    """Agent that extracts bank statement JSON with a Groq-hosted LLM."""

    def __init__(self, llm_client: Any, settings: Settings) -> None:
        """Initialize the agent with an async LLM client and settings."""
        self.llm_client = llm_client
        self.settings = settings

    @classmethod
    def from_settings(cls, settings: Settings) -> "GroqStatementAgent":
        return cls(AsyncGroq(api_key=settings.groq_api_key), settings)

    async def normalize(self, analysis: dict[str, Any], file_name: str) -> dict[str, Any]:
        """Extract statement JSON, retrying retryable failures with exponential backoff."""
        if not isinstance(analysis, dict):
            msg = "Invalid analysis data: must be an object"
            raise SchemaInvalidError(msg)
        user_prompt = build_user_prompt(analysis, file_name)
        logger.info(f"Starting normalization for {file_name} (prompt {len(user_prompt)} chars)")
        logger.info(f"PROMPT: {USER_PROMPT_LOG_LABEL}")
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.normalization_max_retries + 1),
            wait=wait_exponential(multiplier=self.settings.normalization_backoff_seconds, max=MAX_BACKOFF_SECONDS),
            retry=retry_if_exception(_is_retryable),
            before_sleep=_log_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    data = await self._attempt(user_prompt, file_name, attempt.retry_state.attempt_number)
        except NormalizationError as exc:
            logger.error(f"Normalization failed for {file_name}: {exc.message}")
            raise
        logger.info(f"Normalization succeeded for {file_name}: {len(data['accounts'])} account(s)")
        return data

    async def _attempt(self, user_prompt: str, file_name: str, attempt_number: int) -> dict[str, Any]:
        logger.info(f"AGENT: Calling LLM (attempt {attempt_number})...")
        timeout = self.settings.normalization_timeout_seconds
        try:
            raw_output = await asyncio.wait_for(self._complete(user_prompt), timeout=timeout)
        except TimeoutError as exc:
            msg = f"Groq API timeout after {timeout}s"
            raise NormalizationTimeoutError(msg) from exc
        except groq.GroqError as exc:
            raise map_groq_error(exc) from exc
        logger.info(f"OUTPUT ({len(raw_output)} chars): {truncate(raw_output, 200)}")
        data, trimmed = parse_statement_json(raw_output)
        if trimmed:
            logger.warning(f"Model output for {file_name} needed fence or boundary trimming before parsing")
        return check_statement_shape(data, file_name)

    async def _complete(self, user_prompt: str) -> str:
        completion = await self.llm_client.chat.completions.create(
            model=self.settings.groq_model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.settings.groq_temperature,
            top_p=self.settings.groq_top_p,
            max_completion_tokens=self.settings.groq_max_completion_tokens,
            response_format={"type": "json_object"},
            stream=self.settings.groq_stream,
        )
        return await self._collect_llm_output(completion)

    async def _collect_llm_output(self, completion: Any) -> str:
        """Collect the full output from a completion or a completion stream."""
        if not self.settings.groq_stream:
            return completion.choices[0].message.content or ""
        raw_output = ""
        async for chunk in completion:
            raw_output += chunk.choices[0].delta.content or ""
        return raw_output


AgentRegistry.register("groq", GroqStatementAgent)
