# survey_analytics/agents/utils.py
from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import jsonschema
from dotenv import load_dotenv
from langchain_core.messages import HumanMessage
from langchain_openai import ChatOpenAI
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from survey_analytics.app.logging import get_logger


log = get_logger(__name__)


# -------------------------
# Exceptions
# -------------------------

class AgentError(Exception):
    pass


class PromptNotFound(AgentError):
    pass


class AgentOutputParseError(AgentError):
    pass


class AgentOutputValidationError(AgentError):
    pass


# -------------------------
# LLM Factory
# -------------------------

def get_llm(
    model_name: str,
    temperature: float = 0.0,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
) -> ChatOpenAI:
    """
    Creates and returns a configured ChatOpenAI client.
    Falls back to OPENAI_API_KEY from the environment (or .env file).
    """
    load_dotenv()
    # Client-side retries are disabled; RetryPolicy owns the retry budget.
    return ChatOpenAI(
        model=model_name,
        temperature=temperature,
        api_key=api_key,
        base_url=base_url,
        max_retries=0,
    )


# -------------------------
# Helper Functions
# -------------------------

def render_prompt(template: str, variables: Dict[str, Any]) -> str:
    """
    Replaces {{ variable }} placeholders in the template with values from the dictionary.
    Handles JSON serialization for dict/list values.
    """
    def repl(match: re.Match[str]) -> str:
        key = match.group(1).strip()
        if key not in variables:
            # Leave the placeholder if variable is missing
            return match.group(0)

        v = variables[key]
        if isinstance(v, (dict, list)):
            return json.dumps(v, ensure_ascii=False, indent=2)
        return str(v)

    return re.sub(r"\{\{\s*([a-zA-Z0-9_\.]+)\s*\}\}", repl, template)


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Extracts and parses a JSON object from a string.
    Handles Markdown code blocks (```json ... ```) and surrounding text.
    """
    s = text.strip()

    if s.startswith("```"):
        newline_idx = s.find("\n")
        if newline_idx != -1:
            s = s[newline_idx + 1:]
        if s.endswith("```"):
            s = s[:-3]
    s = s.strip()

    try:
        obj = json.loads(s)
    except ValueError:
        # Fallback: try the span between the first '{' and the last '}'
        start = s.find("{")
        end = s.rfind("}")
        if start == -1 or end == -1 or end <= start:
            raise AgentOutputParseError(f"Could not find a JSON object in output: {text[:100]}...")
        try:
            obj = json.loads(s[start : end + 1])
        except ValueError as e:
            raise AgentOutputParseError(f"Failed to parse JSON object: {e}") from e

    if not isinstance(obj, dict):
        raise AgentOutputParseError("Expected a JSON object at top level.")
    return obj


def validate_with_jsonschema(payload: Dict[str, Any], schema: Optional[Dict[str, Any]]) -> None:
    if schema is None:
        return
    try:
        jsonschema.validate(instance=payload, schema=schema)
    except jsonschema.ValidationError as e:
        raise AgentOutputValidationError(e.message) from e


# -------------------------
# Failure classification
# -------------------------

_RATE_LIMIT_CODES = {"429", "rate_limit_exceeded", "insufficient_quota", "resource_exhausted"}
_OVERLOAD_CODES = {"503", "unavailable", "service_unavailable", "overloaded"}


def error_code(exc: BaseException) -> Optional[str]:
    # First of status_code / status / code that the error carries.
    for attr in ("status_code", "status", "code"):
        v = getattr(exc, attr, None)
        if v is not None and not callable(v):
            return str(v).lower()
    return None


def is_rate_limit(exc: BaseException) -> bool:
    code = error_code(exc)
    message = str(exc).lower()
    return code in _RATE_LIMIT_CODES or "429" in message or "quota" in message


def is_overloaded(exc: BaseException) -> bool:
    return error_code(exc) in _OVERLOAD_CODES


def is_transient(exc: BaseException) -> bool:
    return is_rate_limit(exc) or is_overloaded(exc)


# -------------------------
# Retry policy
# -------------------------

@dataclass(frozen=True)
class RetryPolicy:
    """
    Exponential backoff for transient failures only: waits `initial_delay`,
    then doubles, for at most `retries` extra attempts. Any other error is
    raised on the first occurrence.
    """

    retries: int = 3
    initial_delay: float = 2.0
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    async def call(self, fn: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> Any:
        retrying = AsyncRetrying(
            retry=retry_if_exception(is_transient),
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_exponential(multiplier=self.initial_delay, exp_base=2),
            sleep=self.sleep,
            before_sleep=_log_retry,
            reraise=True,
        )
        return await retrying(fn, *args, **kwargs)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    log.warning(
        "Transient generation failure (%s); retrying in %.1fs (attempt %d)",
        error_code(exc) if exc else None,
        delay,
        retry_state.attempt_number,
    )


# -------------------------
# Generation capability
# -------------------------

class GenerationClient:
    """
    Structured generation: an instruction plus an output JSON Schema in,
    a validated JSON object out. Errors from the model provider propagate
    unchanged (they carry the status code used for retry decisions).
    """

    def __init__(self, llm: Any):
        self.llm = llm

    @classmethod
    def from_settings(cls, settings: Any, model: Optional[str] = None) -> "GenerationClient":
        return cls(
            get_llm(
                model or settings.analysis_model,
                temperature=settings.temperature,
                api_key=settings.openai_api_key,
                base_url=settings.llm_base_url,
            )
        )

    async def generate(self, instruction: str, schema: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        prompt = instruction
        if schema is not None:
            prompt += (
                "\n\nReturn ONLY a JSON object that satisfies this JSON Schema:\n"
                + json.dumps(schema, ensure_ascii=False, indent=2)
            )
        ai_msg = await self.llm.ainvoke([HumanMessage(content=prompt)])
        payload = parse_json_object(_message_text(ai_msg.content))
        validate_with_jsonschema(payload, schema)
        return payload


def _message_text(content: Any) -> str:
    # Chat content is either a string or a list of content blocks.
    if isinstance(content, str):
        return content
    parts = []
    for block in content or []:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text", "")))
    return "".join(parts)
