# sitegen/core/llm_client.py
import os
import json
import time
import logging
from typing import Any, Dict, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI

from sitegen.core.errors import ModelInvocationError
from sitegen.utils.config import AI_MAX_OUTPUT_TOKENS, AI_MODEL, AI_TIMEOUT, GEMINI_API_KEY, LOG_DIR

logger = logging.getLogger(__name__)


# -------------------------
# LLM init + text call
# -------------------------
def get_llm(temperature: float = 0.7, max_output_tokens: int = AI_MAX_OUTPUT_TOKENS,
            model: Optional[str] = None) -> ChatGoogleGenerativeAI:
    if not GEMINI_API_KEY:
        raise ModelInvocationError("Please set GOOGLE_API_KEY_GEMINI environment variable for Gemini access.")
    return ChatGoogleGenerativeAI(
        model=model or AI_MODEL,
        temperature=temperature,
        max_output_tokens=max_output_tokens,
        google_api_key=GEMINI_API_KEY,
        timeout=AI_TIMEOUT,
        max_retries=0,  # retries belong to the workflow step
    )


def _save_debug_log(prefix: str, payload: Dict[str, Any]):
    os.makedirs(LOG_DIR, exist_ok=True)
    fname = f"{int(time.time())}_{prefix}.json"
    path = os.path.join(LOG_DIR, fname)
    try:
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, ensure_ascii=False)
    except OSError:
        logger.exception("Failed to write debug log")


def _message_text(content: Any) -> str:
    # newer Gemini models return a list of content parts
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for p in content:
            if isinstance(p, str):
                parts.append(p)
            elif isinstance(p, dict) and p.get("type", "text") == "text":
                parts.append(p.get("text", ""))
        return "".join(parts)
    return str(content or "")


async def call_text_generation(system_prompt: str,
                               user_prompt: str,
                               *,
                               temperature: float = 0.7,
                               max_output_tokens: int = AI_MAX_OUTPUT_TOKENS,
                               tag: str = "generation",
                               debug: bool = False) -> str:
    """
    Single model call returning the raw reply text. No retries here: a failure
    raises ModelInvocationError and the calling workflow step decides.
    """
    llm = get_llm(temperature=temperature, max_output_tokens=max_output_tokens)
    messages = [SystemMessage(content=system_prompt), HumanMessage(content=user_prompt)]

    start_ts = time.time()
    try:
        result = await llm.ainvoke(messages)
    except Exception as e:
        logger.exception("LLM call '%s' failed: %s", tag, e)
        if debug:
            _save_debug_log(f"llm_error_{tag}", {"prompt": user_prompt, "error": repr(e)})
        raise ModelInvocationError(f"Gemini API failed: {e}") from e

    text = _message_text(getattr(result, "content", result))
    duration = time.time() - start_ts
    logger.info("LLM call '%s' returned %d chars in %.1fs", tag, len(text), duration)
    logger.debug("Response preview: %s...", text[:200])
    if debug:
        _save_debug_log(f"llm_{tag}", {"prompt": user_prompt, "duration_s": duration, "raw_result": text})

    if not text.strip():
        raise ModelInvocationError(f"Gemini returned an empty response for '{tag}'")
    return text
