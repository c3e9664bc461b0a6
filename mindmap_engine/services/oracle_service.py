import logging
import asyncio
from typing import Optional, Protocol

import google.generativeai as genai
from groq import AsyncGroq

from mindmap_engine.core.config import Settings, settings

logger = logging.getLogger(__name__)


class OracleConfigurationError(Exception):
    """The active provider has no credential configured."""


class StructuringOracle(Protocol):
    """text → raw structured (JSON) response. Raises on any transport failure."""

    name: str

    async def structure(self, text: str) -> str:
        ...


# ── Anti-Hallucination System Prompt ─────────────────────────────────────────

GROUNDING_PREAMBLE = (
    "CRITICAL RULES:\n"
    "1. You MUST base everything strictly on the provided document text.\n"
    "2. Do NOT use any external knowledge.\n"
    "3. Do NOT hallucinate or invent facts.\n"
    "4. Output ONLY valid JSON — no markdown fences, no commentary.\n\n"
)

MINDMAP_SYSTEM_PROMPT = (
    GROUNDING_PREAMBLE +
    "You are a knowledge-structuring expert.\n"
    "Summarize the text into a hierarchical mind map.\n\n"
    "Output MUST be valid JSON matching this EXACT schema:\n"
    "{\n"
    '  "title": "Short title for the whole map",\n'
    '  "root": {\n'
    '    "id": "root",\n'
    '    "text": "Main Topic",\n'
    '    "description": "One sentence on the main topic",\n'
    '    "level": 0,\n'
    '    "children": [\n'
    "      {\n"
    '        "id": "concept-1",\n'
    '        "text": "Concept Name",\n'
    '        "description": "Key point from the text",\n'
    '        "level": 1,\n'
    '        "children": [\n'
    '          {"id": "sub-1-1", "text": "Sub-concept", "level": 2, "children": []}\n'
    "        ]\n"
    "      }\n"
    "    ]\n"
    "  }\n"
    "}\n\n"
    "Constraints:\n"
    "- Exactly one root node at level 0; every child is one level below its parent.\n"
    "- 3-8 top-level concept nodes, 2-4 levels deep.\n"
    "- Max 8 words per text label.\n"
    "- Unique kebab-case IDs across the whole map (e.g. 'concept-1', 'sub-1-2').\n"
    "- Labels must be in the SAME language as the source text.\n"
)


def build_user_prompt(text: str) -> str:
    return f"Create a comprehensive mind map for the following text.\n\nSOURCE TEXT:\n{text}"


# ── Providers ────────────────────────────────────────────────────────────────

class GeminiOracle:
    """Gemini with JSON mode and temperature=0."""

    name = "Gemini"

    def __init__(self, api_key: str, model_name: str, timeout: int):
        genai.configure(api_key=api_key, transport="rest")
        self.model_name = model_name
        self.timeout = timeout

    async def structure(self, text: str) -> str:
        logger.info(f"[ORACLE] Calling Gemini ({self.model_name})...")
        model = genai.GenerativeModel(
            model_name=self.model_name,
            generation_config={
                "response_mime_type": "application/json",
                "temperature": 0,
            },
        )
        full_prompt = f"{MINDMAP_SYSTEM_PROMPT}\n\nUser Task:\n{build_user_prompt(text)}"
        response = await asyncio.to_thread(
            model.generate_content,
            full_prompt,
            request_options={"timeout": self.timeout},
        )
        logger.info("[ORACLE] ✓ Gemini call succeeded")
        return response.text


class GroqOracle:
    """Groq (Llama 3) with JSON mode and temperature=0. SDK retries are disabled."""

    name = "Groq"

    def __init__(self, api_key: str, model_name: str, timeout: int):
        self.client = AsyncGroq(api_key=api_key, timeout=timeout, max_retries=0)
        self.model_name = model_name

    async def structure(self, text: str) -> str:
        logger.info(f"[ORACLE] Calling Groq ({self.model_name})...")
        completion = await self.client.chat.completions.create(
            model=self.model_name,
            messages=[
                {"role": "system", "content": MINDMAP_SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(text)},
            ],
            response_format={"type": "json_object"},
            temperature=0,
            max_tokens=8000,
        )
        result = completion.choices[0].message.content
        logger.info("[ORACLE] ✓ Groq call succeeded")
        return result


def build_oracle(config: Settings = settings) -> StructuringOracle:
    api_key: Optional[str] = config.oracle_api_key
    if not api_key:
        raise OracleConfigurationError(
            f"{config.oracle_api_key_name} not found. "
            f"Please add {config.oracle_api_key_name} to your .env file."
        )

    if config.AI_PROVIDER == "groq":
        return GroqOracle(api_key, config.GROQ_MODEL, config.AI_TIMEOUT_SECONDS)
    return GeminiOracle(api_key, config.GEMINI_MODEL, config.AI_TIMEOUT_SECONDS)
