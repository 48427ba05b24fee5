"""External concept generators.

The resolver treats a generator as a remote function that invents a new
concept from two inputs. This module exposes:

* `ConceptGenerator`, the protocol the resolver depends on.
* `OpenAIGenerator`, backed by the official OpenAI client with a JSON reply.
* `EchoGenerator`, an offline deterministic fallback.
* `resolve_generator`, which picks one based on the available API key.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional, Protocol

from pydantic import BaseModel, ValidationError, field_validator

from .config import Config
from .store import Concept, recipe_key

logger = logging.getLogger(__name__)


class GenerationFailure(Exception):
    """The generator errored or replied with something that is not a concept."""


# ---------------------------------------------------------------------------
# Reply schema
# ---------------------------------------------------------------------------
class GeneratedConcept(BaseModel):
    name: str
    glyph: str

    @field_validator("name")
    @classmethod
    def _name_is_short_phrase(cls, value: str) -> str:
        value = " ".join(value.split())
        if not value:
            raise ValueError("empty name")
        if len(value) > Config.generator.MAX_NAME_LENGTH:
            raise ValueError(f"name too long: {value!r}")
        return value

    @field_validator("glyph")
    @classmethod
    def _glyph_is_single_symbol(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("empty glyph")
        # ZWJ sequences and flags span several code points
        if len(value) > Config.generator.MAX_GLYPH_LENGTH:
            raise ValueError(f"glyph too long: {value!r}")
        return value

    def to_concept(self) -> Concept:
        return Concept(name=self.name, glyph=self.glyph)


def parse_reply(payload: Any) -> Concept:
    """Validate a raw generator reply (JSON text or mapping) into a Concept."""
    if payload is None or payload == "":
        raise GenerationFailure("empty response")
    try:
        if isinstance(payload, (str, bytes)):
            parsed = GeneratedConcept.model_validate_json(payload)
        else:
            parsed = GeneratedConcept.model_validate(payload)
    except ValidationError as exc:
        raise GenerationFailure(f"malformed response: {exc.error_count()} error(s)") from exc
    return parsed.to_concept()


# ---------------------------------------------------------------------------
# Generator abstractions
# ---------------------------------------------------------------------------
class ConceptGenerator(Protocol):
    """Minimal protocol for concept generators."""

    async def generate(self, first: Concept, second: Concept) -> Concept:
        """Return a new concept for the pair or raise GenerationFailure."""


PROMPT_TEMPLATE = """Combine these two elements into a new single concrete object, concept, or phenomenon: "{first}" and "{second}".

Rules:
1. Result must be a noun.
2. Result must be distinct from the inputs if possible, but logical.
3. If they don't strictly combine physically, use metaphorical or conceptual association.
4. Provide a relevant emoji.
5. Keep the name short (1-3 words).

Reply with a JSON object: {{"name": "<result name>", "glyph": "<one emoji>"}}
"""


def build_prompt(first: Concept, second: Concept) -> str:
    return PROMPT_TEMPLATE.format(first=first.name, second=second.name)


class OpenAIGenerator:
    """Thin wrapper around the official async OpenAI client."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client: Any = None):
        if client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as exc:  # pragma: no cover - exercised when missing dep
                raise RuntimeError(
                    "openai package is required for OpenAIGenerator. Install it with"
                    " `pip install openai`."
                ) from exc
            client = AsyncOpenAI(api_key=api_key)

        self._client = client
        self.model = model or Config.generator.MODEL

    async def generate(self, first: Concept, second: Concept) -> Concept:
        completion = await self._client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": build_prompt(first, second)}],
            response_format={"type": "json_object"},
        )
        if not completion.choices:
            raise GenerationFailure("no choices in completion")
        content = completion.choices[0].message.content
        return parse_reply(content.strip() if content else content)


class EchoGenerator:
    """Offline fallback that fuses the two names in sorted order."""

    async def generate(self, first: Concept, second: Concept) -> Concept:
        low, high = recipe_key(first.name, second.name)
        glyph = first.glyph if first.name == high else second.glyph
        return Concept(name=f"{low} {high}".lower(), glyph=glyph)


def resolve_generator(api_key: Optional[str] = None, model: Optional[str] = None) -> ConceptGenerator:
    # Load .env file
    from dotenv import load_dotenv
    load_dotenv()

    key = api_key or os.getenv("OPENAI_API_KEY")
    if key:
        try:
            return OpenAIGenerator(api_key=key, model=model)
        except RuntimeError as exc:
            logger.warning(f"Falling back to echo generator: {exc}")
    else:
        logger.warning("OPENAI_API_KEY not set - using echo generator.")
    return EchoGenerator()


__all__ = [
    "ConceptGenerator",
    "EchoGenerator",
    "GeneratedConcept",
    "GenerationFailure",
    "OpenAIGenerator",
    "build_prompt",
    "parse_reply",
    "resolve_generator",
]
