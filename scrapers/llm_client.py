"""Structured output calls through OpenAI's Responses API."""
from __future__ import annotations

import logging
from typing import Optional, Type, TypeVar

from openai import APIStatusError, OpenAI
from pydantic import BaseModel

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class StructuredLLM:
    """Thin wrapper returning parsed pydantic models from the model."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ) -> None:
        self.model = model
        self.client = client or OpenAI(api_key=api_key, base_url=base_url)

    @classmethod
    def from_settings(cls, settings) -> "StructuredLLM":
        return cls(
            model=settings.openai_model,
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
        )

    def generate_structured(
        self,
        system: str,
        prompt: str,
        schema: Type[ModelT],
        temperature: float = 0.2,
    ) -> ModelT:
        """Return ``schema`` parsed from the model's answer to ``prompt``.

        Raises ``RuntimeError`` when the API is out of credits or the answer
        could not be parsed into ``schema``.
        """
        try:
            resp = self.client.responses.parse(
                model=self.model,
                temperature=temperature,
                input=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": prompt},
                ],
                text_format=schema,
            )
        except APIStatusError as exc:
            if exc.response.status_code == 429:
                raise RuntimeError("OpenAI API returned status 429: out of credits") from exc
            raise

        parsed = resp.output_parsed
        if parsed is None:
            raise RuntimeError(f"model returned no parsable {schema.__name__}")
        return parsed
