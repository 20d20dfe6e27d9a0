# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

import time
import logging
from dataclasses import dataclass
from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
QUERY_RESPONSE_MAX_OUTPUT_TOKENS = 2000


class GeminiInvalidResponseException(Exception):
    pass


@dataclass
class PredictResult:
    text: str
    tokens: int


def _total_tokens(response) -> int:
    usage = getattr(response, "usage_metadata", None)
    if usage is None:
        return 0
    return usage.total_token_count or 0


def call_predict(
    query: str,
    system_instruction: str | None = None,
    temperature: float = 0,
    model: str = DEFAULT_MODEL,
    api_key: str | None = None,
) -> PredictResult:
    """Calls Gemini once and returns the text with its total token usage.

    Raises:
        ValueError: If no API key is given.
        GeminiInvalidResponseException: If the model returned no text.
    """
    if not api_key:
        raise ValueError("A Gemini API key is required")

    client = genai.Client(api_key=api_key)
    start_time = time.time()
    truncated_query = (query[:200] + "...") if len(query) > 200 else query
    logger.debug("Calling Gemini (temperature=%s): %r", temperature, truncated_query)

    response = client.models.generate_content(
        model=model,
        contents=query,
        config=types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=temperature,
            max_output_tokens=QUERY_RESPONSE_MAX_OUTPUT_TOKENS,
        ),
    )
    logger.debug("Gemini call took %.2fs", time.time() - start_time)
    if not response.text:
        raise GeminiInvalidResponseException()
    return PredictResult(text=response.text, tokens=_total_tokens(response))
