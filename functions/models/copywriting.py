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

"""Prompt building and the draft / critique / rewrite generation loop."""

import json
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, List

from models import gemini
from shared.content_types import CopyControls, get_content_type

DRAFT_TEMPERATURE = 0.8
CRITIQUE_TEMPERATURE = 0.3
REWRITE_TEMPERATURE = 0.7

# Ratings are 1..5; anything below this is fed back as a preference.
FEEDBACK_RATING_THRESHOLD = 4
MAX_FEEDBACK_ITEMS = 3
MAX_VOICE_SAMPLES = 3
MAX_CUSTOMER_REVIEWS = 5

CRITIQUE_SYSTEM_PROMPT = """You are a direct-response copywriting expert. Review this copy and identify:
1. Weak headlines (not curiosity-driven)
2. Vague language (not specific enough)
3. Missing emotional hooks
4. Weak CTAs (not action-oriented)
5. Areas that don't match the brand voice"""

REWRITE_INSTRUCTION = (
    "Rewrite the copy addressing all critique points. Make it tighter, more "
    "specific, more emotional, and more aligned with the brand voice."
)

CONTROL_DESCRIPTIONS = {
    "length": {
        "short": "Keep it brief.",
        "medium": "Use a moderate length.",
        "long": "Go long-form and thorough.",
    },
    "emotion": {
        "low": "Keep the emotional register low and factual.",
        "moderate": "Use a moderate amount of emotion.",
        "high": "Lean into emotion and storytelling.",
    },
    "urgency": {
        "none": "Do not add urgency.",
        "soft": "Add gentle urgency.",
        "strong": "Add strong, explicit urgency.",
    },
    "tone": {
        "casual": "Write casually, like talking to a friend.",
        "balanced": "Balance warmth and professionalism.",
        "formal": "Write formally.",
    },
}


@dataclass
class CopyResult:
    copy: str
    tokens_used: int
    generation_time_ms: int


def resolve_controls(content_type: str, overrides: Dict[str, Any] | None) -> CopyControls:
    """Content type defaults, with any known override applied."""
    entry = get_content_type(content_type)
    values = asdict(entry.default_controls) if entry else asdict(CopyControls())
    for key, value in (overrides or {}).items():
        if key in CONTROL_DESCRIPTIONS and value in CONTROL_DESCRIPTIONS[key]:
            values[key] = value
    return CopyControls(**values)


TEXT_KEYS = ("text", "content", "review", "quote")


def _text_items(value: Any) -> List[str]:
    """Profile text lists as non-empty strings.

    Clients send plain strings, single strings, or objects such as
    ``{"text": ..., "author": ...}``; an object without a text field is kept
    as its JSON.
    """
    if not value:
        return []
    if not isinstance(value, list):
        value = [value]
    items = []
    for item in value:
        if isinstance(item, dict):
            text = next((item[k] for k in TEXT_KEYS if isinstance(item.get(k), str)), None)
            item = text if text is not None else json.dumps(item, sort_keys=True)
        elif item is None:
            continue
        item = str(item).strip()
        if item:
            items.append(item)
    return items


def build_system_prompt(context: Dict[str, Any]) -> str:
    prompt = "You are an expert copywriter specializing in conversion-focused content."

    profile = context.get("business_profile") or {}
    if profile:
        prompt += (
            "\n\nBUSINESS CONTEXT:"
            f"\nBusiness: {profile.get('business_name') or 'Not specified'}"
            f"\nIndustry: {profile.get('industry') or 'Not specified'}"
            f"\nWhat they sell: {profile.get('what_you_sell') or 'Not specified'}"
            f"\nTarget customer: {profile.get('target_customer') or 'Not specified'}"
        )

        voice = profile.get("voice_profile")
        if isinstance(voice, dict) and voice:
            phrases = _text_items(voice.get("signature_phrases"))
            prompt += (
                "\n\nBRAND VOICE PROFILE:"
                f"\n{voice.get('style_summary') or ''}"
                "\nTone Characteristics:"
                f"\n{json.dumps(voice.get('tone_scores') or {}, indent=2)}"
                "\nSignature Phrases:"
                f"\n{chr(10).join(phrases) if phrases else 'None identified'}"
            )

        samples = _text_items(profile.get("voice_samples"))
        if samples:
            prompt += "\n\nVOICE SAMPLES (write in this style):\n" + "\n\n---\n\n".join(
                samples[:MAX_VOICE_SAMPLES]
            )

        reviews = _text_items(profile.get("customer_reviews"))
        if reviews:
            prompt += "\n\nCUSTOMER VOICE (use their language):\n" + "\n".join(
                reviews[:MAX_CUSTOMER_REVIEWS]
            )

    feedback = [
        f
        for f in context.get("past_feedback") or []
        if f.get("user_rating") is not None
        and f["user_rating"] < FEEDBACK_RATING_THRESHOLD
    ][:MAX_FEEDBACK_ITEMS]
    if feedback:
        prompt += "\n\nIMPORTANT - USER PREFERENCES (from past feedback):"
        for f in feedback:
            reason = f.get("feedback_text") or ", ".join(f.get("feedback_tags") or [])
            prompt += f"\n- Previously rated {f['user_rating']}/5 because: {reason}"
        prompt += "\n\nAdjust your writing to address these concerns."

    return prompt


def build_user_prompt(content_type: str, context: Dict[str, Any]) -> str:
    prompt = ""

    product = context.get("product_to_promote")
    if product:
        prompt += "Product/Offer to promote:\n"
        prompt += f"Name: {product.get('product_name', '')}\n"
        prompt += f"Type: {product.get('product_type', '')}\n"
        if product.get("price"):
            prompt += f"Price: ${product['price']}\n"
        if product.get("description"):
            prompt += f"Description: {product['description']}\n"
        prompt += "\n"

    if context.get("additional_context"):
        prompt += f"Additional context: {context['additional_context']}\n\n"

    entry = get_content_type(content_type)
    if entry:
        prompt += f"Write a {entry.name}.\n\n{entry.guidance}"
    else:
        prompt += f"Write compelling {content_type} copy."

    controls = resolve_controls(content_type, context.get("controls"))
    prompt += "\n\nSTYLE CONTROLS:"
    for key, value in asdict(controls).items():
        prompt += f"\n- {CONTROL_DESCRIPTIONS[key][value]}"
    return prompt


def build_critique_prompt(draft: str, context: Dict[str, Any]) -> str:
    samples = _text_items((context.get("business_profile") or {}).get("voice_samples"))
    return (
        f"COPY TO CRITIQUE:\n{draft}\n\n"
        f"BRAND VOICE SAMPLES:\n{chr(10).join(samples) if samples else 'None provided'}"
    )


def generate_copy(
    content_type: str,
    context: Dict[str, Any],
    *,
    api_key: str,
    model: str = gemini.DEFAULT_MODEL,
) -> CopyResult:
    """Generates copy in three passes: draft, critique, then rewrite.

    Args:
        content_type: A catalog content type id (unknown ids get a generic prompt).
        context: business_profile, product_to_promote, additional_context,
            controls and past_feedback, all optional.
        api_key: The Gemini API key.
        model: The model to call with.

    Returns:
        CopyResult: The rewritten copy, summed token usage and wall time.
    """
    start_time = time.time()
    system_prompt = build_system_prompt(context)

    draft = gemini.call_predict(
        build_user_prompt(content_type, context),
        system_instruction=system_prompt,
        temperature=DRAFT_TEMPERATURE,
        model=model,
        api_key=api_key,
    )
    critique = gemini.call_predict(
        build_critique_prompt(draft.text, context),
        system_instruction=CRITIQUE_SYSTEM_PROMPT,
        temperature=CRITIQUE_TEMPERATURE,
        model=model,
        api_key=api_key,
    )
    final = gemini.call_predict(
        f"ORIGINAL COPY:\n{draft.text}\n\nCRITIQUE:\n{critique.text}\n\n{REWRITE_INSTRUCTION}",
        system_instruction=system_prompt,
        temperature=REWRITE_TEMPERATURE,
        model=model,
        api_key=api_key,
    )

    return CopyResult(
        copy=final.text,
        tokens_used=draft.tokens + critique.tokens + final.tokens,
        generation_time_ms=int((time.time() - start_time) * 1000),
    )
