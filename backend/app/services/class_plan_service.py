"""Class plan service - lesson plans from OpenAI with a template fallback"""
import logging
from typing import Optional, Dict

import openai

from app.core.config import settings
from app.core.metrics import class_plans_counter

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are an experienced martial arts instructor creating detailed lesson plans."

DEFAULT_BELT_LEVEL = "All Levels"
DEFAULT_FOCUS_AREA = "General Training"
DEFAULT_DURATION = 60
DEFAULT_STUDENT_COUNT = 10
DEFAULT_LANGUAGE = "English"

# Lazy initialization - created on first use so a missing key never fails at import
_client = None


def get_openai_client() -> Optional[openai.OpenAI]:
    """OpenAI client, or None when OPENAI_API_KEY is not set"""
    global _client
    if not settings.OPENAI_API_KEY:
        return None
    if _client is None:
        _client = openai.OpenAI(api_key=settings.OPENAI_API_KEY)
    return _client


def class_plan_fallback(belt_level: str, focus_area: str, class_duration: int) -> str:
    """Fixed-structure plan used when AI generation is unavailable"""
    return (
        f"## {belt_level} Class Plan - {focus_area} Focus\n"
        "\n"
        "### Warm-up (10 min)\n"
        "- Jogging and dynamic stretches\n"
        "- Basic kicks and punches in place\n"
        "\n"
        f"### Main Training ({int(class_duration * 0.6)} min)\n"
        f"- {focus_area} technique drills\n"
        "- Partner exercises\n"
        "- Form practice\n"
        "\n"
        "### Cool-down (10 min)\n"
        "- Static stretching\n"
        "- Breathing exercises\n"
        "- Meditation\n"
        "\n"
        "*This is a template plan. Enable AI features for personalized class plans.*"
    )


def _build_prompt(belt_level: str, focus_area: str, class_duration: int, student_count: int, language: str) -> str:
    return (
        "Create a detailed martial arts class plan:\n"
        f"- Belt Level: {belt_level}\n"
        f"- Focus Area: {focus_area}\n"
        f"- Duration: {class_duration} minutes\n"
        f"- Students: {student_count}\n"
        "\n"
        "Include:\n"
        "1. Warm-up activities (5-10 min)\n"
        "2. Technique drills (main focus)\n"
        "3. Partner work or combinations\n"
        "4. Cool-down and meditation\n"
        "\n"
        f"Format with clear sections and timing. Respond in {language}."
    )


def generate_class_plan(
    belt_level: Optional[str] = None,
    focus_area: Optional[str] = None,
    class_duration: Optional[int] = None,
    student_count: Optional[int] = None,
    language: Optional[str] = None
) -> Dict[str, str]:
    """
    Generate a class plan.

    Returns:
        dict: {"plan": markdown text, "source": "ai" or "template"}

    Raises:
        openai.OpenAIError: the OpenAI request failed
    """
    belt_level = belt_level or DEFAULT_BELT_LEVEL
    focus_area = focus_area or DEFAULT_FOCUS_AREA
    class_duration = class_duration or DEFAULT_DURATION

    client = get_openai_client()
    if client is None:
        logger.info("OPENAI_API_KEY not set; returning template class plan")
        class_plans_counter.labels(source="template").inc()
        return {"plan": class_plan_fallback(belt_level, focus_area, class_duration), "source": "template"}

    prompt = _build_prompt(
        belt_level, focus_area, class_duration,
        student_count or DEFAULT_STUDENT_COUNT, language or DEFAULT_LANGUAGE
    )
    try:
        response = client.chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=1000,
            temperature=0.7,
        )
    except openai.OpenAIError as e:
        logger.error(f"Class plan generation failed: {e}")
        class_plans_counter.labels(source="error").inc()
        raise

    content = response.choices[0].message.content if response.choices else None
    if not content:
        logger.warning("OpenAI returned an empty class plan; using template")
        class_plans_counter.labels(source="template").inc()
        return {"plan": class_plan_fallback(belt_level, focus_area, class_duration), "source": "template"}

    class_plans_counter.labels(source="ai").inc()
    return {"plan": content, "source": "ai"}
