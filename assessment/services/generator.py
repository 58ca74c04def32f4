"""
On-demand question generation used to cover selection shortfalls.

Every generator implements ``generate(category, difficulty, question_type,
count, topic=None)`` and returns unsaved drafts. Generators never raise:
a provider failure yields an empty list so the caller can fall back.
"""
import json
import logging
import random
from typing import Any, Dict, List, Optional, Protocol, Sequence

from openai import OpenAI
from pydantic import ValidationError

from assessment.core.config import Settings
from assessment.core.metrics import GENERATED_QUESTIONS
from assessment.models.schemas import Difficulty, QuestionDraft, QuestionType
from assessment.services.templates import TEMPLATES

logger = logging.getLogger(__name__)

DIFFICULTY_ORDER = [d.value for d in Difficulty]


class QuestionGenerator(Protocol):
    def generate(
        self,
        category: str,
        difficulty: Difficulty,
        question_type: QuestionType,
        count: int,
        topic: Optional[str] = None,
    ) -> List[QuestionDraft]: ...


def fisher_yates(items: List, rng: random.Random) -> List:
    """Shuffle ``items`` in place and return it."""
    for i in range(len(items) - 1, 0, -1):
        j = rng.randint(0, i)
        items[i], items[j] = items[j], items[i]
    return items


class StaticTemplateGenerator:
    """Draws drafts from the built-in template bank, widening the search as needed."""

    def __init__(self, templates: Optional[Dict[str, Dict[str, List[Dict]]]] = None,
                 rng: Optional[random.Random] = None):
        self.templates = templates if templates is not None else TEMPLATES
        self.rng = rng or random.Random()

    def _candidates(self, category: str, difficulty: str) -> List[Dict]:
        # exact match, then same category, then every other category
        pool: List[Dict] = []
        own = self.templates.get(category, {})
        pool.extend(self._tagged(own.get(difficulty, []), category, difficulty))
        for diff in DIFFICULTY_ORDER:
            if diff != difficulty:
                pool.extend(self._tagged(own.get(diff, []), category, diff))
        for cat, by_diff in self.templates.items():
            if cat == category:
                continue
            for diff in DIFFICULTY_ORDER:
                pool.extend(self._tagged(by_diff.get(diff, []), cat, diff))
        seen = set()
        unique = []
        for item in pool:
            if item["question_text"] in seen:
                continue
            seen.add(item["question_text"])
            unique.append(item)
        return unique

    @staticmethod
    def _tagged(items: Sequence[Dict], category: str, difficulty: str) -> List[Dict]:
        return [{**item, "category": category, "difficulty": difficulty} for item in items]

    def generate(self, category, difficulty, question_type, count, topic=None) -> List[QuestionDraft]:
        if count <= 0:
            return []
        pool = self._candidates(category, Difficulty(difficulty).value)
        accepted = {QuestionType(question_type).value}
        if QuestionType(question_type) == QuestionType.MCQ:
            accepted.add(QuestionType.TRUE_FALSE.value)
        typed = [item for item in pool if item["question_type"] in accepted]
        if typed:
            pool = typed
        fisher_yates(pool, self.rng)
        drafts = [QuestionDraft(**item) for item in pool[:count]]
        GENERATED_QUESTIONS.labels(source="template").inc(len(drafts))
        return drafts


def build_prompt(category: str, difficulty: str, question_type: str, count: int, topic: Optional[str]) -> str:
    prompt = f"Generate {count} {difficulty} difficulty {question_type} questions about {category}"
    if topic:
        prompt += f" specifically focusing on {topic}"
    prompt += """.

Return a JSON array where each element looks like:
{
  "question_text": "The question text",
  "options": ["A) ...", "B) ...", "C) ...", "D) ..."],
  "correct_answer": "A) ...",
  "explanation": "Why this is correct"
}
True/False questions use options ["True", "False"] and correct_answer "True" or "False".
Coding questions ask for a Python function named `solution` and, instead of
options, provide "starter_code" and "test_cases": [{"input": "<argument literals>",
"output": "<expected return value as a Python literal>", "hidden": false}].
MCQ questions have exactly 4 options with one correct answer.

Return ONLY the JSON array, no other text."""
    return prompt


def extract_json(content: str) -> Any:
    """Parse a JSON payload, tolerating a surrounding markdown code fence."""
    text = content
    if "```json" in text:
        text = text.split("```json", 1)[1].split("```", 1)[0]
    elif "```" in text:
        text = text.split("```", 1)[1].split("```", 1)[0]
    return json.loads(text.strip())


def _pick(raw: Dict, *keys: str, default=None):
    for k in keys:
        if k in raw and raw[k] is not None:
            return raw[k]
    return default


def drafts_from_payload(payload: Any, category: str, difficulty: Difficulty,
                        question_type: QuestionType) -> List[QuestionDraft]:
    if isinstance(payload, dict):
        payload = payload.get("questions", [payload])
    drafts = []
    for raw in payload or []:
        if not isinstance(raw, dict):
            continue
        try:
            drafts.append(QuestionDraft(
                question_type=question_type,
                difficulty=difficulty,
                category=category,
                question_text=_pick(raw, "question_text", "questionText"),
                options=_pick(raw, "options", default=[]),
                correct_answer=_pick(raw, "correct_answer", "correctAnswer"),
                explanation=_pick(raw, "explanation"),
                starter_code=_pick(raw, "starter_code", "starterCode"),
                test_cases=_pick(raw, "test_cases", "testCases", default=[]),
                is_ai_generated=True,
            ))
        except ValidationError as e:
            logger.warning(f"Dropping malformed generated question: {e.error_count()} errors")
    return drafts


class RemoteQuestionGenerator:
    """Chat-completion backed generator for any OpenAI-compatible endpoint."""

    def __init__(self, settings: Settings, client: Optional[Any] = None):
        self.model = settings.OPENAI_MODEL
        self.temperature = settings.OPENAI_TEMPERATURE
        self.max_tokens = settings.OPENAI_MAX_TOKENS
        if client is None:
            key = settings.OPENAI_API_KEY.get_secret_value() if settings.OPENAI_API_KEY else None
            client = OpenAI(api_key=key, base_url=settings.OPENAI_BASE_URL or None)
        self.client = client

    def generate(self, category, difficulty, question_type, count, topic=None) -> List[QuestionDraft]:
        if count <= 0:
            return []
        difficulty, question_type = Difficulty(difficulty), QuestionType(question_type)
        prompt = build_prompt(category, difficulty.value, question_type.value, count, topic)
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": "You are an expert educator writing assessment questions. "
                                                  "Always respond with a valid JSON array."},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
            payload = extract_json(resp.choices[0].message.content or "")
        except Exception as e:
            logger.warning(f"Remote question generation failed for {category}/{difficulty.value}: {e}")
            return []
        drafts = drafts_from_payload(payload, category, difficulty, question_type)[:count]
        GENERATED_QUESTIONS.labels(source="remote").inc(len(drafts))
        return drafts


class FallbackGenerator:
    """Returns the first non-empty result from an ordered list of generators."""

    def __init__(self, generators: Sequence[QuestionGenerator]):
        self.generators = list(generators)

    def generate(self, category, difficulty, question_type, count, topic=None) -> List[QuestionDraft]:
        for gen in self.generators:
            drafts = gen.generate(category, difficulty, question_type, count, topic)
            if drafts:
                return drafts
        return []


def build_generator(settings: Settings, rng: Optional[random.Random] = None) -> QuestionGenerator:
    static = StaticTemplateGenerator(rng=rng)
    if settings.OPENAI_API_KEY:
        return FallbackGenerator([RemoteQuestionGenerator(settings), static])
    return static
