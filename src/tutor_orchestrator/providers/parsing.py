"""
Lenient parsing of model text into normalized result bodies.

Models are asked for JSON but frequently wrap it in prose or code fences, or
ignore the instruction altogether. Each ``parse_*`` function first looks for a
JSON document and validates it; when that fails it falls back to a
deterministic reading of the free text so a usable body is always produced
from non-empty text.
"""

import logging
import re
from typing import Any, Iterable, List, Optional

import orjson
from pydantic import ValidationError

from ..exceptions import MalformedResponseError
from ..models import CodeAnalysis, Difficulty, QuizQuestion, QuizSet, TutorResponse

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\[{][\s\S]*?[\]}])\s*```", re.IGNORECASE)
_OBJECT = re.compile(r"\{[\s\S]*\}")
_ARRAY = re.compile(r"\[[\s\S]*\]")
_CODE_BLOCK = re.compile(r"```[\s\S]*?```")
_TOPICS = re.compile(r"(?:related(?:\s+(?:topics?|concepts?))?|topics?|concepts?|learn|explore)[:\s]+([^\n]+)", re.IGNORECASE)
_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s+(.*\S)\s*$")
_SECTION = re.compile(r"^\s*(?:#+\s*)?\**\s*(errors?|issues?|problems?|bugs?|suggestions?|improvements?|recommendations?)\s*\**\s*:?\s*\**\s*$", re.IGNORECASE)
_QUESTION = re.compile(r"^\s*(?:Q(?:uestion)?\s*)?(\d+)[.):]\s*(.+\S)\s*$", re.IGNORECASE)
_OPTION = re.compile(r"^\s*\(?([A-Ha-h])[.)\]:]\s*(.+\S)\s*$")
_ANSWER = re.compile(r"^\s*\**\s*(?:correct\s+)?answer\s*\**\s*[:\-]\s*\**\s*\(?([A-Ha-h]|\d+)\b", re.IGNORECASE)

_ERROR_SECTIONS = ("error", "issue", "problem", "bug")


def require_text(text: Optional[str], provider: Optional[str] = None) -> str:
    if text is None or not text.strip():
        raise MalformedResponseError("Provider returned empty text", provider=provider)
    return text


def extract_json(text: str, array: bool = False) -> Any:
    """Return the first JSON object (or array) embedded in ``text``, else None."""
    opener = "[" if array else "{"
    candidates = [m.group(1) for m in _FENCED_JSON.finditer(text) if m.group(1).startswith(opener)]
    match = (_ARRAY if array else _OBJECT).search(text)
    if match:
        candidates.append(match.group(0))
    for candidate in candidates:
        try:
            return orjson.loads(candidate)
        except orjson.JSONDecodeError:
            continue
    return None


def _strip_fence(block: str) -> str:
    body = block.strip()[3:-3]
    # Drop the language tag on the opening fence line.
    first, _, rest = body.partition("\n")
    if rest and re.fullmatch(r"[\w+#.-]*", first.strip()):
        body = rest
    return body.strip()


def _first_code_block(text: str) -> Optional[str]:
    match = _CODE_BLOCK.search(text)
    return _strip_fence(match.group(0)) if match else None


def _related_topics(text: str) -> List[str]:
    match = _TOPICS.search(text)
    if not match:
        return []
    return [t.strip().strip("*").strip() for t in match.group(1).split(",") if t.strip().strip("*").strip()]


def _answer_index(value: Any, option_count: int) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        index = value
    elif isinstance(value, str):
        value = value.strip()
        if len(value) == 1 and value.isalpha():
            index = ord(value.upper()) - ord("A")
        elif value.isdigit():
            index = int(value)
        else:
            return None
    else:
        return None
    return index if 0 <= index < option_count else None


def coerce_quiz_questions(items: Iterable[Any], difficulty: Difficulty = "medium") -> List[QuizQuestion]:
    """Validate raw question dicts one by one, dropping those that cannot be repaired."""
    questions: List[QuizQuestion] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        options = item.get("options")
        if not isinstance(options, list):
            continue
        options = [str(o) for o in options]
        index = _answer_index(item.get("correctAnswer", item.get("correct_answer")), len(options))
        if index is None:
            logger.debug("Dropping quiz question with unusable answer", extra={"question": item.get("question")})
            continue
        level = item.get("difficulty")
        try:
            questions.append(
                QuizQuestion(
                    question=str(item.get("question") or ""),
                    options=options,
                    correct_answer=index,
                    explanation=str(item.get("explanation") or ""),
                    difficulty=level if level in ("easy", "medium", "hard") else difficulty,
                )
            )
        except ValidationError:
            continue
    return questions


def parse_tutor_response(text: str, provider: Optional[str] = None) -> TutorResponse:
    text = require_text(text, provider)
    data = extract_json(text)
    if isinstance(data, dict) and isinstance(data.get("explanation"), str) and data["explanation"].strip():
        topics = data.get("relatedTopics") or data.get("related_topics") or []
        quiz = data.get("quiz") if isinstance(data.get("quiz"), list) else []
        try:
            return TutorResponse(
                explanation=data["explanation"],
                code_example=data.get("codeExample") or data.get("code_example") or None,
                visualization=data.get("visualization") or None,
                quiz=coerce_quiz_questions(quiz),
                related_topics=[str(t) for t in topics] if isinstance(topics, list) else [],
            )
        except ValidationError:
            logger.debug("Tutor JSON did not validate, reading as text", extra={"provider": provider})

    return TutorResponse(
        explanation=text.strip(),
        code_example=_first_code_block(text),
        related_topics=_related_topics(text),
    )


def _sections(text: str) -> dict:
    found = {"errors": [], "suggestions": []}
    current = None
    for line in text.splitlines():
        header = _SECTION.match(line)
        if header:
            name = header.group(1).lower()
            current = "errors" if name.startswith(_ERROR_SECTIONS) else "suggestions"
            continue
        bullet = _BULLET.match(line)
        if bullet and current:
            found[current].append(bullet.group(1))
        elif line.strip() and not bullet:
            current = None
    return found


def parse_code_analysis(text: str, provider: Optional[str] = None) -> CodeAnalysis:
    text = require_text(text, provider)
    data = extract_json(text)
    if isinstance(data, dict) and any(k in data for k in ("errors", "suggestions", "explanation")):
        try:
            return CodeAnalysis(
                errors=[str(e) for e in data.get("errors") or []],
                suggestions=[str(s) for s in data.get("suggestions") or []],
                explanation=str(data.get("explanation") or text.strip()),
                fixed_code=data.get("fixedCode") or data.get("fixed_code") or None,
            )
        except (TypeError, ValidationError):
            pass

    sections = _sections(text)
    return CodeAnalysis(
        errors=sections["errors"],
        suggestions=sections["suggestions"],
        explanation=text.strip(),
        fixed_code=_first_code_block(text),
    )


def _questions_from_text(text: str, difficulty: Difficulty) -> List[QuizQuestion]:
    raw: List[dict] = []
    current: Optional[dict] = None
    for line in text.splitlines():
        option = _OPTION.match(line)
        if option and current is not None:
            current["options"].append(option.group(2))
            continue
        answer = _ANSWER.match(line)
        if answer and current is not None:
            value = answer.group(1)
            current["correctAnswer"] = int(value) - 1 if value.isdigit() else value
            continue
        question = _QUESTION.match(line)
        if question:
            current = {"question": question.group(2), "options": [], "difficulty": difficulty}
            raw.append(current)
    return coerce_quiz_questions(raw, difficulty)


def parse_quiz(
    text: str,
    topic: str,
    difficulty: Difficulty = "medium",
    provider: Optional[str] = None,
) -> QuizSet:
    text = require_text(text, provider)
    data = extract_json(text, array=True)
    if isinstance(data, dict) and isinstance(data.get("questions"), list):
        data = data["questions"]
    if data is None:
        wrapped = extract_json(text)
        if isinstance(wrapped, dict) and isinstance(wrapped.get("questions"), list):
            data = wrapped["questions"]

    questions = coerce_quiz_questions(data, difficulty) if isinstance(data, list) else []
    if not questions:
        questions = _questions_from_text(text, difficulty)
    if not questions:
        head = text.strip()[:30]
        questions = [
            QuizQuestion(
                question=f"Quiz on {topic}",
                options=[f"{head} A", f"{head} B", f"{head} C"],
                correct_answer=0,
                explanation=text.strip(),
                difficulty=difficulty,
            )
        ]
    return QuizSet(questions=questions)
