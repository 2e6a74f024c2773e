import math
from typing import Dict, List, Optional, Tuple

from .models import VariantRecord, VariantStats

UCB_CONSTANT = 2
UCB_EPSILON = 1e-5
SEED_QUALITY = 0.8

DIFFICULTY_INSTRUCTIONS = {
    "easy": "ALL questions must have difficulty 'easy'.",
    "medium": "ALL questions must have difficulty 'medium'.",
    "hard": "ALL questions must have difficulty 'hard'.",
    "mixed": "Aim for a balanced mix of difficulty levels.",
}

FILLER_PHRASES = ["simple", "easy to understand", "the question is", "the answer is"]


def default_variants() -> List[VariantRecord]:
    """Generation templates used when nothing has been persisted yet."""
    return [
        VariantRecord(
            id="v1",
            name="Basic Active Recall",
            template=(
                "You are an expert in pedagogy and learning science. Write 8-12 HIGH QUALITY questions "
                "from the content below, focused on active recall and deep understanding.\n\n"
                "CONTENT:\n{notes}\n\n"
                "Prefer questions that make the learner explain, compare or apply. Avoid yes/no questions "
                "and bare definitions. Classify each question as concept, application, analysis or "
                "evaluation and rate it easy, medium or hard. {difficulty}\n\n"
                "Return one question per line in the exact format:\n"
                "Question? | Answer | Difficulty | Type"
            ),
            quality_score=0.80,
            is_default=True,
        ),
        VariantRecord(
            id="v2",
            name="Bloom Taxonomy",
            template=(
                "You are a pedagogy expert. Analyse the content and write questions along Bloom's taxonomy:\n"
                "CONTENT: {notes}\n"
                "1. Remember (20%)\n2. Understand (30%)\n3. Apply (25%)\n4. Analyse (15%)\n5. Evaluate (10%)\n\n"
                "Format: \"Question? | Answer | Difficulty | Type | Bloom level\"\n"
                "Required difficulty: {difficulty}"
            ),
            quality_score=0.85,
        ),
        VariantRecord(
            id="v3",
            name="Case Study",
            template=(
                "Focus on real-world application of the content: {notes}\n"
                "- 40% realistic scenario questions\n- 30% problem solving questions\n"
                "- 20% case study analysis\n- 10% effectiveness evaluation\n"
                "Required difficulty: {difficulty}\n"
                "Format: \"Question? | Answer | Difficulty | Type\""
            ),
            quality_score=0.82,
        ),
    ]


def ucb_scores(variants: List[VariantRecord]) -> List[float]:
    """quality + sqrt(2 ln(N + 1) / (n + eps)) for every variant."""
    total_usage = sum(v.usage_count for v in variants)
    log_total = math.log(total_usage + 1)
    return [
        v.quality_score + math.sqrt(UCB_CONSTANT * log_total / (v.usage_count + UCB_EPSILON))
        for v in variants
    ]


def select_best(variants: List[VariantRecord]) -> Tuple[Optional[str], List[VariantRecord]]:
    """Picks the highest UCB score (first declared wins ties).

    Returns the chosen id and a new variant list in which the chosen
    variant's usage count has been incremented once.
    """
    if not variants:
        return None, list(variants)

    scores = ucb_scores(variants)
    best = 0
    for i, score in enumerate(scores):
        if score > scores[best]:
            best = i

    chosen = variants[best]
    updated = list(variants)
    updated[best] = chosen.model_copy(update={"usage_count": chosen.usage_count + 1})
    return chosen.id, updated


def apply_feedback(variant: VariantRecord, feedback: str) -> VariantRecord:
    if feedback not in ("good", "bad"):
        raise ValueError(f"Feedback must be 'good' or 'bad', got {feedback!r}")

    positive = variant.positive_feedback + (1 if feedback == "good" else 0)
    negative = variant.negative_feedback + (1 if feedback == "bad" else 0)
    return variant.model_copy(update={
        "positive_feedback": positive,
        "negative_feedback": negative,
        "quality_score": positive / (positive + negative),
    })


def render_prompt(variant: VariantRecord, notes: str, difficulty: str = "mixed") -> str:
    instruction = DIFFICULTY_INSTRUCTIONS.get(difficulty, DIFFICULTY_INSTRUCTIONS["mixed"])
    return variant.template.replace("{notes}", notes).replace("{difficulty}", instruction)


def parse_generated_questions(text: str) -> List[Dict[str, str]]:
    """Parses `question | answer | difficulty | type` lines; extra columns are ignored."""
    questions = []
    for line in text.splitlines():
        if not line.strip():
            continue
        parts = [p.strip() for p in line.split("|")]
        if len(parts) < 4:
            continue
        question, answer, difficulty, kind = parts[:4]
        if len(question) > 5 and len(answer) > 3:
            questions.append({"question": question, "answer": answer, "difficulty": difficulty, "type": kind})
    return questions


def auto_quality_score(question: Dict[str, str]) -> float:
    text = question.get("question", "")
    answer = question.get("answer", "")
    score = 0.0
    if 20 < len(text) < 200:
        score += 0.3
    if len(answer) > 5:
        score += 0.3
    if question.get("difficulty") and question.get("type"):
        score += 0.2
    if text.strip().endswith("?"):
        score += 0.1
    lowered = (text + " " + answer).lower()
    if not any(phrase in lowered for phrase in FILLER_PHRASES):
        score += 0.1
    return round(score, 4)


def variant_stats(variants: List[VariantRecord]) -> List[VariantStats]:
    stats = []
    for v in variants:
        total = v.positive_feedback + v.negative_feedback
        effectiveness = (v.positive_feedback / (total or 1)) * 100 if v.usage_count > 0 else 0.0
        stats.append(VariantStats(
            id=v.id,
            name=v.name,
            quality=v.quality_score * 100,
            usage=v.usage_count,
            positive=v.positive_feedback,
            negative=v.negative_feedback,
            effectiveness=effectiveness,
        ))
    return stats
