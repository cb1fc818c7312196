"""
CSV boundary for the question bank: the fixed column set shared by import and export,
and the import mapping of one row to a draft question.

Rows shorter than the header are skipped. Subject, pathomechanism and aspect are inferred by
keyword matching; unmatched text falls back to Internal Medicine / non-applicable / knowledge.
"""
import csv
import io
import logging
import re

from qbank.schemas.question import Question

logger = logging.getLogger(__name__)

CSV_COLUMNS = [
    "ID", "Topic", "Clinical Vignette", "Lead Question", "Additional picture Link (optional)",
    "Correct answer", "Distractor Option 1", "Distractor Option 2", "Distractor Option 3", "Distractor Option 4",
    "Explanation", "References", "Learning Objective", "Pathomechanism", "Aspect", "Disease",
    "Created By", "Reviewer 1", "Reviewer 2", "Reviewer Comment",
]

IMPORT_AUTHOR_ID = "csv-import"
DEFAULT_SUBJECT = "Internal Medicine"

# First match wins; order matters ("gi" would otherwise catch far more than gastro topics).
_SUBJECT_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("cardio", "heart"), "Cardiology"),
    (("pulmo", "lung", "respiratory"), "Pulmonology"),
    (("neuro", "brain"), "Neurology"),
    (("endo", "hormone", "thyroid"), "Endocrinology"),
    (("gastro", "gi", "liver"), "Gastroenterology"),
    (("renal", "kidney"), "Nephrology"),
    (("hema", "blood"), "Hematology"),
    (("onco", "cancer"), "Oncology"),
    (("infect", "bacteria", "virus"), "Infectious Diseases"),
    (("rheum", "arthritis"), "Rheumatology"),
    (("derm", "skin"), "Dermatology"),
    (("psych", "mental"), "Psychiatry"),
    (("emergency", "trauma"), "Emergency Medicine"),
]

_PATHOMECHANISM_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("congenital", "genetic"), "congenital"),
    (("infection", "bacterial", "viral"), "infection"),
    (("inflammation", "inflammatory"), "inflammation"),
    (("degenerative", "degeneration"), "degenerative"),
    (("neoplasm", "cancer", "tumor"), "neoplasm"),
    (("trauma", "injury"), "trauma"),
    (("metabolism", "metabolic"), "metabolism"),
]

_ASPECT_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("procedural", "skill"), "procedural-knowledge"),
    (("attitude", "behavior"), "attitude"),
    (("health-system", "system"), "health-system"),
]


def _match(text: str, table: list[tuple[tuple[str, ...], str]], default: str) -> str:
    lowered = (text or "").lower()
    for keywords, value in table:
        if any(k in lowered for k in keywords):
            return value
    return default


def subject_from_topic(topic: str) -> str:
    return _match(topic, _SUBJECT_KEYWORDS, DEFAULT_SUBJECT)


def map_pathomechanism(text: str) -> str:
    return _match(text, _PATHOMECHANISM_KEYWORDS, "non-applicable")


def map_aspect(text: str) -> str:
    return _match(text, _ASPECT_KEYWORDS, "knowledge")


def _slug(text: str) -> str:
    return re.sub(r"\s+", "-", text.lower())


def generate_tags(disease: str, aspect: str, topic: str) -> list[str]:
    tags = []
    if disease:
        tags.append(_slug(disease))
    if aspect:
        tags.append(_slug(aspect))
    if topic:
        tags.extend(w for w in topic.lower().split(" ") if len(w) > 3)
    return list(dict.fromkeys(tags))


def row_to_question(row: dict[str, str], line_no: int, created_at: str) -> Question:
    topic = row.get("Topic", "")
    correct = row.get("Correct answer", "")
    distractors = [row.get(f"Distractor Option {i}", "") for i in range(1, 5)]
    # Older exports spell the column "Pathomecanism"
    patho = row.get("Pathomechanism") or row.get("Pathomecanism", "")
    aspect = row.get("Aspect", "")
    disease = row.get("Disease", "")
    objectives = [o.strip() for o in row.get("Learning Objective", "").split(";") if o.strip()]
    return Question(
        id=row.get("ID") or f"csv-{line_no}",
        clinical_vignette=row.get("Clinical Vignette", ""),
        lead_question=row.get("Lead Question", ""),
        type="multiple-choice",
        subject=subject_from_topic(topic),
        topic=topic,
        options=[o for o in [correct, *distractors] if o],
        correct_answer=correct,
        explanation=row.get("Explanation", ""),
        references=row.get("References", ""),
        learning_objectives=objectives,
        pathomechanism=map_pathomechanism(patho),
        aspect=map_aspect(aspect),
        disease=disease,
        additional_picture_link=row.get("Additional picture Link (optional)", ""),
        author_id=IMPORT_AUTHOR_ID,
        author_name=row.get("Created By") or "CSV Import",
        reviewer1=row.get("Reviewer 1", ""),
        reviewer2=row.get("Reviewer 2", ""),
        reviewer_comment=row.get("Reviewer Comment", ""),
        status="draft",
        created_at=created_at,
        updated_at=created_at,
        tags=generate_tags(disease, aspect, topic),
    )


def parse_questions_csv(text: str, created_at: str) -> list[Question]:
    """Parse CSV text (header row first) into draft questions."""
    rows = list(csv.reader(io.StringIO(text.lstrip("\ufeff"))))
    if not rows:
        return []
    headers = [h.strip() for h in rows[0]]
    questions = []
    skipped = 0
    for line_no, values in enumerate(rows[1:], start=1):
        if len(values) < len(headers):
            skipped += 1
            continue
        row = {h: (values[i] or "").strip() for i, h in enumerate(headers)}
        questions.append(row_to_question(row, line_no, created_at))
    if skipped:
        logger.info("CSV import: skipped %s short or blank rows", skipped)
    return questions
