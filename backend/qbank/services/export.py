"""
Download formats: question CSV, exam book plain text, exam book .docx.
Dangling question ids in an exam book render as "Question not found" rather than failing.
"""
import csv
import io
import re
from datetime import datetime, timezone
from typing import Sequence

from docx import Document as DocxDocument
from docx.shared import Pt

from qbank.schemas.exam_book import ExamBook
from qbank.schemas.question import Question
from qbank.services.csv_import import CSV_COLUMNS

ResolvedEntries = Sequence[tuple[str, Question | None]]

_OPTION_LETTERS = "ABCDE"


def questions_to_csv(questions: Sequence[Question]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for q in questions:
        distractors = q.distractor_options
        writer.writerow([
            q.id,
            q.topic,
            q.clinical_vignette,
            q.lead_question,
            q.additional_picture_link or "",
            q.correct_answer or "",
            *[distractors[i] if i < len(distractors) else "" for i in range(4)],
            q.explanation or "",
            q.references or "",
            "; ".join(q.learning_objectives),
            q.pathomechanism,
            q.aspect,
            q.disease or "",
            q.author_name,
            q.reviewer1 or "",
            q.reviewer2 or "",
            q.reviewer_comment or "",
        ])
    return buf.getvalue()


def exam_book_filename(book: ExamBook, ext: str, today: datetime | None = None) -> str:
    slug = re.sub(r"[^a-z0-9]", "-", book.title, flags=re.IGNORECASE).lower()
    date = (today or datetime.now(timezone.utc)).strftime("%Y-%m-%d")
    return f"exam-book-{slug}-{date}.{ext}"


def exam_book_text(book: ExamBook, entries: ResolvedEntries, generated_at: datetime | None = None) -> str:
    lines: list[str] = []
    lines += ["=" * 80, f"EXAM BOOK: {book.title.upper()}", "=" * 80, ""]

    lines += ["EXAM INFORMATION:", "-" * 40]
    lines.append(f"Subject: {book.subject}")
    lines.append(f"Duration: {book.duration} minutes")
    lines.append(f"Total Points: {book.total_points}")
    lines.append(f"Status: {book.status.upper()}")
    lines.append(f"Semester: {book.semester}")
    lines.append(f"Academic Year: {book.academic_year}")
    lines.append(f"Created: {book.created_at[:10]}")
    lines.append("")

    if book.description:
        lines += ["DESCRIPTION:", "-" * 40, book.description, ""]
    if book.instructions:
        lines += ["INSTRUCTIONS:", "-" * 40, book.instructions, ""]

    lines += ["QUESTIONS:", "-" * 40, f"Total Questions: {len(book.questions)}", ""]
    for index, (question_id, q) in enumerate(entries, start=1):
        if q is None:
            lines += [f"QUESTION {index}: [Question not found - ID: {question_id}]", "-" * 60, ""]
            continue
        lines.append(f"QUESTION {index}:")
        lines.append(f"Subject: {q.subject}")
        lines.append(f"Topic: {q.topic}")
        lines.append(f"Type: {q.type}")
        lines.append("")
        if q.clinical_vignette:
            lines += ["Clinical Vignette:", q.clinical_vignette, ""]
        lines += ["Question:", q.lead_question, ""]
        if q.type == "multiple-choice" and q.options:
            lines.append("Options:")
            for letter, option in zip(_OPTION_LETTERS, q.options):
                marker = " (CORRECT)" if option == q.correct_answer else ""
                lines.append(f"{letter}. {option}{marker}")
            lines.append("")
        if q.explanation:
            lines += ["Explanation:", q.explanation, ""]
        if q.learning_objectives:
            lines.append("Learning Objectives:")
            lines += [f"- {obj}" for obj in q.learning_objectives]
            lines.append("")
        if q.references:
            lines += ["References:", q.references, ""]
        lines += ["-" * 60, ""]

    stamp = (generated_at or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M:%S")
    lines += ["=" * 80, f"Generated on: {stamp}", "Educational Question Bank Management System", "=" * 80]
    return "\n".join(lines)


def exam_book_docx(book: ExamBook, entries: ResolvedEntries) -> io.BytesIO:
    """Return a BytesIO containing the .docx file (questions, answer key, explanations)."""
    doc = DocxDocument()
    style = doc.styles["Normal"]
    style.font.size = Pt(11)

    doc.add_heading(book.title, level=0)
    doc.add_paragraph(
        f"{book.subject} · {book.semester} {book.academic_year} · "
        f"{book.duration} minutes · {book.total_points} points"
    )
    if book.instructions:
        doc.add_paragraph(book.instructions)

    # Section 1: Questions only
    doc.add_heading("Questions", level=1)
    for index, (question_id, q) in enumerate(entries, start=1):
        p = doc.add_paragraph()
        p.add_run(f"Q{index}. ").bold = True
        if q is None:
            p.add_run(f"[Question not found - ID: {question_id}]")
            continue
        if q.clinical_vignette:
            p.add_run(q.clinical_vignette + " ")
        p.add_run(q.lead_question)
        for letter, option in zip(_OPTION_LETTERS, q.options):
            doc.add_paragraph(f"  {letter}. {option}", style="List Bullet")

    doc.add_page_break()
    # Section 2: Answer key
    doc.add_heading("Answer key", level=1)
    for index, (_, q) in enumerate(entries, start=1):
        if q is None:
            continue
        letter = next(
            (lt for lt, option in zip(_OPTION_LETTERS, q.options) if option == q.correct_answer), "?"
        )
        doc.add_paragraph(f"Q{index}. {letter}")

    doc.add_page_break()
    # Section 3: Explanations
    doc.add_heading("Explanations", level=1)
    for index, (_, q) in enumerate(entries, start=1):
        if q is None or not q.explanation:
            continue
        p = doc.add_paragraph()
        p.add_run(f"Q{index}. ").bold = True
        p.add_run(q.explanation)

    buf = io.BytesIO()
    doc.save(buf)
    buf.seek(0)
    return buf
