"""
Standards service — the ISO 9001:2015 clause tree and its audit questions.

Reference data is global (not organization-scoped) and immutable once
seeded. seed_standard is idempotent: existing clause and question numbers
are left untouched, only missing rows are inserted.
"""

import logging

from sqlalchemy import func, or_, select

from qms.core.exceptions import NotFoundError
from qms.data import iso9001
from qms.models import db
from qms.models.standard import AuditQuestion, StandardSection
from qms.services.scoring import section_sort_key

logger = logging.getLogger(__name__)


def _active_question_counts() -> dict:
    return dict(db.session.execute(
        select(AuditQuestion.section_id, func.count(AuditQuestion.id))
        .where(AuditQuestion.is_active.is_(True))
        .group_by(AuditQuestion.section_id)
    ).all())


def get_section_tree() -> list[dict]:
    """Clause hierarchy, roots first, each node with its active question count."""
    sections = db.session.execute(select(StandardSection)).scalars().all()
    counts = _active_question_counts()

    nodes = {}
    for s in sections:
        node = s.to_dict()
        node["question_count"] = counts.get(s.id, 0)
        node["children"] = []
        nodes[s.id] = node

    roots = []
    for s in sections:
        node = nodes[s.id]
        parent = nodes.get(s.parent_id)
        (parent["children"] if parent else roots).append(node)

    def _sort(items):
        items.sort(key=lambda n: (n["order"], section_sort_key(n["section_number"])))
        for n in items:
            _sort(n["children"])

    _sort(roots)
    return roots


def get_section(section_id: int) -> dict:
    section = db.session.get(StandardSection, section_id)
    if section is None:
        raise NotFoundError(resource="StandardSection", resource_id=section_id)
    d = section.to_dict()
    d["parent"] = section.parent.to_summary() if section.parent else None
    d["children"] = [c.to_summary() for c in sorted(section.children, key=lambda c: c.order)]
    d["questions"] = [
        q.to_dict()
        for q in section.questions.filter_by(is_active=True).order_by(AuditQuestion.order, AuditQuestion.question_number)
    ]
    return d


def list_questions(*, section_id=None, is_active=None, search=None) -> list[dict]:
    stmt = select(AuditQuestion)
    if section_id is not None:
        stmt = stmt.where(AuditQuestion.section_id == section_id)
    if is_active is not None:
        stmt = stmt.where(AuditQuestion.is_active.is_(bool(is_active)))
    if search:
        pattern = f"%{search.strip()}%"
        stmt = stmt.where(or_(AuditQuestion.question_text.ilike(pattern), AuditQuestion.question_number.ilike(pattern)))
    rows = db.session.execute(stmt.order_by(AuditQuestion.section_id, AuditQuestion.order, AuditQuestion.id)).scalars()
    return [q.to_dict() for q in rows]


def seed_standard(sections=None, questions=None) -> dict:
    """Insert missing clauses and questions; returns how many of each were added.

    Args:
        sections: Clause dicts (number, parent, order, title, description).
                  Defaults to qms.data.iso9001.SECTIONS. Parents must precede children.
        questions: Question dicts (number, section, order, text, guidance,
                   criteria). Defaults to qms.data.iso9001.QUESTIONS.
    """
    sections = iso9001.SECTIONS if sections is None else sections
    questions = iso9001.QUESTIONS if questions is None else questions

    by_number = {s.section_number: s for s in db.session.execute(select(StandardSection)).scalars()}
    added_sections = 0
    for item in sections:
        if item["number"] in by_number:
            continue
        parent = by_number.get(item["parent"]) if item.get("parent") else None
        if item.get("parent") and parent is None:
            raise ValueError(f"Clause {item['number']} references unknown parent {item['parent']}")
        section = StandardSection(
            section_number=item["number"],
            title=item["title"],
            description=item.get("description"),
            order=item.get("order", 0),
            parent=parent,
        )
        db.session.add(section)
        by_number[item["number"]] = section
        added_sections += 1
    db.session.flush()

    existing_questions = set(db.session.execute(select(AuditQuestion.question_number)).scalars())
    added_questions = 0
    for item in questions:
        if item["number"] in existing_questions:
            continue
        section = by_number.get(item["section"])
        if section is None:
            raise ValueError(f"Question {item['number']} references unknown clause {item['section']}")
        s1, s2, s3 = item.get("criteria") or (None, None, None)
        db.session.add(AuditQuestion(
            section_id=section.id,
            question_number=item["number"],
            question_text=item["text"],
            guidance=item.get("guidance"),
            score1_criteria=s1,
            score2_criteria=s2,
            score3_criteria=s3,
            standard_reference=item.get("reference") or f"ISO 9001:2015 Clause {item['section']}",
            order=item.get("order", 0),
        ))
        added_questions += 1

    db.session.commit()
    logger.info("Standard seeded: %d section(s), %d question(s) added", added_sections, added_questions)
    return {"sections_added": added_sections, "questions_added": added_questions}
