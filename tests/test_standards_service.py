"""Tests for qms/services/standards_service.py — clause tree, questions and seeding."""

import pytest
from sqlalchemy import func, select

from qms.core.exceptions import NotFoundError
from qms.data import iso9001
from qms.models import db
from qms.models.standard import AuditQuestion, StandardSection
from qms.services import standards_service as svc


def _count(model):
    return db.session.execute(select(func.count(model.id))).scalar_one()


class TestSeed:
    def test_seed_loads_reference_data(self):
        result = svc.seed_standard()

        assert result == {"sections_added": len(iso9001.SECTIONS), "questions_added": len(iso9001.QUESTIONS)}
        assert _count(StandardSection) == len(iso9001.SECTIONS)
        assert _count(AuditQuestion) == len(iso9001.QUESTIONS)

    def test_seed_is_idempotent(self):
        svc.seed_standard()
        assert svc.seed_standard() == {"sections_added": 0, "questions_added": 0}
        assert _count(AuditQuestion) == len(iso9001.QUESTIONS)

    def test_seed_fills_gaps_only(self, standard):
        sections = [
            {"number": "4", "parent": None, "order": 4, "title": "Ignored, already present"},
            {"number": "4.3", "parent": "4", "order": 3, "title": "Scope of the QMS"},
        ]
        questions = [
            {"number": "4.1-01", "section": "4.1", "order": 1, "text": "Already present"},
            {"number": "4.3-01", "section": "4.3", "order": 1, "text": "Is the QMS scope documented?",
             "criteria": ("Not defined", "Partly defined", "Defined and maintained")},
        ]
        assert svc.seed_standard(sections, questions) == {"sections_added": 1, "questions_added": 1}

        q = db.session.execute(select(AuditQuestion).where(AuditQuestion.question_number == "4.3-01")).scalar_one()
        assert q.score3_criteria == "Defined and maintained"
        assert q.standard_reference == "ISO 9001:2015 Clause 4.3"
        assert standard.q411.question_text == "Is requirement 4.1-01 met?"

    def test_unknown_parent_rejected(self):
        with pytest.raises(ValueError):
            svc.seed_standard([{"number": "9.9", "parent": "9", "title": "Orphan"}], [])

    def test_reference_data_is_consistent(self):
        numbers = [s["number"] for s in iso9001.SECTIONS]
        assert len(numbers) == len(set(numbers))
        seen = set()
        for s in iso9001.SECTIONS:
            assert s["parent"] is None or s["parent"] in seen
            seen.add(s["number"])
        assert all(q["section"] in seen for q in iso9001.QUESTIONS)


class TestReads:
    def test_tree_in_clause_order_with_counts(self, standard):
        standard.q412.is_active = False
        db.session.flush()

        tree = svc.get_section_tree()

        assert [n["section_number"] for n in tree] == ["4", "5"]
        clause4 = tree[0]
        assert [c["section_number"] for c in clause4["children"]] == ["4.1", "4.2"]
        assert clause4["children"][0]["question_count"] == 1
        assert clause4["question_count"] == 0

    def test_get_section(self, standard):
        section = svc.get_section(standard.s41.id)
        assert section["parent"]["section_number"] == "4"
        assert [q["question_number"] for q in section["questions"]] == ["4.1-01", "4.1-02"]

        with pytest.raises(NotFoundError):
            svc.get_section(424242)

    def test_list_questions_filters(self, standard):
        assert len(svc.list_questions()) == 4
        assert [q["question_number"] for q in svc.list_questions(section_id=standard.s42.id)] == ["4.2-01"]
        assert [q["question_number"] for q in svc.list_questions(search="5.1")] == ["5.1-01"]
