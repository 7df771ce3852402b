"""
Shared fixtures: an in-memory stand-in for the Supabase client's table/query builder,
a controllable clock, and question factories. No network.
"""
import copy
import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

import httpx
import pytest
from postgrest.exceptions import APIError

path = Path(__file__).resolve().parent
if str(path) not in sys.path:
    sys.path.insert(0, str(path))

from src.database import AttemptStore, QuestionRepository
from src.engine import ExamAttemptEngine
from src.models import ExamType, Question, QuestionType

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


class FakeResponse:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.op = "select"
        self.payload = None
        self.columns = ["*"]
        self.count = None
        self.filters = []
        self.order_by = None
        self.limit_n = None
        self.range_from = None
        self.on_conflict = "id"

    # operations
    def select(self, *columns, count=None):
        self.columns = list(columns) or ["*"]
        self.count = count
        return self

    def insert(self, rows):
        self.op, self.payload = "insert", rows
        return self

    def update(self, fields):
        self.op, self.payload = "update", fields
        return self

    def upsert(self, rows, on_conflict="id"):
        self.op, self.payload, self.on_conflict = "upsert", rows, on_conflict
        return self

    def delete(self):
        self.op = "delete"
        return self

    # filters
    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def is_(self, column, value):
        assert value == "null"
        self.filters.append(lambda row: row.get(column) is None)
        return self

    def ilike(self, column, pattern):
        # Only the %term% form is used
        needle = pattern.strip("%").lower()
        self.filters.append(lambda row: needle in (row.get(column) or "").lower())
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, n):
        self.limit_n = n
        return self

    def range(self, start, end):
        self.range_from = (start, end)
        return self

    def _matches(self, row):
        return all(f(row) for f in self.filters)

    def execute(self):
        self.client.calls.append((self.table, self.op))
        if self.client.fail_next:
            self.client.fail_next -= 1
            raise httpx.ConnectError("connection refused")
        rows = self.client.tables.setdefault(self.table, [])

        if self.op == "select":
            found = [r for r in rows if self._matches(r)]
            total = len(found)
            if self.order_by:
                col, desc = self.order_by
                found.sort(key=lambda r: r.get(col) or "", reverse=desc)
            if self.range_from:
                start, end = self.range_from
                found = found[start:end + 1]
            if self.limit_n is not None:
                found = found[: self.limit_n]
            if self.columns != ["*"]:
                found = [{c: r.get(c) for c in self.columns} for r in found]
            return FakeResponse(copy.deepcopy(found), total if self.count else None)

        if self.op == "insert":
            new = self.payload if isinstance(self.payload, list) else [self.payload]
            out = []
            for row in copy.deepcopy(new):
                row.setdefault("id", str(uuid4()))
                self.client.check_unique(self.table, row)
                rows.append(row)
                out.append(copy.deepcopy(row))
            return FakeResponse(out)

        if self.op == "update":
            out = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self.payload))
                    out.append(copy.deepcopy(row))
            return FakeResponse(out)

        if self.op == "upsert":
            new = self.payload if isinstance(self.payload, list) else [self.payload]
            out = []
            for row in copy.deepcopy(new):
                row.setdefault("id", str(uuid4()))
                existing = next((r for r in rows if r.get(self.on_conflict) == row.get(self.on_conflict)), None)
                if existing is not None:
                    existing.update(row)
                    out.append(copy.deepcopy(existing))
                else:
                    rows.append(row)
                    out.append(copy.deepcopy(row))
            return FakeResponse(out)

        if self.op == "delete":
            gone = [r for r in rows if self._matches(r)]
            self.client.tables[self.table] = [r for r in rows if not self._matches(r)]
            return FakeResponse(copy.deepcopy(gone))

        raise AssertionError(f"unknown op {self.op}")


class FakeSupabase:
    """Just enough of supabase.Client for the repositories and db helpers."""

    def __init__(self):
        self.tables = {}
        self.calls = []
        self.fail_next = 0

    def table(self, name):
        return FakeQuery(self, name)

    def check_unique(self, table, row):
        # Mirrors the partial unique index on exam_attempts (user_id, exam_type) WHERE completed_at IS NULL
        if table != "exam_attempts" or row.get("completed_at") is not None:
            return
        for other in self.tables.get(table, []):
            if (
                other.get("completed_at") is None
                and other.get("user_id") == row.get("user_id")
                and other.get("exam_type") == row.get("exam_type")
            ):
                raise APIError({"message": "duplicate key value", "code": "23505", "hint": None, "details": None})


class FakeClock:
    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


def make_question(exam_type=ExamType.SAP, question_type=QuestionType.MULTIPLE_CHOICE, **overrides):
    defaults = {
        QuestionType.MULTIPLE_CHOICE: {"options": ["A", "B", "C", "D"], "correct_answer": 1},
        QuestionType.TRUE_FALSE: {"correct_answer": True},
        QuestionType.FILL_IN_BLANK: {"correct_answer": "Paris"},
        QuestionType.ESSAY: {"correct_answer": None},
    }[question_type]
    fields = {
        "id": str(uuid4()),
        "exam_type": exam_type,
        "question_type": question_type,
        "question_text": f"{question_type.value} question",
        **defaults,
        **overrides,
    }
    return Question(**fields)


def seed_questions(client, questions):
    client.tables.setdefault("questions", []).extend(q.to_row() for q in questions)
    return questions


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(supabase, clock):
    return ExamAttemptEngine(
        QuestionRepository(supabase),
        AttemptStore(supabase),
        rng=random.Random(42),
        clock=clock,
    )
