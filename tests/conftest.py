"""
Shared fixtures for the Common Ground test suite

Environment is set before any project import: config.py reads it once at
import time and server.main initializes JWT from it.
"""

import copy
import os
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parent.parent

os.environ.setdefault("COMMONGROUND_STORE", "memory")
os.environ.setdefault("COMMONGROUND_JWT_SECRET", "test-secret-not-for-production")
os.environ.setdefault("COMMONGROUND_SURVEY_DIR", str(REPO_ROOT / "surveys"))

import pytest  # noqa: E402

from commonground.survey import SurveyProvider, parse_survey  # noqa: E402
from database.db import Database  # noqa: E402


def _options(*scores):
    return [{"label": f"Option {score}", "score": score} for score in scores]


SURVEY_DOCUMENT = {
    "version": "t1",
    "meta": {"categories": {"1": "Economy", "2": "Environment", "3": "Housing"}},
    "questions": [
        {"id": "q1", "category_id": 1, "prompt": "Raise the minimum wage", "options": _options(100, 0, -100)},
        {"id": "q2", "category_id": 1, "prompt": "Cut business taxes", "options": _options(100, 0, -100)},
        {"id": "q3", "category_id": 2, "prompt": "Expand transit", "options": _options(80, 20, -40)},
        {"id": "q4", "category_id": 3, "prompt": "Allow taller buildings", "options": _options(50, -50)},
    ],
}


@pytest.fixture
def survey_document():
    """Fresh copy of the test survey document"""
    return copy.deepcopy(SURVEY_DOCUMENT)


@pytest.fixture
def survey(survey_document):
    return parse_survey(survey_document)


@pytest.fixture
def surveys(tmp_path, survey):
    provider = SurveyProvider(tmp_path)
    provider.register(survey)
    return provider


@pytest.fixture
def db():
    return Database.in_memory()
