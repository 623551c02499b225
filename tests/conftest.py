import asyncio
import copy
from collections import defaultdict, deque

import pytest

from survey_analytics.agents.dispatcher import AnalysisDispatcher
from survey_analytics.agents.utils import RetryPolicy
from survey_analytics.db.models import Question, QuestionType, Survey, SurveyResponse, University
from survey_analytics.db.repository import SQLiteRepository


# Top-level key that identifies each analysis method's output schema.
PAYLOAD_KEYS = (
    "comprehensive_diagnosis",
    "ipa_data",
    "box_plot_data",
    "mca_data",
    "demographic_insights",
    "vision_analysis",
    "questions",
    "intro_message",
)

CANNED_OUTPUTS = {
    "comprehensive_diagnosis": {
        "summary": "Overall satisfaction is high.",
        "comprehensive_diagnosis": "Facilities score well; teaching is uneven.",
        "strengths": ["Facilities", "Library", "Staff"],
        "weaknesses": ["Teaching", "Scheduling", "Parking"],
        "improvement_strategies": ["Run teaching workshops"],
        "key_themes": ["facilities", "teaching"],
        "sentiment_score": 78,
    },
    "ipa_data": {
        "summary": "Teaching needs attention.",
        "ipa_data": [
            {"label": "Campus facilities", "importance": 3.1, "performance": 4.2},
            {"label": "Teaching quality", "importance": 4.5, "performance": 3.0},
        ],
    },
    "box_plot_data": {
        "summary": "Spread is narrow.",
        "box_plot_data": [{"label": "Campus facilities", "min": 3, "q1": 4, "median": 4, "q3": 5, "max": 5}],
    },
    "mca_data": {
        "summary": "Two clusters.",
        "mca_data": [{"label": "Satisfied", "x": 0.4, "y": -0.2, "category": "Facilities"}],
    },
    "demographic_insights": {
        "summary": "Two segments.",
        "demographic_insights": ["Library users are the most satisfied."],
    },
    "vision_analysis": {
        "summary": "Partly aligned.",
        "vision_analysis": {
            "alignment_score": 64,
            "alignment_summary": "Facilities support the vision; teaching lags.",
            "aligned_areas": ["Facilities"],
            "gap_areas": ["Teaching"],
        },
    },
    "questions": {
        "questions": [
            {"text": "Satisfaction", "type": "SECTION"},
            {"text": "How satisfied are you with the library?", "type": "LIKERT"},
            {"text": "Which services do you use?", "type": "MULTIPLE_SELECT", "options": ["Library", "Gym"]},
            {"text": "Any other comments?", "type": "OPEN_ENDED", "options": ["ignored"]},
        ]
    },
    "intro_message": {"intro_message": "  Thank you for taking part.  "},
}


def payload_key(schema):
    properties = (schema or {}).get("properties", {})
    for key in PAYLOAD_KEYS:
        if key in properties:
            return key
    raise KeyError("unknown output schema")


class FakeGenerationClient:
    """Stands in for GenerationClient; answers from CANNED_OUTPUTS, optionally held or failing per call."""

    def __init__(self, outputs=None):
        self.outputs = copy.deepcopy(CANNED_OUTPUTS)
        self.outputs.update(outputs or {})
        self.calls = []
        self._gates = defaultdict(deque)
        self._errors = defaultdict(deque)

    def hold(self, key):
        # The next call for `key` waits until the returned event is set.
        gate = asyncio.Event()
        self._gates[key].append(gate)
        return gate

    def fail(self, key, *errors):
        self._errors[key].extend(errors)

    def calls_for(self, key):
        return [prompt for k, prompt in self.calls if k == key]

    async def generate(self, instruction, schema):
        key = payload_key(schema)
        self.calls.append((key, instruction))
        error = self._errors[key].popleft() if self._errors[key] else None
        gate = self._gates[key].popleft() if self._gates[key] else None
        if gate is not None:
            await gate.wait()
        if error is not None:
            raise error
        return copy.deepcopy(self.outputs[key])


class FakeAPIError(Exception):
    def __init__(self, status_code, message="provider error"):
        super().__init__(message)
        self.status_code = status_code


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def run(coro):
    return asyncio.run(coro)


async def settle():
    # Let scheduled background tasks reach their first await.
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def repo(tmp_path):
    r = SQLiteRepository(str(tmp_path / "app.db"))
    r.init_schema()
    return r


@pytest.fixture
def university():
    return University(
        university_id="u1",
        name="Hanbit University",
        region="Seoul",
        member_count=1200,
        vision="Creative global talent and student welfare first.",
    )


@pytest.fixture
def survey():
    return Survey(
        survey_id="s1",
        title="Campus Life 2024",
        description="Annual student satisfaction survey",
        university_id="u1",
        created_at="2024-03-01T00:00:00Z",
        questions=(
            Question("q1", "Campus facilities", QuestionType.LIKERT),
            Question("sec", "Teaching", QuestionType.SECTION),
            Question("q2", "Teaching quality", QuestionType.LIKERT),
            Question("q3", "Comments", QuestionType.OPEN_ENDED),
            Question("q4", "Services used", QuestionType.MULTIPLE_SELECT, options=("Library", "Gym", "Cafeteria")),
        ),
    )


@pytest.fixture
def responses():
    q1 = [4, 5, 3, 4, 5]
    q2 = [3, 3, 4, 2, 3]
    comments = ["Great library", "", "Too crowded", "Fine", "Love it"]
    return [
        SurveyResponse(
            response_id=f"r{i}",
            survey_id="s1",
            submitted_at=f"2024-03-0{i + 2}T09:00:00Z",
            answers={"q1": q1[i], "q2": q2[i], "q3": comments[i], "q4": ["Library", "Gym"] if i % 2 else ["Cafeteria"]},
        )
        for i in range(5)
    ]


@pytest.fixture
def stored(repo, survey, responses, university):
    repo.upsert_university(university)
    repo.update_survey(survey)
    repo.insert_responses_batch(responses)
    return repo


@pytest.fixture
def fake_client():
    return FakeGenerationClient()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def dispatcher(fake_client, sleep):
    return AnalysisDispatcher(client=fake_client, retry=RetryPolicy(retries=3, initial_delay=2.0, sleep=sleep))
