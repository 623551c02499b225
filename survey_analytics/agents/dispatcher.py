# survey_analytics/agents/dispatcher.py
"""
Analysis request dispatch.

`AnalysisDispatcher.dispatch` turns (survey, responses, method, language,
university) into exactly one structured generation call and always resolves
to an `AnalysisResult`: COMPLETED with the method's payload, or FAILED with
a human-readable summary. It never raises past its own boundary.
"""
from __future__ import annotations

import time
from typing import Dict, Mapping, Optional, Sequence
from uuid import uuid4

from survey_analytics.app.errors import PreconditionFailed
from survey_analytics.app.logging import clear_request_id, get_logger, set_request_id
from survey_analytics.db.models import Survey, SurveyResponse, University
from survey_analytics.workflows.state import AnalysisMethod, AnalysisResult, AnalysisStatus

from ._common import AnalysisContext
from .base import AnalysisAgent
from .comprehensive_agent import ComprehensiveAgent
from .correspondence_agent import CorrespondenceAgent
from .demographic_agent import DemographicAgent
from .importance_performance_agent import ImportancePerformanceAgent
from .spread_agent import SpreadAgent
from .utils import GenerationClient, RetryPolicy, is_rate_limit
from .vision_agent import VisionAgent, require_vision


log = get_logger(__name__)

RATE_LIMIT_SUMMARY = (
    "Analysis failed due to API quota limits (429). Please try again later or check your billing plan."
)


def default_agents(prompts_dir: Optional[str] = None) -> Dict[AnalysisMethod, AnalysisAgent]:
    agents = [
        ComprehensiveAgent(prompts_dir=prompts_dir),
        ImportancePerformanceAgent(prompts_dir=prompts_dir),
        SpreadAgent(prompts_dir=prompts_dir),
        CorrespondenceAgent(prompts_dir=prompts_dir),
        DemographicAgent(prompts_dir=prompts_dir),
        VisionAgent(prompts_dir=prompts_dir),
    ]
    return {a.method: a for a in agents}


def new_result_id() -> str:
    return uuid4().hex[:12]


def failure_summary(exc: BaseException) -> str:
    if is_rate_limit(exc):
        return RATE_LIMIT_SUMMARY
    return f"Could not generate analysis. {exc}"


class AnalysisDispatcher:
    def __init__(
        self,
        client: GenerationClient,
        retry: Optional[RetryPolicy] = None,
        agents: Optional[Mapping[AnalysisMethod, AnalysisAgent]] = None,
        prompts_dir: Optional[str] = None,
    ):
        self.client = client
        self.retry = retry or RetryPolicy()
        self.agents = dict(agents) if agents is not None else default_agents(prompts_dir)

    @classmethod
    def from_settings(cls, settings) -> "AnalysisDispatcher":
        return cls(
            client=GenerationClient.from_settings(settings),
            retry=RetryPolicy(retries=settings.retry_max, initial_delay=settings.retry_initial_delay),
            prompts_dir=settings.prompts_dir,
        )

    def check_preconditions(
        self,
        method: AnalysisMethod,
        university: Optional[University],
        result_id: Optional[str] = None,
    ) -> Optional[AnalysisResult]:
        """Synchronous FAILED result when `method` cannot run at all, else None."""
        if method is not AnalysisMethod.VISION_ALIGNMENT:
            return None
        try:
            require_vision(university)
        except PreconditionFailed as e:
            log.info("Vision alignment precondition failed", extra={"method": method.value})
            return AnalysisResult(
                result_id=result_id or new_result_id(),
                method=method,
                status=AnalysisStatus.FAILED,
                summary=str(e),
            )
        return None

    async def dispatch(
        self,
        survey: Survey,
        responses: Sequence[SurveyResponse],
        method: AnalysisMethod,
        language: str = "ko",
        university: Optional[University] = None,
        result_id: Optional[str] = None,
    ) -> AnalysisResult:
        method = AnalysisMethod(method)
        result_id = result_id or new_result_id()

        failed = self.check_preconditions(method, university, result_id)
        if failed is not None:
            return failed

        set_request_id(result_id)
        started = time.monotonic()
        try:
            agent = self.agents[method]
            context = AnalysisContext(
                survey=survey,
                responses=tuple(responses),
                language=language,
                university=university,
            )
            prompt = agent.build_prompt(context)
            log.info(
                "Dispatching analysis",
                extra={"survey_id": survey.survey_id, "method": method.value, "responses": len(context.responses)},
            )
            raw = await self.retry.call(self.client.generate, prompt, agent.output_schema)
            summary, payload = agent.parse(raw)
        except Exception as e:
            log.warning(
                "Analysis failed",
                exc_info=True,
                extra={"survey_id": survey.survey_id, "method": method.value},
            )
            return AnalysisResult(
                result_id=result_id,
                method=method,
                status=AnalysisStatus.FAILED,
                summary=failure_summary(e),
            )
        else:
            log.info(
                "Analysis completed",
                extra={
                    "survey_id": survey.survey_id,
                    "method": method.value,
                    "elapsed_seconds": round(time.monotonic() - started, 3),
                },
            )
        finally:
            clear_request_id()

        return AnalysisResult(
            result_id=result_id,
            method=method,
            status=AnalysisStatus.COMPLETED,
            summary=summary,
            payload=payload,
        )
