# survey_analytics/workflows/state.py
from __future__ import annotations

from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Type, Union


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class AnalysisMethod(str, Enum):
    COMPREHENSIVE = "COMPREHENSIVE"
    IMPORTANCE_PERFORMANCE = "IMPORTANCE_PERFORMANCE"
    STATISTICAL_SPREAD = "STATISTICAL_SPREAD"
    CORRESPONDENCE = "CORRESPONDENCE"
    DEMOGRAPHIC = "DEMOGRAPHIC"
    VISION_ALIGNMENT = "VISION_ALIGNMENT"


# Display order of the analysis tabs.
ANALYSIS_METHODS: Tuple[AnalysisMethod, ...] = tuple(AnalysisMethod)


class AnalysisStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# -------------------------
# Method payloads (one variant per method)
# -------------------------

@dataclass(frozen=True)
class ComprehensiveDiagnosis:
    diagnosis: str
    strengths: Tuple[str, ...] = ()
    weaknesses: Tuple[str, ...] = ()
    improvement_strategies: Tuple[str, ...] = ()
    key_themes: Tuple[str, ...] = ()
    sentiment_score: int = 0
    recommendations: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ImportancePerformancePoint:
    label: str
    importance: float
    performance: float


@dataclass(frozen=True)
class ImportancePerformance:
    points: Tuple[ImportancePerformancePoint, ...] = ()


@dataclass(frozen=True)
class SpreadRow:
    label: str
    min: float
    q1: float
    median: float
    q3: float
    max: float


@dataclass(frozen=True)
class StatisticalSpread:
    rows: Tuple[SpreadRow, ...] = ()


@dataclass(frozen=True)
class CorrespondencePoint:
    label: str
    x: float
    y: float
    category: str


@dataclass(frozen=True)
class Correspondence:
    points: Tuple[CorrespondencePoint, ...] = ()


@dataclass(frozen=True)
class DemographicInsights:
    insights: Tuple[str, ...] = ()


@dataclass(frozen=True)
class VisionAlignment:
    alignment_score: float
    alignment_summary: str
    aligned_areas: Tuple[str, ...] = ()
    gap_areas: Tuple[str, ...] = ()


AnalysisPayload = Union[
    ComprehensiveDiagnosis,
    ImportancePerformance,
    StatisticalSpread,
    Correspondence,
    DemographicInsights,
    VisionAlignment,
]

PAYLOAD_TYPES: Dict[AnalysisMethod, Type[Any]] = {
    AnalysisMethod.COMPREHENSIVE: ComprehensiveDiagnosis,
    AnalysisMethod.IMPORTANCE_PERFORMANCE: ImportancePerformance,
    AnalysisMethod.STATISTICAL_SPREAD: StatisticalSpread,
    AnalysisMethod.CORRESPONDENCE: Correspondence,
    AnalysisMethod.DEMOGRAPHIC: DemographicInsights,
    AnalysisMethod.VISION_ALIGNMENT: VisionAlignment,
}


# -------------------------
# Analysis record
# -------------------------

@dataclass(frozen=True)
class AnalysisResult:
    """
    One entry of a survey's analysis history.

    A COMPLETED record always carries the payload variant of its method;
    PENDING and FAILED records carry summary text only.
    """

    result_id: str
    method: AnalysisMethod
    status: AnalysisStatus
    summary: str = ""
    payload: Optional[AnalysisPayload] = None
    created_at: str = field(default_factory=utc_now_iso)

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", AnalysisMethod(self.method))
        object.__setattr__(self, "status", AnalysisStatus(self.status))
        if self.status is AnalysisStatus.COMPLETED:
            expected = PAYLOAD_TYPES[self.method]
            if not isinstance(self.payload, expected):
                raise ValueError(
                    f"COMPLETED {self.method.value} result requires a {expected.__name__} payload."
                )
        elif self.payload is not None:
            raise ValueError(f"{self.status.value} result must not carry a payload.")

    @property
    def is_pending(self) -> bool:
        return self.status is AnalysisStatus.PENDING

    @property
    def is_completed(self) -> bool:
        return self.status is AnalysisStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status is AnalysisStatus.FAILED

    # -------------------------
    # JSON serialization
    # -------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result_id": self.result_id,
            "created_at": self.created_at,
            "method": self.method.value,
            "status": self.status.value,
            "summary": self.summary,
            "payload": _json_sanitize(self.payload) if self.payload is not None else None,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "AnalysisResult":
        method = AnalysisMethod(d["method"])
        raw_payload = d.get("payload")
        payload = payload_from_dict(method, raw_payload) if raw_payload is not None else None
        return AnalysisResult(
            result_id=str(d["result_id"]),
            created_at=str(d.get("created_at") or utc_now_iso()),
            method=method,
            status=AnalysisStatus(d.get("status", AnalysisStatus.COMPLETED.value)),
            summary=str(d.get("summary") or ""),
            payload=payload,
        )


def payload_from_dict(method: AnalysisMethod, d: Dict[str, Any]) -> AnalysisPayload:
    # Inverse of _json_sanitize for the payload variant of `method`.
    if method is AnalysisMethod.COMPREHENSIVE:
        return ComprehensiveDiagnosis(
            diagnosis=str(d.get("diagnosis", "")),
            strengths=tuple(d.get("strengths") or ()),
            weaknesses=tuple(d.get("weaknesses") or ()),
            improvement_strategies=tuple(d.get("improvement_strategies") or ()),
            key_themes=tuple(d.get("key_themes") or ()),
            sentiment_score=int(d.get("sentiment_score") or 0),
            recommendations=tuple(d.get("recommendations") or ()),
        )
    if method is AnalysisMethod.IMPORTANCE_PERFORMANCE:
        return ImportancePerformance(points=tuple(ImportancePerformancePoint(**p) for p in d.get("points") or ()))
    if method is AnalysisMethod.STATISTICAL_SPREAD:
        return StatisticalSpread(rows=tuple(SpreadRow(**r) for r in d.get("rows") or ()))
    if method is AnalysisMethod.CORRESPONDENCE:
        return Correspondence(points=tuple(CorrespondencePoint(**p) for p in d.get("points") or ()))
    if method is AnalysisMethod.DEMOGRAPHIC:
        return DemographicInsights(insights=tuple(d.get("insights") or ()))
    return VisionAlignment(
        alignment_score=float(d.get("alignment_score") or 0),
        alignment_summary=str(d.get("alignment_summary", "")),
        aligned_areas=tuple(d.get("aligned_areas") or ()),
        gap_areas=tuple(d.get("gap_areas") or ()),
    )


def _json_sanitize(obj: Any) -> Any:
    if obj is None: return None
    if isinstance(obj, Enum): return obj.value
    if isinstance(obj, (str, int, float, bool)): return obj
    if isinstance(obj, datetime): return obj.replace(microsecond=0).isoformat()
    if is_dataclass(obj): return _json_sanitize(asdict(obj))
    if isinstance(obj, dict): return {str(k): _json_sanitize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)): return [_json_sanitize(v) for v in obj]
    return str(obj)
