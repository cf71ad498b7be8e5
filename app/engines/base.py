"""
Base class and type contracts for all signal engines.
Every engine MUST inherit from SignalEngine and implement run().

Design principles:
- Engines are stateless: all inputs come from the SignalRequest
- Engines are independent: no engine imports another
- Engines return a standardized SignalResult
- Engines never raise out of execute(); failures become a FAILED result
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any
from uuid import UUID

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from app.core.config import get_settings

logger = structlog.get_logger(__name__)


# ─────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────

class Severity(str, Enum):
    HIGH = "high"       # Blocks AI systems outright - fix immediately
    MEDIUM = "med"      # Reduces what can be understood - fix soon
    LOW = "low"         # Missing affordance - fix when convenient


class SignalName(str, Enum):
    W3C = "w3c"         # Structural validator
    PSI = "psi"         # Performance scanner
    WAVE = "wave"       # Accessibility scanner
    AI = "ai"           # Crawlability / AI visibility analyzer


class SignalStatus(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SUCCESS = "success"
    ERROR = "error"


class EngineStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


# ─────────────────────────────────────────────
# Core data types
# ─────────────────────────────────────────────

class ScoringProfile(BaseModel):
    """
    Snapshot of the active scoring settings.
    Engines read thresholds and the validator penalty from here instead of the database.
    """
    model_config = ConfigDict(from_attributes=True)

    weight_w3c: float
    weight_psi_mobile: float
    weight_accessibility: float
    weight_design: float
    weight_ai: float
    w3c_issue_penalty: float
    grade_a_min: int
    grade_b_min: int
    grade_c_min: int
    grade_d_min: int

    @classmethod
    def defaults(cls) -> ScoringProfile:
        settings = get_settings()
        return cls(
            weight_w3c=settings.DEFAULT_WEIGHT_W3C,
            weight_psi_mobile=settings.DEFAULT_WEIGHT_PSI_MOBILE,
            weight_accessibility=settings.DEFAULT_WEIGHT_ACCESSIBILITY,
            weight_design=settings.DEFAULT_WEIGHT_DESIGN,
            weight_ai=settings.DEFAULT_WEIGHT_AI,
            w3c_issue_penalty=settings.DEFAULT_W3C_ISSUE_PENALTY,
            grade_a_min=settings.DEFAULT_GRADE_A_MIN,
            grade_b_min=settings.DEFAULT_GRADE_B_MIN,
            grade_c_min=settings.DEFAULT_GRADE_C_MIN,
            grade_d_min=settings.DEFAULT_GRADE_D_MIN,
        )

    @property
    def thresholds(self) -> tuple[int, int, int, int]:
        return (self.grade_a_min, self.grade_b_min, self.grade_c_min, self.grade_d_min)

    def grade_for(self, score: float) -> str:
        return SignalEngine.calculate_grade(score, self.thresholds)


class SignalRequest(BaseModel):
    """Input for one signal run against one audit."""
    audit_id: UUID
    website_url: str
    scoring: ScoringProfile = Field(default_factory=ScoringProfile.defaults)


class Finding(BaseModel):
    """A single human-readable issue attached to a signal result."""
    model_config = ConfigDict(use_enum_values=True)

    severity: Severity
    title: str
    description: str
    recommendation: str


class SignalResult(BaseModel):
    """Standardized output from every engine."""
    model_config = ConfigDict(use_enum_values=True)

    signal: SignalName
    audit_id: UUID
    status: EngineStatus
    score: float | None = None
    grade: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    execution_time_ms: float = 0.0
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == EngineStatus.SUCCESS


# ─────────────────────────────────────────────
# Base Engine
# ─────────────────────────────────────────────

DEFAULT_THRESHOLDS = (90, 80, 70, 60)


class SignalEngine(ABC):
    """
    Abstract base class for all signal engines.

    All engines MUST:
    1. Implement run(request, client) -> SignalResult
    2. Raise only for run-terminal failures; degraded fetches are absorbed in run()
    3. Be stateless - store nothing on self between calls
    4. Return results within CELERY_TASK_SOFT_TIME_LIMIT
    """

    SIGNAL: SignalName = SignalName.AI

    def __init__(self, client: httpx.AsyncClient | None = None):
        self.logger = structlog.get_logger(self.__class__.__name__)
        self._client = client

    @abstractmethod
    async def run(self, request: SignalRequest, client: httpx.AsyncClient) -> SignalResult:
        """
        Execute the engine against one site.

        Args:
            request: Audit identifier, site URL and the scoring snapshot
            client: Shared HTTP client for every outbound fetch of this run

        Returns:
            SignalResult with score, grade and the persisted details payload
        """
        ...

    def build_client(self) -> httpx.AsyncClient:
        """HTTP client used when none was injected."""
        return httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": get_settings().SIGNAL_USER_AGENT},
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
        )

    async def execute(self, request: SignalRequest) -> SignalResult:
        """
        Wrapper around run() that adds timing, logging, and error handling.
        Call this instead of run() directly.
        """
        start = time.perf_counter()
        self.logger.info(
            "Engine starting",
            signal=self.SIGNAL.value,
            audit_id=str(request.audit_id),
            website_url=request.website_url,
        )

        try:
            if self._client is not None:
                result = await self.run(request, self._client)
            else:
                async with self.build_client() as client:
                    result = await self.run(request, client)
            elapsed = (time.perf_counter() - start) * 1000
            result.execution_time_ms = elapsed
            self.logger.info(
                "Engine complete",
                signal=self.SIGNAL.value,
                audit_id=str(request.audit_id),
                score=result.score,
                grade=result.grade,
                elapsed_ms=round(elapsed, 2),
            )
            return result

        except Exception as exc:
            elapsed = (time.perf_counter() - start) * 1000
            self.logger.error(
                "Engine failed",
                signal=self.SIGNAL.value,
                audit_id=str(request.audit_id),
                error=str(exc),
                elapsed_ms=round(elapsed, 2),
                exc_info=True,
            )
            return SignalResult(
                signal=self.SIGNAL,
                audit_id=request.audit_id,
                status=EngineStatus.FAILED,
                execution_time_ms=elapsed,
                error_message=str(exc) or exc.__class__.__name__,
            )

    @staticmethod
    def calculate_grade(score: float, thresholds: tuple[int, int, int, int] = DEFAULT_THRESHOLDS) -> str:
        """Convert numeric score to letter grade."""
        a_min, b_min, c_min, d_min = thresholds
        if score >= a_min:
            return "A"
        elif score >= b_min:
            return "B"
        elif score >= c_min:
            return "C"
        elif score >= d_min:
            return "D"
        return "F"

    @staticmethod
    def clamp_score(raw: float, low: float = 0.0, high: float = 100.0) -> float:
        """Clamp a raw value into [low, high]."""
        return max(low, min(high, raw))
