# =============================================================================
# analysis.py
# AnalysisOrchestrator: runs identify -> analyze-health over one image as an
# explicit state machine and keeps the single AnalysisCycle the GUI renders.
# =============================================================================

import logging
import threading
from typing import Callable, Optional

import ai
from constants import (DEFAULT_DESCRIPTION, TASK_IDENTIFYING, TASK_HEALTH,
                       TASK_CARE_GUIDE)
from errors import (AnalysisInProgress, AnalysisNotFinished, IdentificationInvalid,
                    NoImage, RemoteError)
from models import (AnalysisCycle, AnalysisState, CareGuide, HealthAnalysisResult,
                    IdentificationResult, ImagePayload)

log = logging.getLogger(__name__)

IdentifyFn     = Callable[[ImagePayload], IdentificationResult]
AnalyzeFn      = Callable[[ImagePayload, str], HealthAnalysisResult]
CareTipsFn     = Callable[[str, str], CareGuide]
NoticeCallback = Callable[[str, str], None]


class AnalysisOrchestrator:
    """
    States: IDLE -> IDENTIFYING -> HEALTH_ANALYZING -> DONE, with ERROR
    reachable from either in-flight state. One cycle at a time; a failed
    cycle keeps no partial results.
    """

    def __init__(self,
                 identify: Optional[IdentifyFn] = None,
                 analyze_health: Optional[AnalyzeFn] = None,
                 care_tips: Optional[CareTipsFn] = None,
                 on_change: Optional[Callable[[AnalysisCycle], None]] = None,
                 on_notice: Optional[NoticeCallback] = None):
        # Resolved at call time so tests can patch the ai module.
        self._identify       = identify
        self._analyze_health = analyze_health
        self._care_tips      = care_tips
        self._on_change      = on_change
        self._on_notice      = on_notice
        self._lock           = threading.Lock()
        self._busy           = False
        self.cycle           = AnalysisCycle()

    # -- Helpers ----------------------------------------------------------------

    def _changed(self):
        if self._on_change:
            self._on_change(self.cycle)

    def _notice(self, title: str, message: str):
        if self._on_notice:
            self._on_notice(title, message)

    def _set_state(self, state: AnalysisState, task_label: Optional[str] = None):
        log.debug("Analysis state %s -> %s", self.cycle.state.name, state.name)
        self.cycle.transition(state, task_label)
        self._changed()

    def _claim(self):
        with self._lock:
            if self._busy:
                raise AnalysisInProgress("An analysis is already running.")
            self._busy = True

    def _unclaim(self):
        with self._lock:
            self._busy = False

    # -- Public API -------------------------------------------------------------

    @property
    def is_busy(self) -> bool:
        return self._busy

    def run_analysis(self, payload: Optional[ImagePayload]) -> AnalysisCycle:
        """
        Run one full cycle over `payload`.

        Raises NoImage without a payload and AnalysisInProgress while another
        cycle runs. Remote failures end the cycle in ERROR instead of raising.
        """
        if payload is None:
            raise NoImage("Please upload a photo of the plant or capture one with the camera.")
        self._claim()
        try:
            self.cycle = AnalysisCycle(payload=payload)
            self._changed()
            return self._run(payload)
        finally:
            self._unclaim()

    def _run(self, payload: ImagePayload) -> AnalysisCycle:
        identify = self._identify or ai.identify_plant
        analyze  = self._analyze_health or ai.analyze_plant_health
        try:
            self._set_state(AnalysisState.IDENTIFYING, TASK_IDENTIFYING)
            ident = identify(payload)
            if ident is None or not (ident.common_name or "").strip():
                raise IdentificationInvalid(
                    "Could not identify the plant. Try a sharper photo or a different angle."
                )
            self.cycle.identification = ident
            self._notice("Plant identified", ident.common_name)

            self._set_state(AnalysisState.HEALTH_ANALYZING, TASK_HEALTH)
            health = analyze(payload, ident.description or DEFAULT_DESCRIPTION)
            self.cycle.health = health
        except RemoteError as e:
            return self._fail(str(e))
        except Exception as e:
            log.exception("Unexpected failure during analysis")
            return self._fail(f"An unexpected error occurred during the analysis: {e}")

        self._set_state(AnalysisState.DONE)
        self._notice("Health analysed",
                     "The plant looks healthy." if health.is_healthy
                     else "The plant may need attention.")
        log.info("Analysis done: %s, healthy=%s", ident.common_name, health.is_healthy)
        return self.cycle

    def _fail(self, message: str) -> AnalysisCycle:
        log.error("Analysis failed: %s", message)
        self.cycle.discard_results()
        self.cycle.error = message
        self._set_state(AnalysisState.ERROR)
        self._notice("Analysis failed", message)
        return self.cycle

    def build_care_guide(self) -> Optional[CareGuide]:
        """
        Ask for a detailed care guide for the finished cycle. Failures are
        reported as a notice and leave the cycle's results untouched.
        """
        if self.cycle.state != AnalysisState.DONE:
            raise AnalysisNotFinished("Finish an analysis before asking for a care guide.")
        self._claim()
        care_tips = self._care_tips or ai.generate_care_tips
        ident, health = self.cycle.identification, self.cycle.health
        try:
            self.cycle.task_label = TASK_CARE_GUIDE
            self._changed()
            guide = care_tips(ident.common_name,
                              f"{health.diagnosis}\n{health.care_tips}")
        except RemoteError as e:
            log.error("Care guide failed: %s", e)
            self.cycle.task_label = None
            self._changed()
            self._notice("Care guide failed", str(e))
            return None
        finally:
            self.cycle.task_label = None
            self._unclaim()
        self.cycle.care_guide = guide
        self._changed()
        return guide

    def clear(self):
        """Discard the current cycle and return to IDLE."""
        if self._busy:
            raise AnalysisInProgress("Wait for the running analysis to finish.")
        self.cycle = AnalysisCycle()
        self._changed()
