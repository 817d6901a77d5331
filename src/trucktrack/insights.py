"""AI operational insights over the trip log, via Google Gemini."""

from __future__ import annotations

import json
import os
import time

from google import genai

from trucktrack import api_tracker, i18n
from trucktrack.models import coerce_trip

MAX_TRIPS_IN_PROMPT = 50

CONFIG_REQUIRED_MESSAGE = (
    "Operational Insights: [Configuration Required] Please contact system "
    "administrator to enable AI Analytics."
)
UNAVAILABLE_MESSAGE = (
    "Operational Insights: Analysis temporarily unavailable due to "
    "connectivity or authorization issues."
)

PROMPT = (
    "Analyze the following truck trip data and provide 3-4 key insights for the owner. "
    "Focus on fuel efficiency, driver performance, and cost hotspots (fines/deductions). "
    "Data: {data}"
)


class InsightGenerator:
    """Produces a short insight text for a list of trips."""

    def generate(self, trips: list) -> str:
        raise NotImplementedError


class GeminiInsights(InsightGenerator):
    """Gemini-backed insights. Never raises: failures become a message."""

    def __init__(self, api_key: str | None = None, model: str = "gemini-3-flash-preview") -> None:
        self._api_key = api_key if api_key is not None else os.getenv("GEMINI_API_KEY", "")
        self._model = model
        self._client = genai.Client(api_key=self._api_key) if self._api_key else None

    @property
    def configured(self) -> bool:
        return self._client is not None

    def build_prompt(self, trips: list) -> str:
        rows = [coerce_trip(t).to_dict() for t in trips[:MAX_TRIPS_IN_PROMPT]]
        return PROMPT.format(data=json.dumps(rows, ensure_ascii=False, default=str))

    def generate(self, trips: list) -> str:
        if not trips:
            return i18n.t("en", "noData")
        if self._client is None:
            print("[insights] GEMINI_API_KEY is missing; AI analytics disabled.", flush=True)
            return CONFIG_REQUIRED_MESSAGE

        prompt = self.build_prompt(trips)
        for attempt in range(3):
            t0 = time.monotonic()
            try:
                response = self._client.models.generate_content(
                    model=self._model,
                    contents=prompt,
                    config=genai.types.GenerateContentConfig(
                        temperature=0.7,
                        top_p=0.95,
                    ),
                )
                ms = int((time.monotonic() - t0) * 1000)
                api_tracker.log_call("gemini", "analyze_trips", "success", ms)
                return response.text or ""
            except Exception as e:
                ms = int((time.monotonic() - t0) * 1000)
                api_tracker.log_call("gemini", "analyze_trips", "error", ms, error=str(e))
                if "429" in str(e) and attempt < 2:
                    time.sleep(4 * (attempt + 1))
                    continue
                print(f"[insights] Gemini analysis error: {e}", flush=True)
                return UNAVAILABLE_MESSAGE
        return UNAVAILABLE_MESSAGE
