from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from openai import OpenAI

from src.core.errors import ValidationError
from src.core.geometry import FloorplanAnalysis, parse_analysis
from src.server.settings.config import settings

logger = logging.getLogger(__name__)

LOG_DIR = Path(settings.knowledge_dir) / "logs"

ANALYSIS_PROMPT = """당신은 한국 아파트 평면도를 분석하는 인테리어 견적 전문가입니다.
이미지의 평면도를 분석하여 아래 형식의 JSON만 출력하세요. 설명 문장은 쓰지 마세요.

{
  "totalArea": 전용면적(㎡, 숫자),
  "rooms": [
    {"name": "침실1", "type": "bedroom|living|kitchen|bathroom|balcony|utility|hallway|other",
     "width": 가로(mm), "height": 세로(mm), "area": 면적(㎡), "wallHeight": 2400, "features": []}
  ],
  "calculations": {
    "floorArea": 바닥면적, "wallArea": 벽면적, "ceilingArea": 천장면적,
    "wallLength": 벽 길이(m), "windowCount": 창 개수, "doorCount": 문 개수
  },
  "fixtures": {"toilet": 양변기 수, "sink": 세면기 수, "doors": {"room": 방문 수}},
  "confidence": 0~1 사이의 신뢰도,
  "analysisNotes": "특이사항"
}

- 모든 숫자는 따옴표 없이 숫자로 출력하세요.
- 치수를 읽을 수 없으면 평면 비율로 추정하고 confidence를 낮추세요.
"""


class FloorplanAnalyzer:
    """
    Vision client for floor plan images.

    Sends the image to the chat completions API with a JSON-only prompt and
    returns the answer as a validated FloorplanAnalysis.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client: Any = None) -> None:
        if client is None:
            api_key = api_key or settings.openai_api_key
            if not api_key:
                raise RuntimeError("OPENAI_API_KEY is not set, floor plan analysis is unavailable")
            client = OpenAI(api_key=api_key)
        self.client = client
        self.model = model or settings.openai_model

    def _safe_json_loads(self, raw: str) -> Dict[str, Any]:
        """
        Parses the model output as JSON.
        Falls back to the span from the first '{' to the last '}', and keeps
        the raw text in knowledge/logs when that fails too.
        """
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            start = raw.find("{")
            end = raw.rfind("}")
            if start != -1 and end > start:
                try:
                    return json.loads(raw[start:end + 1])
                except json.JSONDecodeError:
                    pass

            try:
                LOG_DIR.mkdir(parents=True, exist_ok=True)
                (LOG_DIR / "floorplan_raw_error.txt").write_text(raw, encoding="utf-8")
            except OSError as e:
                logger.warning("Could not keep raw analysis output: %s", e)

            raise ValidationError("Floor plan analysis is not valid JSON")

    def analyze(self, image_url: str) -> FloorplanAnalysis:
        if not image_url:
            raise ValidationError("image_url is required")

        logger.info("Analyzing floor plan with %s", self.model)
        response = self.client.chat.completions.create(
            model=self.model,
            temperature=0.0,
            response_format={"type": "json_object"},
            messages=[
                {"role": "system", "content": ANALYSIS_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": "이 평면도를 분석해주세요."},
                        {"type": "image_url", "image_url": {"url": image_url}},
                    ],
                },
            ],
        )

        raw = response.choices[0].message.content or ""
        return parse_analysis(self._safe_json_loads(raw))
