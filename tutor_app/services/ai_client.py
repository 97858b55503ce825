"""
Gemini client for task generation and scoring.
Talks to the Generative Language REST API with httpx; every call is bounded
by AI_REQUEST_TIMEOUT and any failure is raised as TransientDependencyFailure.
"""
import json
import logging
import os
import re
import time
from typing import Any, Dict, List

import httpx

from tutor_app.core.errors import TransientDependencyFailure

logger = logging.getLogger(__name__)

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "").strip()
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_BASE_URL = os.getenv(
    "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
).rstrip("/")
AI_REQUEST_TIMEOUT = float(os.getenv("AI_REQUEST_TIMEOUT", "30"))

_FENCE_RE = re.compile(r"```(?:json)?\n?|\n?```")

WRITING_TITLES = {
    "TASK_1_EMAIL": "Writing Task 1: Email",
    "TASK_2_SURVEY": "Writing Task 2: Survey",
}

SPEAKING_TITLES = {
    "1": "Task 1: Giving Advice",
    "2": "Task 2: Personal Experience",
    "3": "Task 3: Describing a Scene",
    "4": "Task 4: Making Predictions",
    "5": "Task 5: Comparing and Persuading",
    "6": "Task 6: Dealing with a Difficult Situation",
    "7": "Task 7: Expressing Opinions",
    "8": "Task 8: Describing an Unusual Situation",
}

SPEAKING_PROMPTS = {
    "1": 'Generate CELPIP Speaking Task 1 (Giving Advice). Return JSON: {"prompt": "advice scenario"}',
    "2": 'Generate CELPIP Speaking Task 2 (Personal Experience). Return JSON: {"prompt": "Talk about a time..."}',
    "3": 'Generate CELPIP Speaking Task 3 (Describe Scene). Return JSON: {"prompt": "Describe...", "imageDescription": "scene description"}',
    "4": 'Generate CELPIP Speaking Task 4 (Predictions). Return JSON: {"prompt": "What will happen?", "imageDescription": "situation"}',
    "5": "Generate CELPIP Task 5 (Compare). Return JSON with prompt, optionA and optionB (each with title and features array).",
    "6": 'Generate CELPIP Task 6 (Difficult Situation). Return JSON: {"prompt": "scenario", "difficultSituationOptions": {"option1": "choice 1", "option2": "choice 2"}}',
    "7": 'Generate CELPIP Speaking Task 7 (Opinion). Return JSON: {"prompt": "opinion question"}',
    "8": 'Generate CELPIP Speaking Task 8 (Unusual). Return JSON: {"prompt": "describe unusual", "imageDescription": "unusual scene"}',
}

SCORE_SCHEMA = """
{
  "score": (integer 1-12),
  %s
  "feedback": "overall feedback",
  "breakdown": {
    "content": "content feedback",
    "vocabulary": "vocabulary feedback",
    "coherence": "coherence feedback",
    "readability": "%s feedback"
  },
  "improvedVersion": "%s"
}
"""


def parse_model_json(text: str) -> Dict[str, Any]:
    """Strip markdown fences the model likes to add and decode the JSON body."""
    cleaned = _FENCE_RE.sub("", text or "").strip()
    return json.loads(cleaned)


class GeminiClient:
    def __init__(
        self,
        api_key: str,
        model: str = GEMINI_MODEL,
        base_url: str = GEMINI_BASE_URL,
        timeout: float = AI_REQUEST_TIMEOUT,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _generate(self, parts: List[Dict[str, Any]]) -> Dict[str, Any]:
        if not self.configured:
            raise TransientDependencyFailure("gemini", "AI service is not configured")

        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = {"contents": [{"role": "user", "parts": parts}]}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                r = await client.post(url, params={"key": self.api_key}, json=payload)
        except httpx.TimeoutException as e:
            logger.warning("Gemini request timed out after %ss", self.timeout)
            raise TransientDependencyFailure("gemini", "AI service timed out") from e
        except httpx.RequestError as e:
            logger.error("Gemini request failed: %s", e)
            raise TransientDependencyFailure("gemini", "AI service request failed") from e

        if r.status_code != 200:
            logger.error("Gemini returned %s: %s", r.status_code, r.text[:500] if r.text else "NO_BODY")
            raise TransientDependencyFailure("gemini", f"AI service error ({r.status_code})")

        try:
            data = r.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
            return parse_model_json(text)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            logger.error("Unusable Gemini response: %s", r.text[:500] if r.text else "NO_BODY")
            raise TransientDependencyFailure("gemini", "AI service returned an unusable response") from e

    async def generate_writing_task(self, task_type: str) -> Dict[str, Any]:
        is_task1 = task_type == "TASK_1_EMAIL"
        if is_task1:
            prompt = (
                "Generate a CELPIP Writing Task 1 (Email). Create a realistic scenario where someone needs to write an email.\n"
                'Return ONLY valid JSON: {"scenario": "description", "bulletPoints": ["point1", "point2", "point3"]}'
            )
        else:
            prompt = (
                "Generate a CELPIP Writing Task 2 (Survey Response). Create a survey question with two options.\n"
                'Return ONLY valid JSON: {"surveyContext": "question", "optionA": {"label": "Option A: Name", '
                '"description": "details"}, "optionB": {"label": "Option B: Name", "description": "details"}}'
            )
        details = await self._generate([{"text": prompt}])
        return {
            "id": str(int(time.time() * 1000)),
            "mode": "WRITING",
            "type": task_type,
            "title": WRITING_TITLES.get(task_type, WRITING_TITLES["TASK_2_SURVEY"]),
            "instructions": "Read the following information.",
            "details": details,
        }

    async def generate_speaking_task(self, task_type: str) -> Dict[str, Any]:
        task_num = task_type.replace("SPEAKING_TASK_", "")
        if task_num not in SPEAKING_PROMPTS:
            raise ValueError(f"Unknown speaking task type: {task_type}")
        details = await self._generate([{"text": SPEAKING_PROMPTS[task_num] + " Return ONLY valid JSON."}])
        details.update({
            "preparationTime": 60,
            "speakingTime": 90 if task_num in ("1", "7") else 60,
        })
        return {
            "id": str(int(time.time() * 1000)),
            "mode": "SPEAKING",
            "type": task_type,
            "title": SPEAKING_TITLES[task_num],
            "instructions": "Read the instructions.",
            "details": details,
        }

    async def evaluate_writing(self, task: Dict[str, Any], user_text: str) -> Dict[str, Any]:
        details = task.get("details") or {}
        if task.get("type") == "TASK_1_EMAIL":
            context = f"Scenario: {details.get('scenario', '')}"
        else:
            context = f"Survey: {details.get('surveyContext', '')}"
        prompt = (
            "You are a CELPIP Writing Examiner. Evaluate this response.\n"
            f"Context: {context}\n"
            f'User Text: "{user_text}"\n\n'
            "Return ONLY valid JSON:"
            + SCORE_SCHEMA % ("", "grammar", "improved version of the text")
        )
        return await self._generate([{"text": prompt}])

    async def evaluate_speaking(self, task: Dict[str, Any], audio_base64: str) -> Dict[str, Any]:
        details = task.get("details") or {}
        context = f"Task: {task.get('title', '')}\nPrompt: {details.get('prompt', '')}"
        options = details.get("options")
        if options:
            context += (
                f"\nOption A: {options.get('optionA', {}).get('title', '')}"
                f"\nOption B: {options.get('optionB', {}).get('title', '')}"
            )
        situation = details.get("difficultSituationOptions")
        if situation:
            context += f"\nOption 1: {situation.get('option1', '')}\nOption 2: {situation.get('option2', '')}"

        prompt = (
            "You are a CELPIP Speaking Examiner.\n"
            "1. Transcribe the audio response.\n"
            "2. Evaluate based on CELPIP criteria.\n"
            "3. Provide a Score (1-12).\n\n"
            f"Task Context: {context}\n\n"
            "Return ONLY valid JSON:"
            + SCORE_SCHEMA % ('"transcript": "transcribed text",', "pronunciation", "example response")
        )
        return await self._generate([
            {"inline_data": {"mime_type": "audio/webm", "data": audio_base64}},
            {"text": prompt},
        ])


def build_ai_client() -> GeminiClient:
    if not GEMINI_API_KEY:
        logger.error("GEMINI_API_KEY not set - task generation and scoring disabled")
    return GeminiClient(api_key=GEMINI_API_KEY)
