from pydantic import BaseModel, Field
from typing import Any, Dict, Literal


class GenerateTaskRequest(BaseModel):
    type: str = Field(..., min_length=1)
    mode: Literal["WRITING", "SPEAKING"]


class EvaluateWritingRequest(BaseModel):
    task: Dict[str, Any]
    user_text: str = Field("", alias="userText")

    model_config = {"populate_by_name": True}


class EvaluateSpeakingRequest(BaseModel):
    task: Dict[str, Any]
    audio_base64: str = Field("", alias="audioBase64")

    model_config = {"populate_by_name": True}
