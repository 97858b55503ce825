"""
Task routes.
Listing, AI generation and AI scoring of practice tasks.

Generate/evaluate routes follow the same order:
  1. gate with the evaluated entitlement (require_entitlement)
  2. call the AI service (no account state is touched if this fails)
  3. record consumption in the usage ledger
A failed ledger write does not fail the request; the response carries
usageRecorded=false instead.
"""
import logging
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from tutor_app.db.session import get_db
from tutor_app.dependencies.entitlement import get_entitlement, require_entitlement
from tutor_app.dependencies.services import get_ai_client
from tutor_app.schemas.tasks import EvaluateSpeakingRequest, EvaluateWritingRequest, GenerateTaskRequest
from tutor_app.services.ai_client import GeminiClient, SPEAKING_TITLES, WRITING_TITLES
from tutor_app.services.entitlement import (
    EffectiveEntitlement,
    REASON_DEMO_EXHAUSTED,
    REASON_UNAUTHENTICATED,
)
from tutor_app.services.task_catalog import DEMO_WRITING_TASK, PREMIUM_TASKS, find_premium_task
from tutor_app.services.usage_ledger import (
    TASK_MODE_SPEAKING,
    TASK_MODE_WRITING,
    TaskSummary,
    UsageLedger,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MIN_WRITING_LENGTH = 20


@router.get("/available")
def get_available_tasks(entitlement: EffectiveEntitlement = Depends(get_entitlement)):
    """Tasks the caller can open right now, with a status for the upgrade banner."""
    if entitlement.is_premium:
        return {
            "status": "premium",
            "tasks": PREMIUM_TASKS,
            "canGenerate": True,
            "message": "You have unlimited access to all tasks!",
        }
    if entitlement.reason == REASON_UNAUTHENTICATED:
        return {
            "status": "guest",
            "tasks": [],
            "canGenerate": False,
            "message": "Please log in to try a free demo task or upgrade to premium.",
            "loginRequired": True,
        }
    if entitlement.reason == REASON_DEMO_EXHAUSTED:
        return {
            "status": "demo_exhausted",
            "tasks": [],
            "canGenerate": False,
            "message": "You have used your free demo. Upgrade to premium for unlimited access!",
            "upgradeRequired": True,
        }
    return {
        "status": "demo",
        "tasks": [DEMO_WRITING_TASK],
        "canGenerate": False,
        "remainingDemo": entitlement.demo_remaining,
        "message": "Try 1 free task! Upgrade for unlimited access.",
    }


@router.get("/{task_type}")
def get_task(task_type: str, entitlement: EffectiveEntitlement = Depends(get_entitlement)):
    if not entitlement.is_premium:
        if task_type == DEMO_WRITING_TASK["type"]:
            return {"task": DEMO_WRITING_TASK}
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Upgrade to premium to access all tasks."
        )

    task = find_premium_task(task_type)
    if not task:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")
    return {"task": task}


@router.post("/generate")
async def generate_task(
    request: GenerateTaskRequest,
    db: Session = Depends(get_db),
    entitlement: EffectiveEntitlement = Depends(require_entitlement),
    ai_client: GeminiClient = Depends(get_ai_client),
):
    if request.mode == TASK_MODE_WRITING:
        if request.type not in WRITING_TITLES:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown writing task type")
        task = await ai_client.generate_writing_task(request.type)
    else:
        if request.type.replace("SPEAKING_TASK_", "") not in SPEAKING_TITLES:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown speaking task type")
        task = await ai_client.generate_speaking_task(request.type)

    usage = UsageLedger(db).record_consumption_safely(
        entitlement.account_id, TaskSummary(request.type, request.mode), entitlement
    )
    return {"task": task, "usageRecorded": usage.recorded}


def _task_type(task: dict) -> str:
    task_type = str(task.get("type") or "").strip()
    if not task_type:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Task type required")
    return task_type


@router.post("/evaluate/writing")
async def evaluate_writing(
    request: EvaluateWritingRequest,
    db: Session = Depends(get_db),
    entitlement: EffectiveEntitlement = Depends(require_entitlement),
    ai_client: GeminiClient = Depends(get_ai_client),
):
    if not request.user_text or len(request.user_text.strip()) < MIN_WRITING_LENGTH:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Response too short")
    task_type = _task_type(request.task)

    result = await ai_client.evaluate_writing(request.task, request.user_text)

    usage = UsageLedger(db).record_consumption_safely(
        entitlement.account_id, TaskSummary(task_type, TASK_MODE_WRITING), entitlement
    )
    return {"result": result, "usageRecorded": usage.recorded}


@router.post("/evaluate/speaking")
async def evaluate_speaking(
    request: EvaluateSpeakingRequest,
    db: Session = Depends(get_db),
    entitlement: EffectiveEntitlement = Depends(require_entitlement),
    ai_client: GeminiClient = Depends(get_ai_client),
):
    if not request.audio_base64:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Audio data required")
    task_type = _task_type(request.task)

    result = await ai_client.evaluate_speaking(request.task, request.audio_base64)

    usage = UsageLedger(db).record_consumption_safely(
        entitlement.account_id, TaskSummary(task_type, TASK_MODE_SPEAKING), entitlement
    )
    return {"result": result, "usageRecorded": usage.recorded}
