"""AI coaching tool routes"""
import logging
import openai
from fastapi import APIRouter, Depends, HTTPException

from app.core.security import require_auth
from app.schemas.ai import ClassPlanRequest
from app.services.class_plan_service import generate_class_plan

router = APIRouter(prefix="/api/ai", tags=["ai"])
logger = logging.getLogger(__name__)


@router.post("/class-plan")
def class_plan(request_data: ClassPlanRequest, user_id: int = Depends(require_auth)):
    """Generate a lesson plan for a class"""
    try:
        return generate_class_plan(
            belt_level=request_data.belt_level,
            focus_area=request_data.focus_area,
            class_duration=request_data.class_duration,
            student_count=request_data.student_count,
            language=request_data.language
        )
    except openai.OpenAIError:
        raise HTTPException(500, "Failed to generate class plan")
