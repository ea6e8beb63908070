"""Pydantic schemas for AI-assisted coaching tools"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class ClassPlanRequest(BaseModel):
    """Class plan parameters; camelCase keys from the web app are accepted too"""
    model_config = ConfigDict(populate_by_name=True)

    belt_level: Optional[str] = Field(None, alias="beltLevel", max_length=100)
    focus_area: Optional[str] = Field(None, alias="focusArea", max_length=200)
    class_duration: Optional[int] = Field(None, alias="classDuration", ge=10, le=240)
    student_count: Optional[int] = Field(None, alias="studentCount", ge=1, le=500)
    language: Optional[str] = Field(None, max_length=50)
