"""Pydantic schemas for roster import"""
from pydantic import BaseModel, ConfigDict
from typing import Optional


class RosterMapping(BaseModel):
    """CSV header to use for each student field; omitted fields are auto-detected"""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    parent_name: Optional[str] = None
    parent_email: Optional[str] = None
    parent_phone: Optional[str] = None
    belt: Optional[str] = None
    birthday: Optional[str] = None
    points: Optional[str] = None
    xp: Optional[str] = None
    global_xp: Optional[str] = None
