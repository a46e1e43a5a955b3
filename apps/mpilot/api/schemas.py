from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TaskRequest(BaseModel):
    goal: str = Field(min_length=1)
    device_id: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("goal")
    @classmethod
    def _strip_goal(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("goal must not be blank")
        return value


class TaskCreated(BaseModel):
    task_id: str
    status: str = "running"


class TaskSummary(BaseModel):
    task_id: str
    goal: str
    device_id: Optional[str] = None
    status: str
    created_at: float
    finished_at: Optional[float] = None
    success: Optional[bool] = None
    summary: Optional[Dict[str, int]] = None
    message: Optional[str] = None
    error: Optional[str] = None


class TaskDetail(TaskSummary):
    steps: List[Dict[str, Any]] = Field(default_factory=list)


class TaskControlResponse(BaseModel):
    task_id: str
    ok: bool
    status: str


class ScreenSize(BaseModel):
    width: int
    height: int


class DeviceInfo(BaseModel):
    serial: str
    model: str
    android_version: str
    screen_size: ScreenSize


class ScreenshotResponse(BaseModel):
    device_id: str
    image: str
    format: str = "png"
