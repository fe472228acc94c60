from datetime import datetime
from typing import Optional, List, Dict, Any
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, EmailStr, model_validator


# =========================
# Enums
# =========================
class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


class ToolKind(str, Enum):
    READ = "read"
    WRITE = "write"


class InsightSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INFO = "info"


# =========================
# USER
# =========================
class UserBase(BaseModel):
    email: EmailStr
    role: UserRole = UserRole.USER
    full_name: Optional[str] = None


class CreateUser(UserBase):
    password: str = Field(min_length=8)

    # Create a new company, or join an existing one (admin of that company only)
    company_id: Optional[int] = None
    company_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    company_sector: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="after")
    def require_company(self):
        if self.company_id is None and not self.company_name:
            raise ValueError("Either company_id or company_name is required")
        return self


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(UserBase):
    id: int
    company_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# =========================
# ASSISTANT
# =========================
class ToolSpec(BaseModel):
    """Tool description in the function-calling format the LLM consumes."""

    type: str = "function"
    function: Dict[str, Any]


class ToolCallRequest(BaseModel):
    arguments: Dict[str, Any] = {}


class ChatMessage(BaseModel):
    role: str = Field(pattern="^(user|assistant)$")
    content: str


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(min_length=1)
    current_page: Optional[str] = "/dashboard"


class ChatResponse(BaseModel):
    message: Optional[str] = None
    data_accessed: List[str] = []


class InsightAction(BaseModel):
    tool_name: str
    params: Dict[str, Any] = {}


class Insight(BaseModel):
    id: str
    type: str
    severity: InsightSeverity
    category: str
    title: str
    message: str
    action: Optional[InsightAction] = None


class InsightsResponse(BaseModel):
    page: str
    generated_at: str
    insights: List[Insight] = []
