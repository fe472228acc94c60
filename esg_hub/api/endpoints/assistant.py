import logging
from datetime import datetime, timezone
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from esg_hub.core import models, schemas
from esg_hub.core.config import settings
from esg_hub.core.database import get_db
from esg_hub.core.security import get_current_user, validate_admin_role
from esg_hub.core.assistant import chat, insights, registry
from esg_hub.core.assistant.cache import cache
from esg_hub.core.assistant.dispatcher import execute_tool

router = APIRouter(prefix="/assistant", tags=["Assistant"])

db_dep = Annotated[AsyncSession, Depends(get_db)]
user_dep = Annotated[models.User, Depends(get_current_user)]


@router.get("/tools", response_model=List[schemas.ToolSpec])
async def list_tools(
    current_user: user_dep, kind: Optional[schemas.ToolKind] = None
):
    """Tool catalog in function-calling format, optionally only read or write tools."""
    return registry.function_specs(kind.value if kind else None)


@router.post("/tools/{tool_name}")
async def run_tool(
    tool_name: str,
    request: schemas.ToolCallRequest,
    current_user: user_dep,
    db: db_dep,
):
    """
    Run one tool for the caller's company.
    Unknown tools are a 404; tool-level failures come back in the body.
    """
    if registry.get_tool(tool_name) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown tool: {tool_name}"
        )

    return await execute_tool(
        tool_name,
        request.arguments,
        current_user.company_id,
        db,
        user_id=current_user.id,
    )


@router.post("/chat", response_model=schemas.ChatResponse)
async def chat_with_assistant(
    request: schemas.ChatRequest, current_user: user_dep, db: db_dep
):
    company = await db.get(models.Company, current_user.company_id)

    try:
        return await chat.run_chat(
            [m.model_dump() for m in request.messages],
            company,
            current_user,
            request.current_page,
            db,
            settings,
        )
    except chat.AssistantUnavailableError as error:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(error)
        )
    except chat.AssistantGatewayError as error:
        logging.error(f"Chat failed for company {current_user.company_id}: {error}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(error))


@router.get("/insights", response_model=schemas.InsightsResponse)
async def get_insights(
    current_user: user_dep, db: db_dep, page: str = "/dashboard"
):
    items = await insights.generate_insights(page, current_user.company_id, db)
    return {
        "page": page,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "insights": items,
    }


@router.delete("/cache")
async def clear_cache(admin: Annotated[models.User, Depends(validate_admin_role)]):
    removed = len(cache)
    cache.clear()
    return {"Result": f"Cleared {removed} cached entries"}
