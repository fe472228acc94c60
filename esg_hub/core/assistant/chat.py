import json
import logging
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from esg_hub.core import models
from esg_hub.core.config import Settings
from esg_hub.core.assistant.dispatcher import execute_tool
from esg_hub.core.assistant.insights import build_page_context
from esg_hub.core.assistant.registry import function_specs


# -----------------------------------------------------------------------------
# CHAT ORCHESTRATION
# Purpose: one assistant turn against an OpenAI-compatible gateway.
# Flow: system prompt + history -> model -> tool calls via the dispatcher ->
# model again with the tool results -> final text.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)


class AssistantUnavailableError(Exception):
    """No gateway key configured."""


class AssistantGatewayError(Exception):
    """Gateway answered with an error status or an unusable body."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


SYSTEM_PROMPT = """You are the ESG assistant of {company_name} ({sector}).
Answer with the company's own data: call the read tools before quoting numbers.
Only call write tools when the user clearly asks to create or change something,
and confirm what was written afterwards.
Be concise. Dates are ISO formatted (YYYY-MM-DD).

{page_context}"""


async def build_system_prompt(
    company: models.Company, current_page: Optional[str], db: AsyncSession
) -> str:
    page_context = await build_page_context(current_page, company.id, db)
    return SYSTEM_PROMPT.format(
        company_name=company.name,
        sector=company.sector or "sector not informed",
        page_context=page_context,
    )


async def call_gateway(
    client: httpx.AsyncClient, settings: Settings, messages: List[Dict[str, Any]]
) -> Dict[str, Any]:
    """
    POST one completion request and return the first choice's message.

    Raises:
        AssistantGatewayError: non-2xx status or malformed response
    """
    response = await client.post(
        f"{settings.AI_GATEWAY_URL.rstrip('/')}/chat/completions",
        headers={"Authorization": f"Bearer {settings.AI_GATEWAY_API_KEY}"},
        json={
            "model": settings.AI_MODEL,
            "messages": messages,
            "tools": function_specs(),
            "tool_choice": "auto",
        },
    )

    if response.status_code >= 400:
        logger.error(f"AI gateway returned {response.status_code}: {response.text[:200]}")
        raise AssistantGatewayError(
            f"AI gateway error ({response.status_code})", status_code=response.status_code
        )

    try:
        return response.json()["choices"][0]["message"]
    except (ValueError, KeyError, IndexError) as e:
        raise AssistantGatewayError(f"Malformed AI gateway response: {e}")


def parse_arguments(raw: Any) -> Dict[str, Any]:
    """Tool arguments arrive as a JSON string; bad JSON becomes an empty dict."""
    if isinstance(raw, dict):
        return raw
    try:
        parsed = json.loads(raw or "{}")
    except json.JSONDecodeError:
        logger.warning(f"Could not parse tool arguments: {raw!r}")
        return {}
    return parsed if isinstance(parsed, dict) else {}


async def run_chat(
    messages: List[Dict[str, str]],
    company: models.Company,
    user: models.User,
    current_page: Optional[str],
    db: AsyncSession,
    settings: Settings,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    """
    Run one chat turn, executing tool calls the model asks for.

    Args:
        messages: conversation so far, [{"role", "content"}]
        company: tenant the tools are scoped to
        user: author of any write
        current_page: frontend route, used for the page context
        client: optional preconfigured httpx client

    Returns:
        {"message": final assistant text, "data_accessed": tool names run}

    Raises:
        AssistantUnavailableError: no gateway key
        AssistantGatewayError: gateway failure
    """
    if not settings.AI_GATEWAY_API_KEY:
        raise AssistantUnavailableError("AI gateway is not configured")

    system_prompt = await build_system_prompt(company, current_page, db)
    conversation: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    conversation.extend({"role": m["role"], "content": m["content"]} for m in messages)

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.AI_REQUEST_TIMEOUT_SECONDS)

    data_accessed: List[str] = []
    try:
        reply = await call_gateway(client, settings, conversation)
        tool_calls = reply.get("tool_calls") or []

        if tool_calls:
            conversation.append(reply)

            for call in tool_calls:
                function = call.get("function", {})
                name = function.get("name", "")
                args = parse_arguments(function.get("arguments"))

                result = await execute_tool(name, args, company.id, db, user_id=user.id)
                data_accessed.append(name)

                conversation.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.get("id"),
                        "content": json.dumps(result, default=str),
                    }
                )

            reply = await call_gateway(client, settings, conversation)

    except httpx.HTTPError as e:
        logger.error(f"AI gateway request failed: {e}")
        raise AssistantGatewayError(f"AI gateway request failed: {e}")
    finally:
        if owns_client:
            await client.aclose()

    return {"message": reply.get("content"), "data_accessed": data_accessed}
