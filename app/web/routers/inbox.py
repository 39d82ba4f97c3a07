"""
Inbox Router - unified conversations per contact point
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
import structlog

from ...database.init_db import DatabaseManager, get_db_manager
from ...inbox.feed import InboxFeed
from ..dependencies import get_merchant_id

logger = structlog.get_logger("inbox.web.inbox")

router = APIRouter(prefix="/api/inbox", tags=["inbox"])


@router.get("")
async def list_conversations(
    merchant_id: str = Depends(get_merchant_id),
    db: DatabaseManager = Depends(get_db_manager)
) -> Dict[str, Any]:
    """All conversations of the merchant, most recent first"""
    conversations = await InboxFeed(db).list_conversations(merchant_id)
    return {
        "conversations": [c.to_dict() for c in conversations],
        "count": len(conversations),
    }


@router.get("/{phone}")
async def get_conversation(
    phone: str,
    merchant_id: str = Depends(get_merchant_id),
    db: DatabaseManager = Depends(get_db_manager)
) -> Dict[str, Any]:
    """Single conversation by phone number"""
    conversation = await InboxFeed(db).get_conversation(merchant_id, phone)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation.to_dict()
