from typing import Optional

from fastapi import APIRouter, Depends, Query

from collectai.services.communication_service import CommunicationService
from collectai.services.thread_analyzer import analyze_thread, summarize_threads
from collectai.dependencies import get_communication_service

router = APIRouter(prefix="/threads", tags=["threads"])


@router.get("")
async def get_threads(
    organization_id: str = Query(...),
    thread_id: Optional[str] = Query(default=None),
    case_id: Optional[str] = Query(default=None),
    debtor_email: Optional[str] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    comm_service: CommunicationService = Depends(get_communication_service),
):
    """One thread with its analysis when ``thread_id`` is given, else thread summaries."""
    if thread_id:
        messages = await comm_service.get_thread_messages(organization_id, thread_id)
        return {
            "thread_id": thread_id,
            "messages": messages,
            "analysis": analyze_thread(messages).to_dict(),
        }

    messages, related = await comm_service.list_thread_communications(
        organization_id, case_id=case_id, debtor_email=debtor_email, limit=limit,
    )
    threads = summarize_threads(messages, limit=limit, related=related)
    return {
        "threads": [t.to_dict() for t in threads],
        "total": len(threads),
    }
