"""Router for the Interview feature."""
from uuid import UUID

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from api.features.interview.controller import InterviewController
from api.features.interview.dtos import (
    ConversationStateDTO,
    InboundMessageRequest,
    TurnReplyDTO,
)
from api.shared.db import get_db_session
from api.shared.dtos import HealthCheckResponse
from api.shared.exceptions import NotFoundError
from api.shared.response import ResponseModel
from di.container import ApplicationContainer as DependencyContainer

router = APIRouter()


@router.get("/health", response_model=ResponseModel[HealthCheckResponse])
async def health_check():
    return ResponseModel.success(
        data=HealthCheckResponse(status="healthy"),
        message="Interview service is healthy",
    )


@router.post("/messages", response_model=ResponseModel[TurnReplyDTO])
@inject
async def post_message(
    request: InboundMessageRequest,
    controller: InterviewController = Depends(
        Provide[DependencyContainer.controllers.interview_controller]
    ),
):
    reply = await controller.handle_message(request=request)
    return ResponseModel.success(data=reply, message="Turn processed")


@router.get(
    "/conversations/{conversation_id}/state",
    response_model=ResponseModel[ConversationStateDTO],
)
@inject
async def get_conversation_state(
    conversation_id: UUID,
    controller: InterviewController = Depends(
        Provide[DependencyContainer.controllers.interview_controller]
    ),
    db_session: AsyncSession = Depends(get_db_session),
):
    try:
        state = await controller.get_state(
            conversation_id=str(conversation_id), db_session=db_session
        )
        return ResponseModel.success(data=state, message="State fetched")
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
