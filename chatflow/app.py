"""FastAPI application factory for the chatflow dialogue service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Optional, Type, TypeVar, Union

from fastapi import Body, Depends, FastAPI, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import dialogue
from .config import Settings, get_settings
from .dialogue import DialogueGraph, load_dialogue
from .schemas import (
    ContactOut,
    ContactRequest,
    ContactSaved,
    HealthOut,
    NextRequest,
    QuestionOut,
    ShowFormOut,
)
from .store import ContactSink, ContactStoreError, build_contact_store

logger = logging.getLogger("chatflow.api")

THANK_YOU_MESSAGE = "Thank you! We will contact you as soon as possible."

BodyT = TypeVar("BodyT", NextRequest, ContactRequest)


def _body_as(model: Type[BodyT], payload: Any) -> BodyT:
    """Read a JSON object body; a missing, null or non-object body has every field missing."""
    if not isinstance(payload, dict):
        return model()
    return model.model_validate(payload)


def _required_text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def create_app(
    settings: Optional[Settings] = None,
    graph: Optional[DialogueGraph] = None,
    store: Optional[ContactSink] = None,
) -> FastAPI:
    settings = settings or get_settings()
    if graph is None:
        graph = load_dialogue(settings.dialogue_path)
    if store is None:
        store = build_contact_store(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Startup: env=%s cors_origin=%s questions=%d contact_store=%s",
            settings.environment,
            ",".join(settings.cors_origins),
            len(graph),
            store.kind,
        )
        yield
        app.state.store.close()

    app = FastAPI(title="Chatflow API", version="0.1.0", docs_url="/docs", lifespan=lifespan)
    app.state.settings = settings
    app.state.graph = graph
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(_: Request, exc: Exception):
        logger.exception("Unhandled error")
        return JSONResponse(status_code=500, content={"detail": "Internal error"})

    def get_graph(request: Request) -> DialogueGraph:
        return request.app.state.graph

    def get_store(request: Request) -> ContactSink:
        return request.app.state.store

    @app.get("/health", response_model=HealthOut, summary="Simple health check")
    async def health(graph: DialogueGraph = Depends(get_graph)) -> HealthOut:
        return HealthOut(
            status="ok" if not graph.is_empty else "degraded",
            environment=app.state.settings.environment,
            dialogue_questions=len(graph),
            dangling_edges=len(dialogue.dangling_edges(graph)),
            contact_store=app.state.store.kind,
        )

    @app.get("/start", response_model=QuestionOut, summary="First question of the dialogue")
    async def start(graph: DialogueGraph = Depends(get_graph)) -> QuestionOut:
        result = dialogue.start(graph)
        if isinstance(result, dialogue.Unavailable):
            raise HTTPException(status_code=500, detail="Dialogue schema not available.")
        return QuestionOut.from_question(result)

    @app.post(
        "/next",
        response_model=Union[QuestionOut, ShowFormOut],
        summary="Advance the dialogue with the selected option",
    )
    async def next_question(
        payload: Any = Body(default=None),
        graph: DialogueGraph = Depends(get_graph),
    ) -> Union[QuestionOut, ShowFormOut]:
        body = _body_as(NextRequest, payload)
        result = dialogue.advance(graph, body.question_id, body.option_id)
        if isinstance(result, dialogue.InvalidQuestion):
            logger.info("Rejected unknown question_id=%r", result.question_id)
            raise HTTPException(status_code=400, detail="Invalid question_id")
        if isinstance(result, dialogue.InvalidOption):
            logger.info(
                "Rejected unknown option_id=%r for question %s", result.option_id, result.question_id
            )
            raise HTTPException(status_code=400, detail="Invalid option_id")
        if isinstance(result, dialogue.BrokenEdge):
            logger.error(
                "Option %s of question %s points at missing question %s",
                result.option_id,
                result.question_id,
                result.target,
            )
            raise HTTPException(status_code=500, detail="Internal error: next question not found.")
        if isinstance(result, dialogue.TerminalCapture):
            return ShowFormOut()
        return QuestionOut.from_question(result)

    @app.post("/save-contact", response_model=ContactSaved, summary="Store the user's contact details")
    async def save_contact(
        payload: Any = Body(default=None),
        store: ContactSink = Depends(get_store),
    ) -> Union[ContactSaved, JSONResponse]:
        contact_request = _body_as(ContactRequest, payload)
        name = _required_text(contact_request.name)
        phone = _required_text(contact_request.phone)
        if name is None or phone is None:
            logger.info("Contact rejected: missing name or phone")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Name and phone number are required.",
            )

        try:
            contact = await run_in_threadpool(store.save, name, phone)
        except ContactStoreError as exc:
            logger.exception("Failed to save contact")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"success": False, "error": str(exc)},
            )

        logger.info("Saved contact id=%s", contact.id)
        return ContactSaved(message=THANK_YOU_MESSAGE, contactId=contact.id)

    @app.get("/contacts", response_model=list[ContactOut], summary="List contacts, newest first")
    async def list_contacts(store: ContactSink = Depends(get_store)) -> list[ContactOut]:
        try:
            contacts = await run_in_threadpool(store.list_contacts)
        except ContactStoreError as exc:
            logger.exception("Failed to list contacts")
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return [ContactOut.model_validate(contact) for contact in contacts]

    return app
