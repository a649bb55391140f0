"""Pydantic schemas used by the API."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from .dialogue import SHOW_FORM, EnterCapture, Option, Question


class NextRequest(BaseModel):
    # Untyped: non-numeric ids must reach the handler and become a 400, not a 422.
    question_id: Any = Field(default=None, description="Id of the question being answered.")
    option_id: Any = Field(default=None, description="Id of the option the user picked.")


class ContactRequest(BaseModel):
    name: Any = Field(default=None, description="Contact name.")
    phone: Any = Field(default=None, description="Contact phone number.")


class OptionOut(BaseModel):
    id: Optional[int]
    label: str
    next: Union[int, Literal["show_form"], None]

    @classmethod
    def from_option(cls, option: Option) -> "OptionOut":
        if isinstance(option.next, EnterCapture):
            next_value: Union[int, str, None] = SHOW_FORM
        else:
            next_value = option.next.question_id
        return cls(id=option.id, label=option.label, next=next_value)


class QuestionOut(BaseModel):
    id: Optional[int]
    prompt: str
    options: list[OptionOut]

    @classmethod
    def from_question(cls, question: Question) -> "QuestionOut":
        return cls(
            id=question.id,
            prompt=question.prompt,
            options=[OptionOut.from_option(option) for option in question.options],
        )


class ShowFormOut(BaseModel):
    action: Literal["show_form"] = SHOW_FORM


class ContactSaved(BaseModel):
    success: bool = True
    message: str
    contactId: int


class ContactOut(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    name: str
    phone: str
    created_at: datetime


class HealthOut(BaseModel):
    status: str
    environment: str
    dialogue_questions: int
    dangling_edges: int
    contact_store: str
