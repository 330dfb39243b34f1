"""Account and model listing schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class Model(BaseModel):
    """An available model."""

    id: str
    object: str = Field(default="model")
    created: int | None = None
    owned_by: str = Field(default="")


class ModelsResponse(BaseModel):
    object: str = Field(default="list")
    data: list[Model] = Field(default_factory=list)


class Balance(BaseModel):
    """Balance information for one currency.

    Amounts are decimal strings as returned by the API.
    """

    currency: str = Field(description="CNY or USD")
    total_balance: str = Field(default="0")
    granted_balance: str = Field(default="0")
    topped_up_balance: str = Field(default="0")


class BalanceResponse(BaseModel):
    is_available: bool = Field(default=False)
    balance_infos: list[Balance] = Field(default_factory=list)


class APIErrorBody(BaseModel):
    """The ``error`` object of an API error response."""

    message: str
    type: str | None = None
    code: str | int | None = None
    param: str | None = None


class ErrorResponse(BaseModel):
    error: APIErrorBody
