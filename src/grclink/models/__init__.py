from pydantic import BaseModel, ConfigDict, Field


class CsrfTokenResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    csrf_token: str | None = Field(default=None, alias="csrfToken")
    message: str | None = None
    cookie_name: str | None = Field(default=None, alias="cookieName")


class RiskLevelRanges(BaseModel):
    """Upper bounds of the low, medium and high risk bands."""

    model_config = ConfigDict(populate_by_name=True)

    low_max: float = Field(default=6, alias="lowMax")
    medium_max: float = Field(default=12, alias="mediumMax")
    high_max: float = Field(default=19, alias="highMax")


class ControlEffect(BaseModel):
    """Effectiveness of one control and which risk factor it reduces."""

    model_config = ConfigDict(populate_by_name=True)

    effectiveness: float
    effect_target: str = Field(alias="effectTarget")


__all__ = [
    "ControlEffect",
    "CsrfTokenResponse",
    "RiskLevelRanges",
]
