from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_ID_PATTERN = r"^[A-Za-z0-9_-]+$"


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class ToggleAutopilotRequest(_Request):
    """Body of the ``toggleAutopilot`` RPC."""

    game_id: str = Field(min_length=1, max_length=100, pattern=_ID_PATTERN)
    enabled: bool = Field(strict=True)


class SetAutopilotRequest(_Request):
    enabled: bool = Field(strict=True)


class RegisterPlayerRequest(_Request):
    player_id: str = Field(min_length=1, max_length=100, pattern=_ID_PATTERN)
    name: str = Field(min_length=1, max_length=50)


class SubmitBidRequest(_Request):
    bid: float = Field(strict=True, allow_inf_nan=False)


class SetTimeoutRequest(_Request):
    timed_out: bool = Field(strict=True)


class ExtendRoundTimeRequest(_Request):
    additional_seconds: int = Field(ge=1, le=3600, strict=True)


class SetRivalriesRequest(_Request):
    rivalries: dict[str, list[str]]
