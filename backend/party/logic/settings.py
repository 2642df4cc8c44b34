"""Tunable rules for a listening party."""

from pydantic import BaseModel, ConfigDict, Field


class PartySettings(BaseModel):
    """Tunable rules shared by the scoring, bingo and achievement engines."""

    model_config = ConfigDict(frozen=True)

    room_code_length: int = Field(default=6, ge=4, le=12)
    max_rating: float = 10.0
    rating_step: float = 0.5
    # achievements count ratings strictly below this as harsh
    harsh_threshold: float = 5.0
    bingo_reward_lpc: int = Field(default=10, ge=0)
    max_chat_length: int = Field(default=500, ge=1)
    # attempts at finding an unused room code before giving up
    room_code_attempts: int = Field(default=10, ge=1)
