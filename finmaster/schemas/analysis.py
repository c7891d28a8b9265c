from typing import Literal

from pydantic import BaseModel, Field

from finmaster.config.settings import ApiConfig


class ApiStatus(BaseModel):
    status: Literal["testing", "success", "warning", "error"] = "testing"
    message: str = "Testing API connection..."
    error: str | None = None


class AnalysisState(BaseModel):
    share_list: str = ""
    analysis: str = ""
    is_analyzing: bool = False
    error: str = ""
    api_status: ApiStatus = Field(default_factory=ApiStatus)
    is_api_working: bool = False
    api_config: ApiConfig = Field(default_factory=ApiConfig)
    live_count: int = 0
    simulated_count: int = 0
    symbols: list[str] = Field(default_factory=list)
