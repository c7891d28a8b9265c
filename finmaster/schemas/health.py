from pydantic import BaseModel, ConfigDict, Field


class HealthStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "healthy"
    yahoo_finance_api: str = Field(alias="yahooFinanceAPI")
    timestamp: str
    cors: str = "enabled"
    version: str
    error: str | None = None
