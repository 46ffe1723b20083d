from pydantic import BaseModel, ConfigDict, Field, model_validator


class ProjectRules(BaseModel):
    slug: str
    rules_version: str


class RateLimitWindow(BaseModel):
    window_seconds: int = Field(default=60, gt=0)
    max_requests: int = Field(default=600, gt=0)


class LimitsRules(BaseModel):
    location_default: int = Field(default=50, gt=0)
    location_max: int = Field(default=100, gt=0)
    links_default: int = Field(default=20, gt=0)
    links_max: int = Field(default=50, gt=0)
    dashboard_section: int = Field(default=10, gt=0)
    real_time_top: int = Field(default=5, gt=0)
    export_locations: int = Field(default=50, gt=0)
    batch_max_items: int = Field(default=1000, gt=0)

    @model_validator(mode="after")
    def defaults_within_max(self) -> "LimitsRules":
        if self.location_default > self.location_max:
            raise ValueError("location_default exceeds location_max")
        if self.links_default > self.links_max:
            raise ValueError("links_default exceeds links_max")
        return self


class RealTimeRules(BaseModel):
    min_minutes: int = Field(default=5, gt=0)
    max_minutes: int = Field(default=1440, gt=0)
    default_minutes: int = Field(default=30, gt=0)

    @model_validator(mode="after")
    def default_within_bounds(self) -> "RealTimeRules":
        if not self.min_minutes <= self.default_minutes <= self.max_minutes:
            raise ValueError("default_minutes must lie between min_minutes and max_minutes")
        return self


class ExportRules(BaseModel):
    raw_data_cap: int = Field(default=10000, gt=0)
    default_metrics: list[str] = ["views", "clicks", "engagement"]


class OrchestrationRules(BaseModel):
    branch_timeout_seconds: float = Field(default=10.0, gt=0)


class AnalyticsRules(BaseModel):
    enabled: bool = True
    app_domain: str = "localhost"
    geoip_db_path: str | None = None
    rate_limit: RateLimitWindow = RateLimitWindow()
    limits: LimitsRules = LimitsRules()
    real_time: RealTimeRules = RealTimeRules()
    export: ExportRules = ExportRules()
    orchestration: OrchestrationRules = OrchestrationRules()


class Rules(BaseModel):
    model_config = ConfigDict(extra="forbid")

    project: ProjectRules
    analytics: AnalyticsRules
