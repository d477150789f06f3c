from pydantic import BaseModel, Field


class AITestRequest(BaseModel):
    # capability and prompt are checked by the endpoint so it can answer 400 with an example
    capability: str = ""
    prompt: str = Field("", max_length=10000)
    model: str | None = Field(None, max_length=200)
    system_instruction: str | None = Field(None, max_length=10000)
    temperature: float | None = Field(None, ge=0, le=2)
    max_tokens: int | None = Field(None, ge=1)
    aspect_ratio: str | None = Field(None, pattern=r"^\d{1,2}:\d{1,2}$")
    negative_prompt: str | None = Field(None, max_length=2000)
    number_of_images: int | None = Field(None, ge=1, le=8)
    duration_seconds: int | None = Field(None, ge=1, le=60)
    image_url: str | None = Field(None, max_length=2000)
    resolution: str | None = Field(None, pattern=r"^\d{3,4}p$")
    person_generation: str | None = Field(None, pattern=r"^(allow_all|allow_adult|dont_allow)$")


class AIErrorResponse(BaseModel):
    status: str = "error"
    provider: str | None = None
    code: str | None = None
    message: str
    rule: str | None = None
    retry_after_seconds: float | None = None
