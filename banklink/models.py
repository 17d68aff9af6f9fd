from pydantic import BaseModel, Field
from typing import Dict, List


class VerificationResponse(BaseModel):
    service: str
    verified: bool
    parameters: Dict[str, str]
    failed_verifiers: List[str] = Field(default_factory=list)
