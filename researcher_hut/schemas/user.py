from datetime import datetime
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    id: str
    email: str
    username: str
    name: str
    created_at: datetime | None = None

class UsernameAvailabilityOut(BaseModel):
    available: bool
