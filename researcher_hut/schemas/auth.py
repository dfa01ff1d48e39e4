from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

# Every field defaults to "" so missing values reach the flow validators,
# which answer with a specific message instead of a schema dump.

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

# --- admin ---
class AdminSendOtpIn(CamelModel):
    email: str = ""

class AdminVerifyIn(CamelModel):
    email: str = ""
    otp: str = ""
    username: str = ""
    password: str = ""

class AdminResetIn(CamelModel):
    email: str = ""
    otp: str = ""
    new_username: str = ""
    new_password: str = ""

class AdminOut(CamelModel):
    id: str
    email: str
    name: str = "Admin"
    is_admin: bool = True

# --- signup ---
class SignupSendOtpIn(CamelModel):
    email: str = ""
    name: str = ""
    username: str = ""
    password: str = ""

class SignupVerifyIn(CamelModel):
    email: str = ""
    otp: str = ""

# --- email change ---
class EmailChangeSendOtpIn(CamelModel):
    user_id: str = ""
    current_email: str = ""
    new_email: str = ""

class EmailChangeVerifyIn(CamelModel):
    user_id: str = ""
    otp: str = ""

# --- password reset ---
class PasswordResetSendOtpIn(CamelModel):
    email: str = ""

class PasswordResetIn(CamelModel):
    email: str = ""
    otp: str = ""
    new_password: str = ""
