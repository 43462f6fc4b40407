from pydantic import BaseModel, Field


class TokenResponse(BaseModel):
    """Response model for authentication token."""
    access_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    """Request model for user login; ``email`` also accepts the username."""
    email: str
    password: str


class RegisterRequest(BaseModel):
    """Request model for self-service account registration."""
    username: str = Field(min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_]+$")
    email: str = Field(max_length=255)
    password: str = Field(min_length=6)
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    department: str | None = Field(default=None, max_length=100)
    position: str | None = Field(default=None, max_length=100)


class UserItem(BaseModel):
    """Account profile as exposed over the API."""
    id: str
    username: str
    email: str
    first_name: str
    last_name: str
    role: str
    status: str
    department: str | None
    position: str | None
    last_login_at: str | None
    created_at: str | None


class UserPage(BaseModel):
    items: list[UserItem]
    total: int
    page: int
    limit: int
    total_pages: int


class UserRoleUpdate(BaseModel):
    role: str


class UserStatusUpdate(BaseModel):
    status: str


class AdminUserCreate(RegisterRequest):
    """Request model for an admin creating an account with an explicit role."""
    role: str = "admin"


class ProfileUpdate(BaseModel):
    """Self-service profile edit; omitted or blank fields are left unchanged."""
    first_name: str | None = Field(default=None, max_length=50)
    last_name: str | None = Field(default=None, max_length=50)
    department: str | None = Field(default=None, max_length=100)
    position: str | None = Field(default=None, max_length=100)


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)
