"""Users API Routes

Sample endpoints showing each binding source:
- POST /users binds a form, JSON or XML body chosen by Content-Type
- GET /users binds filters from the query string
- GET /users/{user_id} binds from the path and a request header

Every model used through Bind is documented under components.schemas in
both the JSON and the XML dialect.
"""
from datetime import datetime
from typing import Annotated
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends

from webfram.bind import Bind, BindModel, Field, bound
from webfram.logging import api_logger

log = api_logger()

router = APIRouter()


# === Request Models ===

class Address(BindModel):
    street: str = Field(validate="required", form="street", description="Street and house number")
    city: str = Field(validate="required,maxlength=80", form="city")
    zip: str | None = Field(None, validate="pattern=^[0-9]{5}$", form="zip")


class UserCreate(BindModel):
    Name: str = Field(validate="required,minlength=2", form="name", xml="name",
                      errmsg="required=Name is required")
    Email: str = Field(validate="required,format=email", form="email", xml="email")
    Age: int = Field(validate="min=0,max=150", form="age", xml="age,attr")
    Role: str = Field("user", validate="enum=admin|user|guest", form="role", xml="role")
    Tags: list[str] = Field(default_factory=list, validate="maxItems=5,uniqueItems,maxlength=20",
                            form="tags", xml="tag")
    Home: Address | None = Field(None, form="address", xml="address")


class UserQuery(BindModel):
    page: int = Field(1, validate="min=1")
    per_page: int = Field(20, validate="min=1,max=100", query="per-page")
    role: str | None = Field(None, validate="enum=admin|user|guest")
    since: datetime | None = Field(None, validate="format=%Y-%m-%d")


class UserPath(BindModel):
    user_id: UUID = Field(validate="required", path="user_id", bind_from="path")
    request_id: str = Field("", header="X-Request-ID", bind_from="header")


# === Routes ===

@router.post("/users", status_code=201)
async def create_user(user: Annotated[UserCreate, Depends(Bind(UserCreate, source="body"))]):
    """Create a user from a form, JSON or XML body."""
    user_id = uuid4()
    log.info("user_created", user_id=str(user_id), role=user.Role)
    return {"id": str(user_id), "user": user.model_dump(mode="json")}


@router.get("/users")
async def list_users(query: UserQuery = bound(UserQuery, source="query")):
    """Echo the bound filters; there is no user store behind this sample."""
    return {"filters": query.model_dump(mode="json"), "users": []}


@router.get("/users/{user_id}")
async def get_user(params: Annotated[UserPath, Depends(Bind(UserPath))]):
    """Look a user up by ID taken from the path."""
    return {"id": str(params.user_id), "request_id": params.request_id or None}
