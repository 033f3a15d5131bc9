from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .core.lifecycle import DeliveryStatus, Role


class Location(BaseModel):
    lat: float
    lng: float


class ProductIn(BaseModel):
    name: Any = ""
    quantity: Any = 1


class DeliveryForm(BaseModel):
    """Delivery submission as typed into the form.

    Fields stay loosely typed so that every problem is reported by the
    delivery validator at once, instead of failing on the first bad type.
    """

    model_config = ConfigDict(extra="ignore")

    products: Optional[List[ProductIn]] = Field(default_factory=lambda: [ProductIn()])
    destination: Optional[Location] = None
    address: Optional[str] = ""
    notes: Optional[str] = ""
    recipientName: Union[str, int, float, None] = ""
    recipientPhone: Union[str, int, float, None] = ""
    recipientEmail: Union[str, int, float, None] = ""
    price: Union[str, float, None] = ""


class AssignIn(BaseModel):
    delivery_guy_id: str


class StatusIn(BaseModel):
    status: DeliveryStatus


class SignUpIn(BaseModel):
    email: str
    password: str
    role: Role
    full_name: Optional[str] = None
    phone: Optional[str] = None


class LoginIn(BaseModel):
    email: str
    password: str


class ValidationOut(BaseModel):
    valid: bool
    errors: dict[str, str]


class DeliveryPage(BaseModel):
    items: List[dict[str, Any]]
    page: int
    perPage: int
    total: int
    totalPages: int
    showingFrom: int
    showingTo: int
    pages: List[int]
    counts: dict[str, int]
