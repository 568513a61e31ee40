from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

from app.modules.auth.schemas import UserRole

SERVICE_CATEGORIES = {
    "Bike Rental Services": "/images/venues/13.png",
    "Branding Agencies": "/images/venues/19.png",
    "Conference Centers": "/images/venues/2.png",
    "Dessert Caterers": "/images/venues/7.png",
    "Digital Marketing Agencies": "/images/venues/19.png",
    "Food Trucks": "/images/venues/8.png",
    "Historic Sites & Monuments": "/images/venues/5.png",
    "Hotels": "/images/venues/1.png",
    "Outdoor Venues": "/images/venues/3.png",
    "Tent Rental Companies": "/images/venues/11.png",
    "Theater/Art Centers": "/images/venues/4.png",
}
DEFAULT_SUPPLIER_IMAGE = "/images/venues/1.png"


class Promotion(BaseModel):
    title: str = ""
    description: str = ""


class Profile(BaseModel):
    id: str
    email: str
    full_name: Optional[str] = None
    company_name: Optional[str] = None
    user_type: UserRole = UserRole.SUPPLIER
    service_type: Optional[str] = None
    description: Optional[str] = None
    promotions: Optional[Promotion] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    fallback: bool = False  # Built from auth metadata because the profiles row was unreachable

    @property
    def display_name(self) -> str:
        default = "Admin" if self.user_type == UserRole.ADMIN else "Supplier"
        return self.company_name or self.full_name or self.email or default


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    company_name: Optional[str] = None
    service_type: Optional[str] = None
    description: Optional[str] = None
    promotions: Optional[Promotion] = None
    address: Optional[str] = None
    phone: Optional[str] = None


class SupplierCard(BaseModel):
    id: str
    name: str
    email: str
    location: str
    phone: str
    service_type: Optional[str] = None
    image: str


class SupplierListResponse(BaseModel):
    category: Optional[str] = None
    total: int
    suppliers: List[SupplierCard]
