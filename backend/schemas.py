from datetime import date
from typing import List, Literal, Optional
from pydantic import BaseModel, EmailStr, Field, model_validator

PHONE_PATTERN = r"^\+?[0-9]{10,15}$"

Gender = Literal["Male", "Female", "Other"]
BloodGroup = Literal["A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-", ""]
MedicineCategory = Literal["tablets", "capsules", "syrup", "injection", "cream", "drops", "other", ""]
PaymentStatus = Literal["paid", "pending", "partial"]
PaymentMethod = Literal["cash", "upi", ""]


class PatientIn(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    phone: str = Field(pattern=PHONE_PATTERN)
    age: int = Field(ge=0, le=120)
    gender: Gender
    email: Optional[EmailStr] = None
    address: Optional[str] = Field(default=None, max_length=500)
    bloodGroup: Optional[BloodGroup] = None
    medicalHistory: Optional[str] = Field(default=None, max_length=2000)
    status: Literal["Active", "Inactive"] = "Active"


class PatientUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    age: Optional[int] = Field(default=None, ge=0, le=120)
    gender: Optional[Gender] = None
    email: Optional[EmailStr] = None
    address: Optional[str] = Field(default=None, max_length=500)
    bloodGroup: Optional[BloodGroup] = None
    medicalHistory: Optional[str] = Field(default=None, max_length=2000)
    status: Optional[Literal["Active", "Inactive"]] = None


class VisitIn(BaseModel):
    diagnosis: Optional[str] = Field(default=None, max_length=500)
    prescription: Optional[str] = Field(default=None, max_length=1000)
    notes: Optional[str] = Field(default=None, max_length=500)
    doctorName: Optional[str] = None


class MedicineIn(BaseModel):
    name: str = Field(min_length=2, max_length=200)
    buyingPrice: float = Field(ge=0)
    sellingPrice: float = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    expiryDate: date
    manufacturer: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    category: MedicineCategory = "other"
    image: Optional[str] = None
    minStockLevel: int = Field(default=10, ge=0)


class MedicineUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=200)
    buyingPrice: Optional[float] = Field(default=None, ge=0)
    sellingPrice: Optional[float] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    expiryDate: Optional[date] = None
    manufacturer: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    category: Optional[MedicineCategory] = None
    image: Optional[str] = None
    minStockLevel: Optional[int] = Field(default=None, ge=0)


class StockAdjust(BaseModel):
    quantity: int = Field(ge=0)
    operation: Literal["set", "add", "subtract"] = "set"


class ServiceIn(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    price: float = Field(ge=0)
    duration: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)


class ServiceUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=100)
    price: Optional[float] = Field(default=None, ge=0)
    duration: Optional[str] = Field(default=None, max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)
    isActive: Optional[bool] = None


class MedicineLine(BaseModel):
    medicine: Optional[str] = None
    id: Optional[str] = None
    quantity: int = Field(ge=1)
    name: Optional[str] = None

    @model_validator(mode="after")
    def _needs_reference(self):
        if not (self.medicine or self.id):
            raise ValueError("medicine (or id) is required")
        return self


class ServiceLine(BaseModel):
    service: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None

    @model_validator(mode="after")
    def _needs_reference(self):
        if not (self.service or self.id):
            raise ValueError("service (or id) is required")
        return self


class BillCreate(BaseModel):
    patient: str
    consultationFee: Optional[float] = Field(default=None, ge=0)
    medicines: List[MedicineLine] = []
    services: List[ServiceLine] = []
    paymentStatus: Optional[PaymentStatus] = None
    paymentMethod: Optional[PaymentMethod] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class BillPaymentUpdate(BaseModel):
    paymentStatus: Optional[PaymentStatus] = None
    paymentMethod: Optional[PaymentMethod] = None
    notes: Optional[str] = Field(default=None, max_length=500)


class LoginIn(BaseModel):
    email: str
    password: str


class UserCreate(BaseModel):
    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(min_length=6)
    role: Literal["admin", "doctor", "receptionist"] = "doctor"
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
