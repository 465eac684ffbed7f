from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from app.utils.permissions import Permission


class EmploymentType(str, Enum):
    FULL_TIME = "full-time"
    PART_TIME = "part-time"
    STUDENT = "student"


class CardType(str, Enum):
    BASIC = "basic"
    GOLD = "gold"
    PLATINUM = "platinum"


class ManagerRole(str, Enum):
    TRAINER = "Tréner"
    COORDINATOR = "Koordinátor"
    SHIFT_LEADER = "Műszakvezető"


class CardStatus(str, Enum):
    ACTIVE = "active"
    REDEEMED = "redeemed"
    EXPIRED = "expired"


# --- ストアに保存されるレコード ----------------------------------------------

class Employee(BaseModel):
    id: str
    name: str
    position: str
    employment_type: EmploymentType = EmploymentType.FULL_TIME
    created_at: datetime
    is_locked: bool = False
    lock_reason: str = ""


class RewardCard(BaseModel):
    id: str
    employee_id: str
    card_type: CardType
    points: int
    issued_at: datetime
    expires_at: datetime
    is_redeemed: bool = False
    redeemed_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    approver_name: Optional[str] = None
    approver_role: Optional[str] = None
    qr_code: str = ""

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now

    def status(self, now: datetime) -> CardStatus:
        if self.is_redeemed:
            return CardStatus.REDEEMED
        if self.is_expired(now):
            return CardStatus.EXPIRED
        return CardStatus.ACTIVE


class ManagerCard(BaseModel):
    id: str
    name: str
    position: str
    role: ManagerRole
    created_at: datetime
    qr_code: str = ""
    permissions: List[Permission] = Field(default_factory=list)
    password_hash: Optional[str] = None

    def public_dict(self) -> dict:
        """APIで返す形式（パスワードハッシュは含めない）"""
        data = self.model_dump(mode="json", exclude={"password_hash"})
        data["has_password"] = self.password_hash is not None
        return data


# --- リクエストスキーマ ---------------------------------------------------

def _validate_password_strength(password: str) -> str:
    """パスワード強度を検証する共通バリデーター"""
    if len(password) < 8:
        raise ValueError("A jelszónak legalább 8 karakter hosszúnak kell lennie")
    if not any(c.isdigit() for c in password):
        raise ValueError("A jelszónak tartalmaznia kell legalább egy számjegyet")
    if not any(c.isalpha() for c in password):
        raise ValueError("A jelszónak tartalmaznia kell legalább egy betűt")
    return password


class EmployeeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    position: str = Field(..., min_length=1, max_length=128)
    employment_type: EmploymentType


class EmployeeUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    position: Optional[str] = Field(default=None, min_length=1, max_length=128)
    employment_type: Optional[EmploymentType] = None
    is_locked: Optional[bool] = None
    lock_reason: Optional[str] = Field(default=None, max_length=256)


class CardIssue(BaseModel):
    employee_id: str = Field(..., min_length=1)
    card_type: CardType
    card_id: Optional[str] = Field(default=None, max_length=64)
    approver_id: Optional[str] = None


class CardRedeem(BaseModel):
    card_id: str = Field(..., min_length=1)
    # 承認者カード（スキャンしたもの）。省略時は管理者本人による直接引き換え
    approver_id: Optional[str] = None


class ScanLookup(BaseModel):
    text: str = Field(..., min_length=1, max_length=4096)


class ManagerCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    position: str = Field(..., min_length=1, max_length=128)
    role: ManagerRole
    permissions: List[Permission] = Field(default_factory=list)
    password: Optional[str] = None

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return _validate_password_strength(v) if v is not None else v


class ManagerUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    position: str = Field(..., min_length=1, max_length=128)
    role: ManagerRole
    permissions: List[Permission] = Field(default_factory=list)
    change_password: bool = False
    password: Optional[str] = None

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return _validate_password_strength(v) if v is not None else v


class ManagerPasswordUpdate(BaseModel):
    password: str

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return _validate_password_strength(v)


class PasswordLogin(BaseModel):
    manager_id: str = Field(..., min_length=1, max_length=128)
    password: str = Field(..., min_length=1, max_length=128)


class CardLogin(BaseModel):
    # スキャンしたQRコードの文字列（IDのみ、またはJSON）
    qr_text: str = Field(..., min_length=1, max_length=4096)


class AdminLogin(BaseModel):
    password: str = Field(..., min_length=1, max_length=128)
