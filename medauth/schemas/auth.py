"""
Схемы для авторизации и работы с профилем пользователя
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, Field, model_validator

from medauth.constants import DEFAULT_SPECIALIZATION, ROLE_DOCTOR


class OAuthProvider(str, Enum):
    """Поддерживаемые OAuth провайдеры"""

    GOOGLE = "google"
    APPLE = "apple"


class UserProfile(BaseModel):
    """
    Профиль пользователя, возвращаемый сервером.

    Неизменяемый снимок: при каждом входе/восстановлении/обновлении
    заменяется целиком. Сервер присылает ключи в camelCase или snake_case.

    Attributes:
        id: Идентификатор пользователя
        first_name: Имя
        last_name: Фамилия
        full_name: Полное имя (вычисляется, если сервер его не прислал)
        email: Email
        role: Роль (doctor, secretary, admin)
        specialization: Специализация врача (опционально)
    """

    id: int | str
    first_name: str = Field(default="", validation_alias=AliasChoices("firstName", "first_name"))
    last_name: str = Field(default="", validation_alias=AliasChoices("lastName", "last_name"))
    full_name: str = Field(
        default="", validation_alias=AliasChoices("fullName", "full_name", "name")
    )
    email: str
    role: str = ""
    specialization: Optional[str] = None

    model_config = {"frozen": True, "populate_by_name": True}

    @model_validator(mode="before")
    @classmethod
    def fill_full_name(cls, data: Any) -> Any:
        """Собирает full_name из имени и фамилии, если сервер его не прислал"""
        if not isinstance(data, dict):
            return data
        if data.get("fullName") or data.get("full_name") or data.get("name"):
            return data
        first = data.get("firstName") or data.get("first_name") or ""
        last = data.get("lastName") or data.get("last_name") or ""
        return {**data, "full_name": f"{first} {last}".strip()}


class ProfileUpdate(BaseModel):
    """Изменяемые поля профиля"""

    first_name: str = Field(default="", validation_alias=AliasChoices("firstName", "first_name"))
    last_name: str = Field(default="", validation_alias=AliasChoices("lastName", "last_name"))
    email: str = ""

    model_config = {"populate_by_name": True}

    def normalized(self) -> "ProfileUpdate":
        """Возвращает копию с обрезанными пробелами"""
        return ProfileUpdate(
            first_name=self.first_name.strip(),
            last_name=self.last_name.strip(),
            email=self.email.strip(),
        )

    def matches(self, user: UserProfile) -> bool:
        """True, если значения совпадают с текущим профилем"""
        return (
            self.first_name == user.first_name
            and self.last_name == user.last_name
            and self.email == user.email
        )

    def to_payload(self) -> Dict[str, str]:
        """Тело запроса PUT /users/profile"""
        return {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
        }


class RegistrationForm(BaseModel):
    """
    Данные формы регистрации.

    Attributes:
        first_name: Имя
        last_name: Фамилия
        email: Email
        password: Пароль
        confirm_password: Подтверждение пароля
        role: Роль (по умолчанию doctor)
        license_number: Номер лицензии врача (опционально)
        specialization: Специализация (опционально)
    """

    first_name: str = ""
    last_name: str = ""
    email: str = ""
    password: str = ""
    confirm_password: str = ""
    role: str = ROLE_DOCTOR
    license_number: Optional[str] = None
    specialization: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Тело запроса POST /auth/register"""
        payload: Dict[str, Any] = {
            "name": f"{self.first_name.strip()} {self.last_name.strip()}".strip(),
            "email": self.email.strip().lower(),
            "password": self.password,
            "role": self.role,
        }
        if self.license_number and self.license_number.strip():
            payload["licenseNumber"] = self.license_number.strip()
        specialization = (self.specialization or "").strip()
        if specialization:
            payload["specialization"] = specialization
        elif self.role == ROLE_DOCTOR:
            payload["specialization"] = DEFAULT_SPECIALIZATION
        return payload


class AuthResponse(BaseModel):
    """Успешный ответ login/register/OAuth обмена"""

    user: UserProfile
    token: str = Field(min_length=1)


class IdentityAssertion(BaseModel):
    """
    Подтверждение личности от OAuth провайдера.

    Одноразовое: используется для обмена на токен сессии и отбрасывается.
    Apple присылает email и имя только при первом согласии.
    """

    provider: OAuthProvider
    provider_token: str = Field(min_length=1)
    subject_id: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None

    model_config = {"frozen": True}


class OAuthExchangeRequest(BaseModel):
    """Тело запроса обмена assertion на токен сессии"""

    assertion: IdentityAssertion
    role: Optional[str] = None
    specialization: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"providerToken": self.assertion.provider_token}
        optional_fields = {
            "subjectId": self.assertion.subject_id,
            "email": self.assertion.email,
            "fullName": self.assertion.full_name,
            "role": self.role,
            "specialization": self.specialization,
        }
        payload.update({key: value for key, value in optional_fields.items() if value})
        return payload


class PasswordResetRequested(BaseModel):
    """Ответ на запрос кода сброса пароля"""

    success: bool
    reset_code: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("resetCode", "reset_code")
    )
