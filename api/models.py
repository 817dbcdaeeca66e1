"""
API request and response models for FleetAdmin REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in fleet/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire format: JSON keys are the API's camelCase Portuguese names (nome, marca,
ano, senha, perfil, ...). Request models also accept the PascalCase spelling
(Nome, Marca, Ano, ...). Python attribute names stay English.

Request fields are all optional on purpose: field rules live in
fleet/validators.py so a bad body returns 400 {"mensagens": [...]} listing
every violation, instead of stopping at the first pydantic error.
"""

from __future__ import annotations

from typing import Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from fleet.models import Administrator, Vehicle


def _alias(name: str) -> AliasChoices:
    return AliasChoices(name, name[0].upper() + name[1:])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(default="", max_length=255, validation_alias=_alias("email"))
    password: str = Field(default="", max_length=255, validation_alias=_alias("senha"))


class AdministratorCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, validation_alias=_alias("email"))
    password: Optional[str] = Field(default=None, validation_alias=_alias("senha"))
    # Role name ("Adm", "Editor") or its numeric index (0, 1)
    role: Optional[Union[str, int]] = Field(default=None, validation_alias=_alias("perfil"))


class VehicleWrite(BaseModel):
    """Body for POST /veiculos and PUT /veiculos/{id}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, validation_alias=_alias("nome"))
    brand: Optional[str] = Field(default=None, validation_alias=_alias("marca"))
    year: Optional[int] = Field(default=None, validation_alias=_alias("ano"))


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ValidationErrors(BaseModel):
    """400 body for field-level violations."""

    mensagens: list[str]


class LoginResponse(BaseModel):
    email: str
    perfil: str
    token: str


class AdministratorResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    perfil: str

    @classmethod
    def from_entity(cls, administrator: Administrator) -> "AdministratorResponse":
        # password_hash never leaves the API
        return cls(id=administrator.id, email=administrator.email, perfil=administrator.role)


class VehicleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    nome: str
    marca: str
    ano: int

    @classmethod
    def from_entity(cls, vehicle: Vehicle) -> "VehicleResponse":
        return cls(id=vehicle.id, nome=vehicle.name, marca=vehicle.brand, ano=vehicle.year)


class StatisticsResponse(BaseModel):
    """Response for GET /api/estatisticas."""

    model_config = ConfigDict(populate_by_name=True)

    total_vehicles: int = Field(alias="totalVeiculos")
    total_administrators: int = Field(alias="totalAdministradores")
    api_version: str = Field(alias="versaoAPI")
    queried_at: str = Field(alias="dataConsulta")
    features: list[str] = Field(alias="funcionalidadesDisponiveis")


class HomeResponse(BaseModel):
    mensagem: str = "Welcome to the vehicle API - Minimal API"
    doc: str = "/docs"


class HealthResponse(BaseModel):
    """Response for GET /api/health -- liveness only, no probes."""

    status: str = "Healthy"
    timestamp: str
    version: str
