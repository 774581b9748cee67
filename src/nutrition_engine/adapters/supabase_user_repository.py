"""Supabase-backed user biometrics lookups."""

from dataclasses import dataclass
from uuid import UUID

from supabase import Client

from nutrition_engine.domain.goals import UserBiometrics
from nutrition_engine.services.goals import UserRepository


def _optional_float(value: object) -> float | None:
    return float(value) if value is not None else None


@dataclass
class SupabaseUserRepository(UserRepository):
    """Supabase implementation for reading user biometrics."""

    client: Client
    table: str = "users"

    def get_user(self, user_id: UUID) -> UserBiometrics | None:
        """Return the biometrics of a user, if present."""
        response = (
            self.client.table(self.table)
            .select("id, weight, height, age, gender, activity_level")
            .eq("id", str(user_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        return UserBiometrics(
            id=UUID(str(row["id"])),
            weight_kg=_optional_float(row.get("weight")),
            height_cm=_optional_float(row.get("height")),
            age=int(row["age"]) if row.get("age") is not None else None,
            gender=row.get("gender"),
            activity_level=row.get("activity_level"),
        )
