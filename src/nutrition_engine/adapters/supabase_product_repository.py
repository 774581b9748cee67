"""Supabase-backed product catalog lookups."""

from dataclasses import dataclass
from uuid import UUID

from supabase import Client

from nutrition_engine.domain.nutrients import NUTRIENT_SCHEMA, ProductProfile
from nutrition_engine.services.meals import ProductRepository

_PRODUCT_COLUMNS = ", ".join(["id", "name", "brand", *NUTRIENT_SCHEMA])


@dataclass
class SupabaseProductRepository(ProductRepository):
    """Read-only access to the catalog's per-100g product profiles."""

    client: Client
    table: str = "products"

    def get_product(self, product_id: UUID) -> ProductProfile | None:
        """Return the product profile for an id, if present."""
        response = (
            self.client.table(self.table)
            .select(_PRODUCT_COLUMNS)
            .eq("id", str(product_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        nutrients = {
            name: float(row[name]) if row[name] is not None else None
            for name in NUTRIENT_SCHEMA
            if name in row
        }
        return ProductProfile(
            id=UUID(str(row["id"])),
            name=row["name"],
            nutrients=nutrients,
            brand=row.get("brand"),
        )
