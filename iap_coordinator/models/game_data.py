"""Persisted game state granted by purchases."""

from pydantic import BaseModel, Field


class GameData(BaseModel):
    """Entitlements the player currently holds."""

    extra_lives: int = Field(default=0, ge=0, description="Remaining extra lives")
    super_powers: int = Field(default=0, ge=0, description="Remaining super powers")
    did_unlock_all_maps: bool = Field(default=False, description="All maps unlocked")

    model_config = {
        "validate_assignment": True,
        "json_schema_extra": {
            "example": {
                "extra_lives": 3,
                "super_powers": 2,
                "did_unlock_all_maps": True,
            }
        },
    }
