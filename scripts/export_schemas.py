"""Export JSON schemas for the itinerary and intent contracts."""

import json
from pathlib import Path

from backend.quoting.models import ChatResult, ItineraryItem, ModificationIntent, MutationResult

SCHEMAS = {
    "ItineraryItem": ItineraryItem,
    "ModificationIntent": ModificationIntent,
    "MutationResult": MutationResult,
    "ChatResult": ChatResult,
}


def main() -> None:
    """Export schemas to docs/schemas/."""
    schemas_dir = Path("docs/schemas")
    schemas_dir.mkdir(parents=True, exist_ok=True)

    for name, model in SCHEMAS.items():
        path = schemas_dir / f"{name}.schema.json"
        with open(path, "w") as f:
            json.dump(model.model_json_schema(), f, indent=2)
        print(f"Exported {name} schema to {path}")


if __name__ == "__main__":
    main()
