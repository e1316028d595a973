import asyncio
import json
import os
import sys

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app.core.db import SessionLocal, init_models
from app.core.errors import CatalogError
from app.modules.media.service import MediaService
from app.platform.provider_registry import registry

SEED_ACTOR = "seed-script"

async def main(path: str):
    """
    Load catalog items from a JSON file and create them through the media service,
    publishing the ones flagged with "publish": true.
    """
    print(f"Seeding media items from {path}...")
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    await init_models()
    async with SessionLocal() as db:
        service = MediaService(db, index=registry.search_index(), clock=registry.clock(), ids=registry.identifiers())
        for item in data:
            publish = item.pop("publish", False)
            print(f"Processing: {item.get('title') or '(untitled)'} [{item.get('media_type')}]")
            try:
                created = await service.handle_add_media_item(item, actor_user_id=SEED_ACTOR)
                print(f"  - created {created.media_id} at version {created.version}")
                if publish:
                    out = await service.handle_publish_media_item(
                        {"media_id": created.media_id, "expected_version": created.version},
                        actor_user_id=SEED_ACTOR,
                    )
                    print(f"  - published at version {out.version}")
            except CatalogError as e:
                print(f"  - skipped: {e.code} {e.message} {e.details}")

    print("Seeding complete!")

if __name__ == "__main__":
    default_path = os.path.join(os.path.dirname(__file__), 'sample_media.json')
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else default_path))
