"""
Seed the standard corporate and retail workflow definitions.
Run: python -m scripts.seed_workflows (from the project root).
Types that already have an active definition are skipped.
"""
import asyncio
import logging

from config import settings
from database import init_db
from services.default_workflows import DEFAULT_WORKFLOWS
from services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


async def seed():
    await init_db()
    async with UnitOfWork() as uow:
        for application_type, build in DEFAULT_WORKFLOWS.items():
            if await uow.definitions.get_active_by_type(application_type) is not None:
                logger.info("Active %s workflow already exists, skipping", application_type.value)
                continue
            built = build()
            if not built:
                raise RuntimeError(f"Invalid {application_type.value} workflow: {built.error}")
            stored = await uow.definitions.publish(built.value)
            if not stored:
                raise RuntimeError(f"Could not store {application_type.value} workflow: {stored.error}")
            logger.info("Seeded %s (%d stages)", built.value.name, len(built.value.stages))
        committed = await uow.commit()
        if not committed:
            raise RuntimeError(committed.error)
    print("Seed complete: workflow definitions.")


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level)
    asyncio.run(seed())
