import asyncio
import logging

from sqlalchemy import select

from app.core.logging import configure_logging
from app.core.settings import settings
from app.db.session import AsyncSessionLocal
from app.models.lender import Lender

logger = logging.getLogger(__name__)


async def init_db() -> None:
    """
    Seed the in-house originator lender every loan is funded from at closing.
    """
    async with AsyncSessionLocal() as session:
        stmt = select(Lender).where(Lender.id == settings.originator_lender_id)
        lender = (await session.execute(stmt)).scalar_one_or_none()

        if lender is None:
            logger.info("Creating originator lender %s", settings.originator_lender_account)
            session.add(
                Lender(
                    id=settings.originator_lender_id,
                    account=settings.originator_lender_account,
                    lender_name=settings.originator_lender_name,
                    version=1,
                )
            )
            await session.commit()
        else:
            logger.info("Originator lender already exists.")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(init_db())
