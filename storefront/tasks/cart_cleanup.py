import asyncio
import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..database import SessionLocal
from ..repositories.sql import SqlCartRepository, SqlProductRepository
from ..services.cart_service import CartService

logger = logging.getLogger(__name__)


class GuestCartJanitor:
    """Фоновая очистка брошенных гостевых корзин"""

    def __init__(
            self,
            interval_seconds: Optional[int] = None,
            session_factory: Callable[[], Session] = SessionLocal
    ):
        self.interval = interval_seconds or settings.guest_cart_cleanup_interval_seconds
        self.session_factory = session_factory
        self.task: Optional[asyncio.Task] = None
        self.running = False

    def run_once(self) -> int:
        db = self.session_factory()
        try:
            service = CartService(SqlCartRepository(db), SqlProductRepository(db))
            return service.purge_expired_guest_carts()
        finally:
            db.close()

    async def _loop(self):
        logger.info(f"Guest cart janitor started (every {self.interval}s)")
        while self.running:
            try:
                await asyncio.to_thread(self.run_once)
            except Exception as e:
                logger.error(f"❌ Guest cart cleanup failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval)

    def start(self):
        if self.task and not self.task.done():
            return
        self.running = True
        self.task = asyncio.create_task(self._loop())

    async def stop(self):
        self.running = False
        if self.task and not self.task.done():
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
        self.task = None
        logger.info("Guest cart janitor stopped")


guest_cart_janitor = GuestCartJanitor()
