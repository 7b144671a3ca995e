"""Temporizador de reserva (solo cliente, no reserva inventario en el servidor)"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, Union

from app.core.config import settings
from services.checkout.models.checkout import HoldState

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HoldTimer:
    """
    idle -> running -> expired -> idle.

    El deadline se fija al iniciar y no se extiende con cambios posteriores
    de la selección.
    """

    def __init__(
        self,
        duration: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.duration = duration or timedelta(minutes=settings.HOLD_DURATION_MINUTES)
        self.clock = clock
        self.state = HoldState.IDLE
        self.expires_at: Optional[datetime] = None

    def start(self) -> datetime:
        """Arranca solo desde idle; si ya corre retorna el deadline existente"""
        if self.state == HoldState.IDLE:
            self.expires_at = self.clock() + self.duration
            self.state = HoldState.RUNNING
            logger.debug(f"Hold iniciado, expira {self.expires_at.isoformat()}")
        return self.expires_at

    def remaining(self) -> timedelta:
        if self.state != HoldState.RUNNING or self.expires_at is None:
            return timedelta(0)
        return max(self.expires_at - self.clock(), timedelta(0))

    def check(self) -> bool:
        """Pasa a expired si se alcanzó el deadline. Retorna True si expiró en esta llamada"""
        if self.state == HoldState.RUNNING and self.clock() >= self.expires_at:
            self.state = HoldState.EXPIRED
            return True
        return False

    def reset(self):
        self.state = HoldState.IDLE
        self.expires_at = None


ExpireCallback = Callable[[], Union[None, Awaitable[None]]]


async def watch_hold(
    timer: HoldTimer,
    on_expire: ExpireCallback,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> bool:
    """
    Duerme hasta el deadline y dispara on_expire. Pensado para correr como task
    cancelable; retorna False si el hold se reinició antes de expirar.
    """
    while timer.state == HoldState.RUNNING:
        if timer.check():
            result = on_expire()
            if asyncio.iscoroutine(result):
                await result
            return True
        await sleep(max(timer.remaining().total_seconds(), 0.05))
    return False
