"""
# @file purpose: Coda FIFO single-flight delle richieste di chat

Il browser è una risorsa unica e condivisa: due prompt in parallelo
interferirebbero sullo stesso DOM. La coda serializza le richieste e un
solo worker le consuma, una alla volta, con una pausa fissa tra l'una e
l'altra per non attivare il rate limiting del servizio target.
"""

import asyncio
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, Optional

logger = logging.getLogger(__name__)


def new_request_id() -> str:
    return f"req-{int(time.time() * 1000)}-{str(uuid.uuid4())[:8]}"


@dataclass
class QueuedRequest:
    """Richiesta in attesa di essere processata"""
    prompt: str
    future: asyncio.Future
    request_id: str = field(default_factory=new_request_id)
    enqueued_at: float = field(default_factory=time.time)


RequestHandler = Callable[[QueuedRequest], Awaitable[str]]


class RequestQueue:
    """Coda ordinata consumata da un unico worker"""

    def __init__(self, handler: RequestHandler, cooldown: float = 1.0):
        self.handler = handler
        self.cooldown = cooldown
        self._items: Deque[QueuedRequest] = deque()
        self._worker: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        # Include la richiesta in esecuzione
        return len(self._items)

    @property
    def is_processing(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def submit(self, prompt: str, request_id: Optional[str] = None) -> asyncio.Future:
        """Accoda un prompt e ritorna il future con la risposta"""
        future = asyncio.get_running_loop().create_future()
        item = QueuedRequest(prompt=prompt, future=future)
        if request_id:
            item.request_id = request_id

        self._items.append(item)
        logger.info(f"📝 Richiesta in coda: {item.request_id} (posizione {len(self._items)})")

        if not self.is_processing:
            self._worker = asyncio.create_task(self._process())

        return future

    async def _process(self):
        """Loop del worker: una richiesta alla volta, in ordine di arrivo"""
        while self._items:
            item = self._items[0]

            try:
                answer = await self.handler(item)
                if not item.future.done():
                    item.future.set_result(answer)
            except Exception as e:
                logger.error(f"❌ Errore processando {item.request_id}: {e}")
                if not item.future.done():
                    item.future.set_exception(e)

            self._items.popleft()

            await asyncio.sleep(self.cooldown)

    async def drain(self, poll_interval: float = 1.0):
        """Attende che la coda sia vuota, senza limite di tempo"""
        while self._items:
            logger.info(f"⏳ In attesa di {len(self._items)} richieste da completare...")
            await asyncio.sleep(poll_interval)

        if self._worker is not None and not self._worker.done():
            await self._worker
