#!/usr/bin/env python3
"""
# @file purpose: Monitoring e tracking delle richieste di chat

Sistema di monitoring delle richieste processate dal browser:
- Tracking real-time dello stato di ogni richiesta
- Rilevamento richieste bloccate (browser incastrato)
- Statistiche aggregate per l'endpoint di stato
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class RequestStatus(Enum):
    """Stati possibili di una richiesta"""
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"
    STALLED = "stalled"


FINISHED_STATUSES = (RequestStatus.COMPLETED, RequestStatus.ERROR)


@dataclass
class RequestMetrics:
    """Metriche di una richiesta"""
    request_id: str
    status: RequestStatus
    prompt_length: int
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0
    error_message: Optional[str] = None
    stall_count: int = 0


class RequestMonitor:
    """Monitor delle richieste in coda e in esecuzione"""

    def __init__(
        self,
        stall_timeout: int = 120,  # secondi di esecuzione prima di considerare stalled
        max_stall_checks: int = 3,
        cleanup_interval: int = 300,
        retention_seconds: int = 3600,
        check_interval: float = 10
    ):
        self.stall_timeout = stall_timeout
        self.max_stall_checks = max_stall_checks
        self.cleanup_interval = cleanup_interval
        self.retention_seconds = retention_seconds
        self.check_interval = check_interval

        self.request_metrics: Dict[str, RequestMetrics] = {}
        self.monitoring_active = False
        self._monitor_task: Optional[asyncio.Task] = None

    def register_request(self, request_id: str, prompt_length: int) -> RequestMetrics:
        """Registra una nuova richiesta in coda"""
        metrics = RequestMetrics(
            request_id=request_id,
            status=RequestStatus.QUEUED,
            prompt_length=prompt_length,
            created_at=datetime.now(timezone.utc)
        )

        self.request_metrics[request_id] = metrics
        return metrics

    def update_request_status(
        self,
        request_id: str,
        status: RequestStatus,
        error_message: Optional[str] = None
    ):
        """Aggiorna lo status di una richiesta"""
        metrics = self.request_metrics.get(request_id)
        if metrics is None:
            logger.warning(f"⚠️ Richiesta non trovata per update: {request_id}")
            return

        old_status = metrics.status
        metrics.status = status

        if error_message:
            metrics.error_message = error_message

        now = datetime.now(timezone.utc)
        if status == RequestStatus.RUNNING and old_status == RequestStatus.QUEUED:
            metrics.started_at = now

        elif status in FINISHED_STATUSES:
            metrics.completed_at = now
            if metrics.started_at:
                metrics.duration_seconds = (now - metrics.started_at).total_seconds()

        logger.info(f"📊 Richiesta {request_id}: {old_status.value} -> {status.value}")

    def get_request_metrics(self, request_id: str) -> Optional[RequestMetrics]:
        return self.request_metrics.get(request_id)

    def get_active_requests(self) -> List[RequestMetrics]:
        """Richieste non ancora concluse"""
        return [
            metrics for metrics in self.request_metrics.values()
            if metrics.status not in FINISHED_STATUSES
        ]

    def get_system_stats(self) -> Dict[str, Any]:
        """Statistiche aggregate"""
        status_counts = {}
        for status in RequestStatus:
            status_counts[status.value] = len([
                m for m in self.request_metrics.values()
                if m.status == status
            ])

        durations = [
            m.duration_seconds for m in self.request_metrics.values()
            if m.status == RequestStatus.COMPLETED
        ]

        return {
            "total_requests": len(self.request_metrics),
            "active_requests": len(self.get_active_requests()),
            "status_counts": status_counts,
            "avg_duration_seconds": round(sum(durations) / len(durations), 2) if durations else 0,
            "monitoring_active": self.monitoring_active
        }

    async def start_monitoring(self):
        """Avvia il monitoring loop"""
        if self.monitoring_active:
            logger.warning("⚠️ Monitoring già attivo")
            return

        self.monitoring_active = True
        self._monitor_task = asyncio.create_task(self._monitoring_loop())
        logger.info("🔍 Monitoring richieste avviato")

    async def stop_monitoring(self):
        """Ferma il monitoring loop"""
        self.monitoring_active = False

        if self._monitor_task and not self._monitor_task.done():
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass

        logger.info("🛑 Monitoring richieste fermato")

    async def _monitoring_loop(self):
        last_cleanup = time.time()

        while self.monitoring_active:
            try:
                self.check_stalled_requests()

                if time.time() - last_cleanup > self.cleanup_interval:
                    self.cleanup_old_requests()
                    last_cleanup = time.time()

                await asyncio.sleep(self.check_interval)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"❌ Errore monitoring loop: {e}")
                await asyncio.sleep(5)

    def check_stalled_requests(self):
        """Segnala le richieste in esecuzione da troppo tempo.

        Nessuna richiesta viene interrotta: il worker non supporta la
        cancellazione, il monitor rende solo visibile il blocco.
        """
        now = datetime.now(timezone.utc)

        for request_id, metrics in self.request_metrics.items():
            if metrics.status != RequestStatus.RUNNING or not metrics.started_at:
                continue

            running_seconds = (now - metrics.started_at).total_seconds()
            if running_seconds <= self.stall_timeout:
                continue

            metrics.stall_count += 1
            logger.warning(
                f"⏰ Richiesta {request_id} in esecuzione da {running_seconds:.0f}s "
                f"(stall #{metrics.stall_count})"
            )

            if metrics.stall_count >= self.max_stall_checks:
                logger.error(f"🚫 Richiesta {request_id} marcata come STALLED")
                metrics.status = RequestStatus.STALLED

    def cleanup_old_requests(self):
        """Rimuove le metriche delle richieste concluse da più di un'ora"""
        now = datetime.now(timezone.utc)

        to_remove = [
            request_id for request_id, metrics in self.request_metrics.items()
            if metrics.status in FINISHED_STATUSES
            and metrics.completed_at
            and (now - metrics.completed_at).total_seconds() > self.retention_seconds
        ]

        for request_id in to_remove:
            del self.request_metrics[request_id]

        if to_remove:
            logger.info(f"🧹 Cleanup completato - rimosse {len(to_remove)} richieste")
