#!/usr/bin/env python3
"""
# @file purpose: Gestione snapshot diagnostici della pagina

Quando una risposta estratta risulta vuota viene salvato uno snapshot
della pagina per il debug offline:
- Screenshot full page
- Markup HTML completo
- Metadata JSON (label, URL, lunghezza prompt)
- Cleanup automatico degli snapshot vecchi
"""

import json
import logging
import shutil
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from .automation import AutomationPage

logger = logging.getLogger(__name__)

SCREENSHOT_NAME = "screenshot.png"
HTML_NAME = "page.html"
METADATA_NAME = "metadata.json"


@dataclass
class CaptureFiles:
    """File di uno snapshot diagnostico"""
    capture_id: str
    capture_dir: Path
    screenshot_file: Optional[Path] = None
    html_file: Optional[Path] = None
    metadata_file: Optional[Path] = None


class DiagnosticsStore:
    """Gestore della directory degli snapshot"""

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir).resolve()

    def _ensure_base_dir(self):
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def get_capture_dir(self, capture_id: str) -> Path:
        return self.base_dir / capture_id

    async def capture(
        self,
        page: AutomationPage,
        label: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> CaptureFiles:
        """Salva screenshot, HTML e metadata della pagina corrente"""
        self._ensure_base_dir()

        timestamp = datetime.now(timezone.utc)
        capture_id = f"{timestamp.strftime('%Y%m%d_%H%M%S')}-{label}-{str(uuid.uuid4())[:8]}"
        capture_dir = self.get_capture_dir(capture_id)
        capture_dir.mkdir(exist_ok=True)

        files = CaptureFiles(capture_id=capture_id, capture_dir=capture_dir)

        # Screenshot e HTML sono indipendenti: uno può riuscire senza l'altro
        screenshot_file = capture_dir / SCREENSHOT_NAME
        try:
            await page.screenshot(screenshot_file)
            files.screenshot_file = screenshot_file
        except Exception as e:
            logger.warning(f"⚠️ Screenshot diagnostico fallito: {e}")

        html_file = capture_dir / HTML_NAME
        try:
            html_file.write_text(await page.content(), encoding="utf-8")
            files.html_file = html_file
        except Exception as e:
            logger.warning(f"⚠️ Salvataggio HTML diagnostico fallito: {e}")

        metadata_file = capture_dir / METADATA_NAME
        with open(metadata_file, "w", encoding="utf-8") as f:
            json.dump({
                "capture_id": capture_id,
                "label": label,
                "captured_at": timestamp.isoformat(),
                **(metadata or {})
            }, f, ensure_ascii=False, indent=2)
        files.metadata_file = metadata_file

        logger.info(f"📸 Snapshot diagnostico salvato: {capture_dir}")
        return files

    def get_capture_files(self, capture_id: str) -> CaptureFiles:
        """Ottiene i file di uno snapshot"""
        capture_dir = self.get_capture_dir(capture_id)
        screenshot_file = capture_dir / SCREENSHOT_NAME
        html_file = capture_dir / HTML_NAME
        metadata_file = capture_dir / METADATA_NAME

        return CaptureFiles(
            capture_id=capture_id,
            capture_dir=capture_dir,
            screenshot_file=screenshot_file if screenshot_file.exists() else None,
            html_file=html_file if html_file.exists() else None,
            metadata_file=metadata_file if metadata_file.exists() else None
        )

    def list_captures(self) -> List[CaptureFiles]:
        """Snapshot presenti, dal più vecchio al più recente"""
        if not self.base_dir.exists():
            return []

        return [
            self.get_capture_files(d.name)
            for d in sorted(self.base_dir.iterdir())
            if d.is_dir()
        ]

    def cleanup_old_captures(self, max_age_days: int = 7) -> Dict[str, Any]:
        """Elimina gli snapshot più vecchi di max_age_days"""
        cutoff_date = datetime.now(timezone.utc) - timedelta(days=max_age_days)

        cleaned = []
        errors = []

        for capture in self.list_captures():
            dir_mtime = datetime.fromtimestamp(
                capture.capture_dir.stat().st_mtime,
                tz=timezone.utc
            )
            if dir_mtime >= cutoff_date:
                continue

            try:
                shutil.rmtree(capture.capture_dir)
                cleaned.append(capture.capture_id)
            except OSError as e:
                errors.append(f"Errore {capture.capture_id}: {e}")

        result = {
            "cleaned_count": len(cleaned),
            "error_count": len(errors),
            "cleaned_captures": cleaned,
            "errors": errors,
            "cutoff_date": cutoff_date.isoformat()
        }

        if cleaned or errors:
            logger.info(f"🧹 Cleanup snapshot completato: {result}")
        return result

    def get_storage_stats(self) -> Dict[str, Any]:
        """Statistiche di occupazione della directory"""
        total_bytes = 0
        if self.base_dir.exists():
            for item in self.base_dir.rglob("*"):
                if item.is_file():
                    total_bytes += item.stat().st_size

        return {
            "base_dir": str(self.base_dir),
            "total_captures": len(self.list_captures()),
            "total_bytes": total_bytes,
            "total_mb": round(total_bytes / (1024 * 1024), 2)
        }
