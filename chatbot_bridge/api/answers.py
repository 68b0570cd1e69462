"""
# @file purpose: Formattazione della risposta dell'endpoint /chat

In modalità structured la chat web viene istruita a rispondere in JSON:
il testo estratto viene parsato e restituito così com'è, con fallback
su {"response": testo} se il parsing fallisce.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

CODE_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def extract_json(text: str) -> Optional[Any]:
    """Cerca un oggetto/array JSON nel testo, anche dentro code fence o prosa"""
    candidates = [text.strip()]

    fenced = CODE_FENCE_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())

    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except ValueError:
            continue

    return None


def format_answer(answer: str, structured: bool = False) -> Dict[str, Any]:
    """Costruisce il body della risposta HTTP"""
    if not structured:
        return {"answer": answer}

    parsed = extract_json(answer)
    if isinstance(parsed, dict):
        return parsed
    if isinstance(parsed, list):
        return {"response": parsed}

    logger.warning("⚠️ Risposta non in formato JSON, fallback su testo")
    return {"response": answer}
