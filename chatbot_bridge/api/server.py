#!/usr/bin/env python3
"""
# @file purpose: Server HTTP FastAPI per chatbot-bridge

Server HTTP REST API che risponde ai prompt pilotando una sessione
browser reale sulla chat web configurata:
- Coda single-flight delle richieste
- Sessione browser persistente con auto-recovery
- Autenticazione API key
- Endpoint di stato e amministrazione
"""

import logging
import secrets
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, StrictStr, ValidationError

from .answers import format_answer
from .automation import AutomationEngine
from .config import ServiceConfig, load_config
from .errors import AutomationFailure, NotReadyError, PersistenceFailure
from .service import ChatbotService

# Configurazione logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class ChatRequest(BaseModel):
    """Richiesta per l'endpoint /chat"""
    prompt: StrictStr = Field(min_length=1)


def create_app(
    config: Optional[ServiceConfig] = None,
    engine: Optional[AutomationEngine] = None
) -> FastAPI:
    """Crea l'app FastAPI con il proprio ChatbotService"""
    config = config or load_config()
    service = ChatbotService(config, engine=engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await service.start()
        logger.info(f"✅ Server pronto sulla porta {config.port}")
        yield
        await service.shutdown()

    app = FastAPI(
        title="Chatbot Bridge API",
        description="API REST che risponde ai prompt tramite una sessione browser",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.service = service

    # Configura CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-Key"],
    )

    # Dependency per verifica API key
    async def verify_api_key(
        authorization: Optional[str] = Header(None),
        x_api_key: Optional[str] = Header(None)
    ):
        """Verifica Bearer token o header X-API-Key"""
        if not config.api_key:
            return True

        # Basta che uno dei due header corrisponda
        candidates = []
        unsupported_scheme = False
        if x_api_key:
            candidates.append(x_api_key)
        if authorization:
            scheme, _, value = authorization.partition(" ")
            if scheme.lower() == "bearer":
                candidates.append(value.strip())
            else:
                unsupported_scheme = True

        expected = config.api_key.encode("utf-8")
        if any(secrets.compare_digest(token.encode("utf-8"), expected) for token in candidates):
            return True

        if unsupported_scheme:
            raise HTTPException(status_code=401, detail="Schema Authorization non supportato")
        if not candidates:
            raise HTTPException(status_code=401, detail="Credenziale mancante")
        raise HTTPException(status_code=401, detail="API Key non valida")

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "ok",
            "initialized": service.is_ready(),
            "queueLength": service.queue_length()
        }

    @app.post("/chat")
    async def chat(request: Request, authorized: bool = Depends(verify_api_key)):
        """Invia un prompt alla chat web e ritorna la risposta"""
        try:
            body = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Body JSON non valido")

        try:
            chat_request = ChatRequest.model_validate(body)
        except ValidationError:
            raise HTTPException(status_code=400, detail="Missing or invalid prompt")

        prompt = chat_request.prompt
        if len(prompt) > config.max_prompt_length:
            raise HTTPException(
                status_code=400,
                detail=f"Prompt too long (max {config.max_prompt_length} characters)"
            )

        if not service.is_ready():
            raise HTTPException(status_code=503, detail="Service not ready: browser not initialized")

        logger.info(f"🚀 Nuovo prompt ricevuto ({len(prompt)} caratteri)")

        try:
            answer = await service.submit(prompt)
        except NotReadyError as e:
            raise HTTPException(status_code=503, detail=f"Service not ready: {e}")
        except AutomationFailure as e:
            raise HTTPException(status_code=500, detail=str(e))

        return format_answer(answer, structured=config.structured_replies)

    @app.get("/admin/status")
    async def admin_status(authorized: bool = Depends(verify_api_key)):
        """Stato dettagliato di browser, coda e richieste"""
        return service.get_status()

    @app.post("/admin/save-session")
    async def save_session(authorized: bool = Depends(verify_api_key)):
        """Salva la sessione browser corrente su file"""
        try:
            await service.save_session()
        except (PersistenceFailure, AutomationFailure) as e:
            logger.error(f"❌ Salvataggio sessione fallito: {e}")
            raise HTTPException(status_code=500, detail=f"Failed to save session: {e}")

        return {"message": "Session saved successfully"}

    return app


# Funzione per avvio server
def run_server(
    host: str = "0.0.0.0",
    port: int = 3000,
    reload: bool = False
):
    """Avvia il server FastAPI"""
    logger.info(f"🚀 Avvio Chatbot Bridge API server su {host}:{port}")

    uvicorn.run(
        "chatbot_bridge.api.server:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )


def main():
    import argparse

    config = load_config()

    parser = argparse.ArgumentParser(description="Chatbot Bridge API Server")
    parser.add_argument("--host", default=config.host, help="Host address")
    parser.add_argument("--port", type=int, default=config.port, help="Port number")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    args = parser.parse_args()

    run_server(host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
