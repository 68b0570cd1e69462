"""
# @file purpose: Gerarchia eccezioni del servizio chatbot-bridge

Ogni errore del dominio ha una classe dedicata; il layer HTTP le traduce
in HTTPException con lo status code corrispondente.
"""


class ChatbotBridgeError(Exception):
    """Errore base del servizio"""


class PromptValidationError(ChatbotBridgeError):
    """Prompt mancante, non stringa o troppo lungo (400)"""


class NotReadyError(ChatbotBridgeError):
    """Browser non inizializzato o servizio in shutdown (503)"""


class UnauthorizedError(ChatbotBridgeError):
    """Credenziale mancante o non valida (401)"""


class AutomationFailure(ChatbotBridgeError):
    """Uno step dell'interazione con la pagina è fallito (500)"""


class PageNotInitializedError(AutomationFailure):
    """Nessuna pagina Ready disponibile"""


class AutomationTimeout(AutomationFailure):
    """Timeout di attesa di un elemento nell'adapter browser"""


class PersistenceFailure(ChatbotBridgeError):
    """Errore I/O in salvataggio o ripristino della sessione"""
