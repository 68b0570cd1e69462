# @file purpose: Definisce il modulo API di chatbot-bridge
# 
# Questo modulo fornisce:
# - Server HTTP FastAPI che risponde ai prompt tramite browser
# - Coda single-flight delle richieste verso la chat web
# - Sessione browser persistente con ripristino e auto-recovery
# - Snapshot diagnostici e monitoring delle richieste

"""
Chatbot bridge API module.

Provides HTTP REST API endpoints for:
- Prompt answering through a scraped chat web application
- Browser session persistence (cookies + localStorage)
- Service health and administration
"""
