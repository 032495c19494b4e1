"""
Service layer - the chat pipeline
Responsibilities:
1. IntentResolver - message → structured intent (model, rule fallback)
2. QueryExecutor - intent → data (storage, then remote API)
3. ResponseGenerator - intent + data → reply text and quick replies
4. ChatPipeline - single entry point composing the three
"""
