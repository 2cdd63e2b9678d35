from recall.db.database import async_session_scope, create_engine_for, create_session_factory, init_models
from recall.db.mastery_store import SqlMasteryStore
from recall.db.models import Base, ConceptMasteryRow, KnowledgeGapRow

__all__ = [
    "Base",
    "ConceptMasteryRow",
    "KnowledgeGapRow",
    "SqlMasteryStore",
    "async_session_scope",
    "create_engine_for",
    "create_session_factory",
    "init_models",
]
