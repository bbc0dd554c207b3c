import logging
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from projectqa.constants import RUN_LOG_MAX_ENTRIES

# Configure logging
logger = logging.getLogger(__name__)

# In-memory storage for run logs, bounded to the most recent runs
_run_logs: Deque[Dict[str, Any]] = deque(maxlen=RUN_LOG_MAX_ENTRIES)


def log_run(question: str, project_id: str, mode: str, context: str,
            confidence: float, metadata: Optional[Dict[str, Any]] = None) -> None:
    """
    Log a question and the retrieval run that answered it to in-memory storage.

    Args:
        question: The user's question
        project_id: The project the question was asked in
        mode: The execution mode of the run
        context: The context handed to the answering model
        confidence: Confidence of the synthesized context
        metadata: Iterations, decision and timings of the run
    """
    try:
        log_entry = {
            "timestamp": datetime.now().isoformat(),
            "question": question,
            "project_id": project_id,
            "mode": mode,
            "context": context,
            "confidence": confidence,
            "metadata": metadata or {},
        }
        _run_logs.append(log_entry)
        logger.info(f"Logged run: {question[:50]}... -> {context[:50]}...")
    except Exception as e:
        logger.error(f"Error logging run: {str(e)}")


def get_all_logs() -> List[Dict]:
    """Get all logs, sorted by timestamp (newest first)."""
    return sorted(_run_logs, key=lambda x: x["timestamp"], reverse=True)


def get_latest_log() -> Optional[Dict]:
    """Get the most recent log entry."""
    return _run_logs[-1] if _run_logs else None


def clear_logs() -> None:
    """Clear all logs from memory."""
    _run_logs.clear()
    logger.info("Cleared all run logs")
