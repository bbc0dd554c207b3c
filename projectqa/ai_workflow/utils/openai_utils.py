"""
openai_utils.py
Oracle (language model) access: the OpenAI chat client and the timeout / cancellation wrapper
every agent goes through.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Optional, Protocol

from openai import OpenAI, OpenAIError

from projectqa.constants import (
    ORACLE_BACKOFF_SECONDS,
    ORACLE_MAX_WORKERS,
    ORACLE_MODEL,
    ORACLE_RETRIES,
    ORACLE_TIMEOUT_SECONDS,
)
from projectqa.errors import OracleUnavailableError, QuestionCancelledError

logger = logging.getLogger(__name__)

# How often a waiting call looks at the cancel event
_CANCEL_POLL_SECONDS = 0.05


class Oracle(Protocol):
    def complete(self, system_prompt: str, user_prompt: str) -> str:
        ...


class OpenAIOracle:
    '''
      Chat completion oracle on the OpenAI API.
      Retries with exponential backoff on OpenAIError.
    '''

    def __init__(self,
                 model: str = ORACLE_MODEL,
                 retries: int = ORACLE_RETRIES,
                 backoff: float = ORACLE_BACKOFF_SECONDS,
                 client: Optional[OpenAI] = None):
        self.model = model
        self.retries = max(1, retries)
        self.backoff = backoff
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI()
        return self._client

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        """
        Make a robust OpenAI API call.

        Args:
            system_prompt: The system prompt to use
            user_prompt: The user's message

        Returns:
            The text of the first choice ("" when the model returns no content)

        Raises:
            OracleUnavailableError: when all retries fail
        """
        for attempt in range(self.retries):
            try:
                response = self.client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                )
                return response.choices[0].message.content or ""

            except OpenAIError as e:
                wait_time = self.backoff * (2 ** attempt)
                logger.error(f"OpenAI API call failed (attempt {attempt+1}/{self.retries}): {e}")
                if attempt < self.retries - 1:
                    logger.info(f"Retrying in {wait_time:.1f} seconds...")
                    time.sleep(wait_time)
                else:
                    logger.critical("All retries exhausted.")
                    raise OracleUnavailableError(f"OpenAI API unavailable: {e}") from e

        raise OracleUnavailableError("OpenAI API unavailable")


_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=ORACLE_MAX_WORKERS, thread_name_prefix="oracle")
        return _executor


class OracleClient:
    '''
      Runs oracle calls on a shared thread pool so a caller can give up on them.

      A call that does not finish within timeout_seconds raises OracleUnavailableError.
      A set cancel_event abandons the call and raises QuestionCancelledError; the
      worker thread is released when the underlying request returns.
    '''

    def __init__(self,
                 oracle: Oracle,
                 timeout_seconds: float = ORACLE_TIMEOUT_SECONDS,
                 executor: Optional[ThreadPoolExecutor] = None):
        self.oracle = oracle
        self.timeout_seconds = timeout_seconds
        self._executor = executor

    def complete(self, system_prompt: str, user_prompt: str,
                 cancel_event: Optional[threading.Event] = None) -> str:
        if cancel_event is not None and cancel_event.is_set():
            raise QuestionCancelledError("Question cancelled before the oracle call")

        executor = self._executor or _get_executor()
        future: Future = executor.submit(self.oracle.complete, system_prompt, user_prompt)
        deadline = time.monotonic() + self.timeout_seconds

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                future.cancel()
                raise OracleUnavailableError(f"Oracle call timed out after {self.timeout_seconds}s")

            done, _ = wait([future], timeout=min(_CANCEL_POLL_SECONDS, remaining))
            if done:
                break
            if cancel_event is not None and cancel_event.is_set():
                future.cancel()
                raise QuestionCancelledError("Question cancelled during an oracle call")

        try:
            return future.result()
        except (OracleUnavailableError, QuestionCancelledError):
            raise
        except Exception as e:
            raise OracleUnavailableError(f"Oracle call failed: {e}") from e
