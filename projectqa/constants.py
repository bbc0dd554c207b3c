# ------------------------------
# Module: constants.py
# Description: Constants and environment driven settings for the services
# ------------------------------

import os
from pathlib import Path
from dotenv import load_dotenv

# Load the .env in the project root (if any) before reading the environment
load_dotenv(Path(__file__).parent.parent / '.env')


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, default))


# :::::: Provider Related :::::: #

DB_PROVIDER = os.environ.get("DB_PROVIDER", "duckdb")
EMBED_PROVIDER = os.environ.get("EMBED_PROVIDER", "openai")

# :::::: FILE PATHS Related :::::: #

# The folder holding the per-project DuckDB snapshots of the imported spreadsheets
EXCEL_DATA_DIR = os.environ.get("EXCEL_DATA_DIR", "storage/excel-data")

# :::::: Oracle (LLM) Related :::::: #

ORACLE_MODEL = os.environ.get("ORACLE_MODEL", "gpt-4o-mini")

ORACLE_TIMEOUT_SECONDS = _env_float("ORACLE_TIMEOUT_SECONDS", 30.0)

ORACLE_RETRIES = _env_int("ORACLE_RETRIES", 3)

ORACLE_BACKOFF_SECONDS = _env_float("ORACLE_BACKOFF_SECONDS", 2.0)

ORACLE_MAX_WORKERS = _env_int("ORACLE_MAX_WORKERS", 8)

# :::::: Tabular / SQL Related :::::: #

DEFAULT_SQL_LIMIT = _env_int("DEFAULT_SQL_LIMIT", 100)

MAX_SQL_LIMIT = 1000

SQL_RESULT_PREVIEW_ROWS = 10                    # Rows shown to the LLM, the row count is always reported in full

SQL_GENERATION_MAX_ATTEMPTS = _env_int("SQL_GENERATION_MAX_ATTEMPTS", 2)

MAX_IDENTIFIER_LENGTH = 63

FORBIDDEN_SQL_KEYWORDS = ('update', 'delete', 'insert', 'drop', 'create', 'alter')

SUPPORTED_AGGREGATES = ('count', 'sum', 'avg', 'min', 'max')

# :::::: Embedding / Vector Related :::::: #

DEFAULT_EMBEDDING_MODEL = os.environ.get("EMBEDDING_MODEL", "text-embedding-3-small")

# tiktoken has no mapping for every model name, this encoding is used as a fallback
DEFAULT_TOKEN_ENCODING = "cl100k_base"

HF_EMBEDDING_MODEL = "all-MiniLM-L6-v2"

VECTOR_SIZE = 1536                              # text-embedding-3-small

VECTOR_METRIC = "cosine"

VECTOR_SEARCH_LIMIT = 50                        # Fetch many, the token budget decides what is kept

VECTOR_SCORE_THRESHOLD = 0.5

VECTOR_TOKEN_BUDGET = 27_000                    # Max total tokens of chunks handed to the answering model

MAX_TOKENS_PER_EMBED_BATCH = 270_000            # Stay under the embedding endpoint's per-request token ceiling

MAX_POINTS_PER_UPSERT = 1200

EMBEDDING_CACHE_TTL_SECONDS = _env_float("EMBEDDING_CACHE_TTL_SECONDS", 300.0)

EMBEDDING_CACHE_MAX_ENTRIES = 1000

# :::::: Pinecone Related :::::: #

PINECONE_API_KEY = os.environ.get("PINECONE_API_KEY", "")
PINECONE_INDEX_NAME = os.environ.get("PINECONE_INDEX_NAME", "project-chunks")
PINECONE_CLOUD = os.environ.get("PINECONE_CLOUD", "aws")
PINECONE_REGION = os.environ.get("PINECONE_REGION", "us-east-1")

# :::::: Planner / Review Loop Related :::::: #

DEFAULT_MAX_ITERATIONS = 3

MAX_ITERATIONS_CAP = 5

SELECTED_SOURCE_CONFIDENCE = 0.8

FIRST_ALTERNATIVE_CONFIDENCE = 0.6

ALTERNATIVE_CONFIDENCE_STEP = 0.1

FALLBACK_DECISION_CONFIDENCE = 0.5

FAILED_ITERATION_CONFIDENCE = 0.1

FALLBACK_REVIEW_SCORE = 0.7

FALLBACK_PLAN_MAX_ITERATIONS = 2

QUESTION_LOG_PREVIEW_CHARS = 100

# Oldest run log entries are evicted past this many
RUN_LOG_MAX_ENTRIES = _env_int("RUN_LOG_MAX_ENTRIES", 500)
