# ------------------------------------------------------------------
# Project's Testing Entry Point
# Run: python main.py <project_id> <workbook.xlsx> "<question>"
# Note: needs OPENAI_API_KEY and PINECONE_API_KEY (see .env)
# ------------------------------------------------------------------

import logging
import sys

from projectqa.ai_workflow.agent_orchestrator import build_default_agent
from projectqa.tabular import TabularRepository, import_excel

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


if __name__ == "__main__":

    if len(sys.argv) != 4:
        print('Usage: python main.py <project_id> <workbook.xlsx> "<question>"')
        sys.exit(1)

    project_id, workbook, question = sys.argv[1:4]

    repository = TabularRepository()
    schemas = import_excel(workbook, repository.get_store(project_id))
    for schema in schemas:
        print(f"Imported {schema.table}: {len(schema.columns)} columns, {schema.row_count} rows")

    agent = build_default_agent(repository)
    result = agent.answer(question, project_id)

    print("=" * 100)
    print(f"Mode: {result.mode.value}")
    print(f"Confidence: {result.metadata.get('confidence')}")
    print("=" * 100)
    print(result.context)
