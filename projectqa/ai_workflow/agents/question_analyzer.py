"""
question_analyzer.py
Keyword heuristics describing what kind of retrieval a question leans towards.
"""

from projectqa.ai_workflow.data_model import Complexity, QuestionSignals

SQL_INDICATORS = (
    'count', 'sum', 'average', 'total', 'how many', 'number of',
    'maximum', 'minimum', 'highest', 'lowest', 'top', 'bottom',
    'filter', 'where', 'group by', 'order by', 'sort',
    'percentage', 'ratio', 'per', 'each', 'every',
)

# Extra phrases that make a question look like a lookup
SQL_LOOKUP_INDICATORS = ('show me', 'list', 'find', 'get', 'select')

VECTOR_INDICATORS = (
    'explain', 'why', 'how', 'what does this mean', 'interpret',
    'analyze', 'compare', 'relationship', 'trend', 'pattern',
    'insight', 'recommendation', 'suggestion', 'context',
)

VECTOR_EXTRA_INDICATORS = ('understand', 'meaning', 'significance')

NUMERICAL_WORDS = ('count', 'sum', 'average', 'total', 'how many', 'number')


def _contains_any(text: str, indicators) -> bool:
    return any(indicator in text for indicator in indicators)


def analyze_question_complexity(question: str) -> QuestionSignals:
    lower_question = question.lower()
    features = []

    sql_suitable = _contains_any(lower_question, SQL_INDICATORS)
    if sql_suitable:
        features.append('numerical_analysis')

    vector_suitable = _contains_any(lower_question, VECTOR_INDICATORS)
    if vector_suitable:
        features.append('semantic_analysis')

    complexity = Complexity.SIMPLE
    if len(question) > 100 or len(features) > 2:
        complexity = Complexity.COMPLEX
    elif len(question) > 50 or len(features) > 1:
        complexity = Complexity.MODERATE

    return QuestionSignals(
        complexity=complexity,
        features=features,
        sql_suitable=sql_suitable,
        vector_suitable=vector_suitable,
    )


def is_sql_suitable_question(question: str) -> bool:
    '''
        True when the question reads as a structured lookup rather than an explanation.
        With both kinds of indicators, numerical wording decides.
    '''
    lower_question = question.lower()

    has_sql = _contains_any(lower_question, SQL_INDICATORS + SQL_LOOKUP_INDICATORS)
    has_vector = _contains_any(lower_question, VECTOR_INDICATORS + VECTOR_EXTRA_INDICATORS)

    if has_sql and not has_vector:
        return True
    if has_sql and has_vector:
        return _contains_any(lower_question, NUMERICAL_WORDS)
    return False
