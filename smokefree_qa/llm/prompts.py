"""Prompt templates and context rendering."""

from collections.abc import Sequence

from smokefree_qa.models.conversation import RetrievalResult

SOURCE_PLACEHOLDER = "{sourceText}"
QUESTION_PLACEHOLDER = "{question}"
CONTEXT_DELIMITER = "\n\n---\n\n"
NOT_FOUND_ANSWER = "제공된 자료에서 해당 정보를 찾을 수 없습니다"

SYSTEM_INSTRUCTION_TEMPLATE = f"""You are an assistant for Korean smoke-free area regulations and administrative guidance.

INSTRUCTIONS:
1. Answer ONLY from the source material below. Do not use outside knowledge.
2. If the answer is not in the source, reply "{NOT_FOUND_ANSWER}".
3. Use the exact legal and administrative terminology of the source.
4. Combine related passages from several documents into one coherent answer.
5. Pay particular attention to procedures, definitions and regulatory requirements.
6. Write in formal Korean suitable for official documents.
7. Format with Markdown. Present lists, comparisons, procedures and criteria as Markdown tables:
    | Column 1 | Column 2 |
    |----------|----------|
    | Data 1   | Data 2   |
   Always include the separator row between header and data rows.
8. Cite sources with abbreviated document names and every relevant page from the [PAGE_n] markers:
    - "건강증진법(p.3)" for 국민건강증진법률 시행령 시행규칙
    - "업무지침(p.7, 9, 12)" for 금연구역 지정 관리 업무지침
    - "가이드라인(p.1-3)" for 유치원, 어린이집 경계 10m 금연구역 관리 가이드라인
    - "매뉴얼(p.7)" for 금연지원서비스 통합시스템 사용자매뉴얼
   Use ranges only for consecutive pages and group pages per document.
9. Add a "### 참조문서" section listing full document names and pages ONLY when sources are not
   already cited inline or in a source column of a table.

Here is the source material:
---START OF SOURCE---
{SOURCE_PLACEHOLDER}
---END OF SOURCE---"""

ANALYSIS_PROMPT_TEMPLATE = f"""다음 질문을 분석하여 JSON 객체 하나로만 답변해주세요.

질문: "{QUESTION_PLACEHOLDER}"

형식:
{{
  "intent": "질문의 의도 (예: 금연구역 지정 절차 문의)",
  "keywords": ["핵심 키워드"],
  "category": "definition | procedure | regulation | comparison | analysis | general",
  "complexity": "simple | medium | complex",
  "entities": ["기관명, 법령명, 시설명 등 구체적 개체"],
  "context": "질문의 맥락 설명"
}}"""


def build_analysis_prompt(question: str) -> str:
    return ANALYSIS_PROMPT_TEMPLATE.replace(QUESTION_PLACEHOLDER, question)


def format_context(results: Sequence[RetrievalResult], include_scores: bool = False) -> str:
    """Render selected chunks as numbered source blocks.

    Args:
        results: Ranked chunks, best first.
        include_scores: Add each chunk's relevance score (streaming mode).

    Returns:
        The blocks joined by the context delimiter.
    """
    blocks = []
    for index, result in enumerate(results, start=1):
        chunk = result.chunk
        header = f"[문서 {index}: {chunk.metadata.title} - {chunk.location.section or '일반'}]"
        lines = [header]
        if include_scores:
            lines.append(f"관련도: {result.relevance_score:.2f}")
        lines.append(chunk.content)
        blocks.append("\n".join(lines))
    return CONTEXT_DELIMITER.join(blocks)


def build_system_instruction(context: str) -> str:
    """Substitute rendered context into the system instruction template."""
    return SYSTEM_INSTRUCTION_TEMPLATE.replace(SOURCE_PLACEHOLDER, context)
