"""Korean domain vocabulary for smoke-free area regulations.

Fixed term lists shared by the question analyzer, the context selector
and the chunker. Changing them changes retrieval behavior, so they are
plain module constants rather than configuration.
"""

import re

# Domain terms matched as case-insensitive substrings of questions and chunks.
DOMAIN_KEYWORDS: tuple[str, ...] = (
    "금연",
    "금연구역",
    "흡연",
    "흡연실",
    "담배",
    "전자담배",
    "과태료",
    "건강증진",
    "시행령",
    "시행규칙",
    "지정",
    "관리",
    "업무",
    "지침",
    "서비스",
    "통합",
    "사업",
    "지원",
    "규정",
    "법률",
    "조항",
    "항목",
    "절차",
    "방법",
    "기준",
    "요건",
    "조건",
    "제한",
    "신고",
    "신청",
    "처리",
    "심사",
    "승인",
    "허가",
    "단속",
    "표지",
    "경계",
)

STOPWORDS: frozenset[str] = frozenset(
    {
        # particles
        "은", "는", "이", "가", "을", "를", "에", "의", "로", "으로", "와", "과",
        "에서", "부터", "까지", "에게", "한테", "께", "도", "만", "조차", "마저",
        # connectives
        "또한", "그리고", "하지만", "그런데", "그러나", "따라서", "그래서",
        # question words
        "어떻게", "무엇", "언제", "어디", "왜", "누구", "어느", "몇",
        # english
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
    }
)

# keyword -> weaker-signal alternatives that appear in the regulations
SYNONYMS: dict[str, tuple[str, ...]] = {
    "금연구역": ("흡연금지구역", "금연 구역", "금연지역"),
    "금연": ("흡연금지", "흡연 금지"),
    "흡연": ("담배", "끽연"),
    "담배": ("흡연", "궐련", "전자담배"),
    "전자담배": ("액상형", "궐련형", "니코틴"),
    "흡연실": ("흡연구역", "흡연시설"),
    "과태료": ("벌금", "부과", "처분"),
    "어린이집": ("보육시설", "영유아"),
    "유치원": ("유아교육", "교육기관"),
    "학교": ("교육기관", "교육환경보호구역"),
    "지정": ("고시", "설정"),
    "단속": ("점검", "지도", "계도"),
    "신고": ("제보", "민원"),
    "경계": ("10미터", "10m", "출입구"),
    "표지": ("표지판", "안내표지", "스티커"),
    "지원": ("금연클리닉", "금연상담", "보조"),
    "규정": ("법령", "조항"),
    "절차": ("방법", "단계"),
    "정의": ("의미", "뜻"),
    "공동주택": ("아파트", "복도", "계단"),
}

# Ordered: the first matching rule wins.
CATEGORY_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("definition", ("무엇", "정의", "의미")),
    ("procedure", ("어떻게", "절차", "방법")),
    ("regulation", ("규정", "법령", "조항")),
    ("comparison", ("비교", "차이", "vs")),
    ("analysis", ("분석", "검토", "평가")),
)

# Terms in a chunk that signal affinity with a question category.
CATEGORY_MARKERS: dict[str, tuple[str, ...]] = {
    "definition": ("정의", "의미"),
    "procedure": ("절차", "방법", "단계"),
    "regulation": ("규정", "법령", "조항"),
}

COMPLEXITY_MARKERS = re.compile(r"법령|규정|절차|기준|요건|조건")

ENTITY_PATTERNS: tuple[re.Pattern[str], ...] = (
    # institutions
    re.compile(r"[가-힣]+(?:청|부|원|소|센터|기관|단체|협회)"),
    # laws, guidelines and manuals
    re.compile(r"[가-힣]+(?:법|령|규칙|지침|가이드라인|매뉴얼)"),
    # numbers with units
    re.compile(r"\d+(?:km|m|킬로미터|미터|%|퍼센트|억원|만원|원)"),
)

NAMED_ENTITIES: tuple[str, ...] = (
    "어린이집",
    "유치원",
    "초등학교",
    "중학교",
    "고등학교",
    "학교",
    "공동주택",
    "PC방",
    "음식점",
    "보건소",
    "지방자치단체",
    "국민건강증진법",
    "영유아보육법",
    "유아교육법",
    "금연지원서비스",
)


def expand_synonyms(keywords: list[str]) -> list[str]:
    """Return synonym terms for ``keywords``, excluding the keywords themselves.

    Args:
        keywords: Keywords from a question analysis.

    Returns:
        Distinct expanded terms in first-seen order.
    """
    own = {keyword.lower() for keyword in keywords}
    expanded: list[str] = []
    seen: set[str] = set()
    for keyword in keywords:
        for synonym in SYNONYMS.get(keyword.lower(), ()):
            lowered = synonym.lower()
            if lowered in own or lowered in seen:
                continue
            seen.add(lowered)
            expanded.append(synonym)
    return expanded


def find_domain_keywords(text: str) -> list[str]:
    """Return the domain terms occurring in ``text`` (case-insensitive)."""
    lowered = text.lower()
    return [keyword for keyword in DOMAIN_KEYWORDS if keyword.lower() in lowered]
