# backend/core/document_context.py
# 功能: 把上游已抽取的文档文本拼成带标签的背景上下文
# 主要类: UserDocument
# 主要函数: build_document_context()

"""
文档上下文

文档解析（PDF/DOCX → 文本）在上游完成，这里只做截断和打标签。
结果字符串同时供 PromptEngine 和 GoalExtractor 使用。
"""

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional, Union

# 每份文档注入的最大字符数
PER_DOCUMENT_MAX_CHARS = 2000

DOCUMENT_LABELS = {
    "resume": "Resume Summary",
    "disc": "DISC Profile",
    "strengthsfinder": "StrengthsFinder Results",
    "pi": "Predictive Index Profile",
}


@dataclass(frozen=True)
class UserDocument:
    document_type: str  # resume | disc | strengthsfinder | pi | custom
    extracted_text: Optional[str] = None
    custom_type_name: Optional[str] = None

    @property
    def label(self) -> str:
        if self.document_type == "custom":
            return self.custom_type_name or "Custom Document"
        return DOCUMENT_LABELS.get(self.document_type, self.document_type)


def _coerce(doc: Union[UserDocument, Mapping[str, Any]]) -> UserDocument:
    if isinstance(doc, UserDocument):
        return doc
    return UserDocument(
        document_type=str(doc.get("document_type") or ""),
        extracted_text=doc.get("extracted_text"),
        custom_type_name=doc.get("custom_type_name"),
    )


def build_document_context(
    documents: Optional[Iterable[Union[UserDocument, Mapping[str, Any]]]],
    per_document_max_chars: int = PER_DOCUMENT_MAX_CHARS,
) -> str:
    """没有可用文本时返回空字符串"""
    sections = []
    for raw in documents or []:
        doc = _coerce(raw)
        if not doc.extracted_text:
            continue
        sections.append(f"### {doc.label}\n{doc.extracted_text[:per_document_max_chars]}")
    return "\n\n".join(sections)
